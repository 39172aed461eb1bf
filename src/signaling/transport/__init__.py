"""Transport layer for relay client connections.

Provides the channel abstraction the relay core works against and its
WebSocket implementation.
"""

from src.signaling.transport.base import ChannelState, PeerChannel, Transport
from src.signaling.transport.websocket_transport import (
    WebSocketChannel,
    WebSocketTransport,
)

__all__ = [
    "ChannelState",
    "PeerChannel",
    "Transport",
    "WebSocketChannel",
    "WebSocketTransport",
]
