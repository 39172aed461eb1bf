"""Base transport abstraction for relay peers.

Defines the interface that transport implementations must provide so the
relay core (lifecycle, router, registry) never touches sockets directly.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from enum import Enum
from typing import Any


class ChannelState(Enum):
    """Connection channel states.

    State Transitions:
    - OPEN → CLOSED (on transport close, forced termination or graceful close)
    """

    OPEN = "open"
    CLOSED = "closed"


class PeerChannel(ABC):
    """Bidirectional text message channel for a single connected peer.

    Sends are fire-and-forget: implementations schedule delivery and report
    failures through logging only. Callers never await delivery.
    """

    @abstractmethod
    def send(self, message: str) -> None:
        """Schedule a text message for delivery to the peer.

        Messages scheduled on the same channel are delivered in call order.

        Args:
            message: UTF-8 JSON text
        """
        pass

    @abstractmethod
    def terminate(self) -> None:
        """Forcibly close the channel without a closing handshake.

        Anything not yet written to the wire is discarded.
        """
        pass

    @abstractmethod
    def close(self, reason: str = "") -> None:
        """Close the channel gracefully after pending messages are sent.

        Args:
            reason: Human-readable close reason
        """
        pass

    @abstractmethod
    async def messages(self) -> AsyncIterator[str]:
        """Receive inbound text messages in arrival order.

        Iteration ends when the underlying transport closes.

        Yields:
            str: Raw inbound text message
        """
        # Using yield to make this an async generator
        if False:
            yield ""

    @property
    @abstractmethod
    def state(self) -> ChannelState:
        """Current channel state."""
        pass

    @property
    @abstractmethod
    def remote_address(self) -> Any:
        """Remote peer address for logging."""
        pass


class Transport(ABC):
    """Base transport server.

    Manages the lifecycle of a transport type (e.g., WebSocket server) and
    hands every accepted connection to the relay as a PeerChannel.
    """

    @abstractmethod
    async def start(self) -> None:
        """Start the transport server.

        Should return once the server is bound and accepting connections.

        Raises:
            RuntimeError: If the transport fails to start
            OSError: If port binding fails
        """
        pass

    @abstractmethod
    async def stop(self) -> None:
        """Stop the transport server and close all open channels."""
        pass

    @property
    @abstractmethod
    def transport_type(self) -> str:
        """Transport type identifier (e.g., 'websocket')."""
        pass

    @property
    @abstractmethod
    def is_running(self) -> bool:
        """Check if the transport server is currently running."""
        pass
