"""Connection lifecycle management.

Owns the per-connection flow:
- Registration: assign a client id, insert into the registry, greet
- Message loop: hand inbound messages to the router in arrival order
- Teardown: remove the registry entry exactly once

No peer is notified when a connection goes away; the relay keeps no notion
of which clients are negotiating with each other.
"""

import logging
from collections.abc import Callable, Sequence

from src.signaling.ids import generate_client_id
from src.signaling.metrics import RelayMetrics
from src.signaling.registry import ConnectionRegistry, DuplicateIdError
from src.signaling.router import MessageRouter, RouteOutcome
from src.signaling.transport.base import PeerChannel
from src.signaling.transport.websocket_protocol import (
    ErrorMessage,
    HelloMessage,
    IceServer,
    IceServersMessage,
    encode_message,
)

logger = logging.getLogger(__name__)


class ConnectionLifecycle:
    """Registers, serves and unregisters relay connections.

    Thread-safety: This class is NOT thread-safe. Use from a single event loop.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        router: MessageRouter,
        ice_servers: Sequence[IceServer] = (),
        metrics: RelayMetrics | None = None,
        error_replies: bool = False,
        id_factory: Callable[[], str] = generate_client_id,
    ) -> None:
        """Initialize lifecycle manager.

        Args:
            registry: Live connection registry
            router: Router handling inbound messages
            ice_servers: ICE servers announced to every client after hello
            metrics: Relay counters (a private instance is used if omitted)
            error_replies: Reply with an error before closing on duplicate id
            id_factory: Client id generator
        """
        self.registry = registry
        self.router = router
        self.ice_servers = list(ice_servers)
        self.metrics = metrics if metrics is not None else RelayMetrics()
        self.error_replies = error_replies
        self._id_factory = id_factory

    def register(self, channel: PeerChannel) -> str | None:
        """Assign an id to a new connection and greet it.

        Sends ``hello`` followed by ``iceServers``. If the generated id is
        already registered, the new connection is terminated with nothing sent
        and the existing entry is left in place.

        Args:
            channel: Newly accepted channel

        Returns:
            The assigned client id, or None if the connection was rejected
        """
        client_id = self._id_factory()
        try:
            self.registry.insert(client_id, channel)
        except DuplicateIdError:
            logger.warning(
                "Duplicate client id generated, closing connection",
                extra={"client_id": client_id, "remote": channel.remote_address},
            )
            self.metrics.connections_rejected += 1
            if self.error_replies:
                channel.send(encode_message(ErrorMessage(code="duplicate-id")))
                channel.close("duplicate-id")
            else:
                channel.terminate()
            return None

        self.metrics.connections_accepted += 1
        logger.info(
            "Connection registered",
            extra={"client_id": client_id, "remote": channel.remote_address},
        )

        channel.send(encode_message(HelloMessage(id=client_id)))
        channel.send(encode_message(IceServersMessage(ice_servers=self.ice_servers)))
        return client_id

    def unregister(self, client_id: str) -> None:
        """Remove a connection from the registry."""
        if self.registry.remove(client_id) is not None:
            self.metrics.connections_closed += 1
            logger.info("Connection closed", extra={"client_id": client_id})

    async def serve(self, channel: PeerChannel) -> None:
        """Serve one connection until its transport closes.

        Inbound messages are routed one at a time in arrival order.

        Args:
            channel: Newly accepted channel
        """
        client_id = self.register(channel)
        if client_id is None:
            return

        try:
            async for raw in channel.messages():
                # Frames buffered before a forced termination are discarded
                if self.router.handle_message(client_id, channel, raw) is RouteOutcome.TERMINATED:
                    break
        finally:
            self.unregister(client_id)
