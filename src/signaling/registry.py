"""Registry of live relay connections keyed by client id."""

import logging
from collections.abc import Iterator

from src.signaling.transport.base import PeerChannel

logger = logging.getLogger(__name__)


class RegistryError(Exception):
    """Base class for connection registry errors."""

    def __init__(self, client_id: str, message: str) -> None:
        self.client_id = client_id
        super().__init__(f"{message}: {client_id}")


class DuplicateIdError(RegistryError):
    """Client id is already registered."""

    def __init__(self, client_id: str) -> None:
        super().__init__(client_id, "Client id already registered")


class PeerNotFoundError(RegistryError):
    """Client id is not registered."""

    def __init__(self, client_id: str) -> None:
        super().__init__(client_id, "Client id not registered")


class ConnectionRegistry:
    """Maps client ids to their live channels.

    Thread-safety: This class is NOT thread-safe. All operations are
    synchronous and must be called from the event loop thread, which makes
    each of insert/lookup/remove atomic relative to the others.
    """

    def __init__(self) -> None:
        self._connections: dict[str, PeerChannel] = {}

    def insert(self, client_id: str, channel: PeerChannel) -> None:
        """Register a channel under a new client id.

        Args:
            client_id: Client identifier
            channel: Channel owned by the entry from now on

        Raises:
            DuplicateIdError: If client_id is already registered (the
                existing entry is left untouched)
        """
        if client_id in self._connections:
            raise DuplicateIdError(client_id)
        self._connections[client_id] = channel
        logger.debug(
            "Connection registered",
            extra={"client_id": client_id, "connections": len(self._connections)},
        )

    def lookup(self, client_id: str) -> PeerChannel:
        """Resolve a client id to its channel.

        Raises:
            PeerNotFoundError: If client_id is not registered
        """
        try:
            return self._connections[client_id]
        except KeyError:
            raise PeerNotFoundError(client_id) from None

    def remove(self, client_id: str) -> PeerChannel | None:
        """Remove a client id. Removing an absent id is a no-op.

        Returns:
            The removed channel, or None if the id was not registered
        """
        channel = self._connections.pop(client_id, None)
        if channel is not None:
            logger.debug(
                "Connection unregistered",
                extra={"client_id": client_id, "connections": len(self._connections)},
            )
        return channel

    def ids(self) -> list[str]:
        """Snapshot of registered client ids."""
        return list(self._connections)

    def __contains__(self, client_id: object) -> bool:
        return client_id in self._connections

    def __len__(self) -> int:
        return len(self._connections)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._connections))
