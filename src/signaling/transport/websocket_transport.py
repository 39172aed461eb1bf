"""WebSocket transport implementation.

Serves the signaling relay over WebSocket text frames. Plain HTTP requests
(no ``Upgrade: websocket`` header) can optionally be answered with a static
HTML page so a demo client can be loaded from the same port.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from http import HTTPStatus
from pathlib import Path
from typing import Any

import websockets
from websockets.asyncio.server import Server, ServerConnection
from websockets.datastructures import Headers
from websockets.http11 import Request, Response
from websockets.protocol import State

from src.signaling.transport.base import ChannelState, PeerChannel, Transport

logger = logging.getLogger(__name__)

ConnectionHandler = Callable[[PeerChannel], Awaitable[None]]
SendFailureCallback = Callable[[BaseException], None]


class WebSocketChannel(PeerChannel):
    """WebSocket-backed peer channel.

    Sends are scheduled as tasks on the running loop. Tasks start in the
    order they were created, so messages reach the wire in call order.
    """

    def __init__(
        self,
        websocket: ServerConnection,
        on_send_failure: SendFailureCallback | None = None,
    ) -> None:
        """Initialize WebSocket channel.

        Args:
            websocket: WebSocket connection
            on_send_failure: Called with the error when a scheduled send fails
        """
        self._websocket = websocket
        self._on_send_failure = on_send_failure
        self._closing = False
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def state(self) -> ChannelState:
        """Channel state, CLOSED as soon as a local close was requested."""
        if self._closing or self._websocket.state is not State.OPEN:
            return ChannelState.CLOSED
        return ChannelState.OPEN

    @property
    def remote_address(self) -> Any:
        """Remote peer address."""
        return self._websocket.remote_address

    def send(self, message: str) -> None:
        """Schedule a text frame for delivery."""
        if self.state is ChannelState.CLOSED:
            self._report_failure(ConnectionError("WebSocket connection is closed"))
            return

        task = asyncio.get_running_loop().create_task(self._websocket.send(message))
        self._pending.add(task)
        task.add_done_callback(self._on_send_done)

    def terminate(self) -> None:
        """Abort the TCP connection without a closing handshake."""
        if self._closing:
            return
        self._closing = True

        logger.info("Terminating WebSocket connection", extra={"remote": self.remote_address})
        transport = self._websocket.transport
        if transport is not None:
            transport.abort()

    def close(self, reason: str = "") -> None:
        """Schedule a normal closing handshake after pending sends."""
        if self._closing:
            return
        self._closing = True

        task = asyncio.get_running_loop().create_task(self._websocket.close(reason=reason))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def messages(self) -> AsyncIterator[str]:
        """Yield inbound text frames until the connection closes.

        Stops as soon as a local close or termination was requested, even if
        frames are still buffered.
        """
        try:
            async for message in self._websocket:
                if self._closing:
                    break
                if not isinstance(message, str):
                    logger.warning(
                        "Received non-text WebSocket message, skipping",
                        extra={"remote": self.remote_address},
                    )
                    continue
                yield message
        except websockets.exceptions.ConnectionClosed as e:
            logger.info(
                "WebSocket connection closed abnormally",
                extra={"remote": self.remote_address, "error": str(e)},
            )

    def _on_send_done(self, task: "asyncio.Task[None]") -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self._report_failure(error)

    def _report_failure(self, error: BaseException) -> None:
        logger.warning(
            "Failed to send message",
            extra={"remote": self.remote_address, "error": str(error)},
        )
        if self._on_send_failure is not None:
            self._on_send_failure(error)


class WebSocketTransport(Transport):
    """WebSocket transport server.

    Wraps each accepted connection in a WebSocketChannel and runs the
    connection handler for it; the handler returning ends the connection.
    """

    def __init__(
        self,
        handler: ConnectionHandler,
        host: str = "0.0.0.0",  # noqa: S104
        port: int = 8080,
        max_size: int = 2**20,
        static_page: Path | None = None,
        on_send_failure: SendFailureCallback | None = None,
    ) -> None:
        """Initialize WebSocket transport.

        Args:
            handler: Coroutine serving one channel until it closes
            host: Bind host address
            port: Bind port (0 picks a free port)
            max_size: Maximum inbound message size in bytes
            static_page: HTML file served to non-upgrade HTTP requests
            on_send_failure: Called when a send on any channel fails
        """
        self._handler = handler
        self._host = host
        self._port = port
        self._max_size = max_size
        self._static_page = static_page
        self._on_send_failure = on_send_failure
        self._server: Server | None = None
        self._running = False

        logger.info(
            "WebSocket transport initialized",
            extra={"host": host, "port": port, "max_size": max_size},
        )

    @property
    def transport_type(self) -> str:
        """Transport type identifier."""
        return "websocket"

    @property
    def is_running(self) -> bool:
        """Check if the transport server is currently running."""
        return self._running

    @property
    def port(self) -> int:
        """Bound port (differs from the configured one when that was 0)."""
        if self._server is None:
            return self._port
        return next(iter(self._server.sockets)).getsockname()[1]

    async def start(self) -> None:
        """Start the WebSocket server.

        Raises:
            RuntimeError: If the transport is already running or fails to start
            OSError: If port binding fails
        """
        if self._running:
            raise RuntimeError("WebSocket transport is already running")

        logger.info("Starting WebSocket server", extra={"host": self._host, "port": self._port})

        try:
            self._server = await websockets.serve(
                self._handle_connection,
                self._host,
                self._port,
                max_size=self._max_size,
                process_request=self._process_request if self._static_page else None,
            )
            self._running = True

            logger.info(
                "WebSocket server started",
                extra={"host": self._host, "port": self.port},
            )

        except OSError as e:
            logger.error(
                "Failed to bind WebSocket server",
                extra={"host": self._host, "port": self._port, "error": str(e)},
            )
            raise
        except Exception as e:
            logger.error("Failed to start WebSocket server", extra={"error": str(e)})
            raise RuntimeError(f"Failed to start WebSocket transport: {e}") from e

    async def stop(self) -> None:
        """Stop the WebSocket server and close all connections."""
        if not self._running:
            return

        logger.info("Stopping WebSocket server")

        self._running = False

        if self._server:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

        logger.info("WebSocket server stopped")

    async def _handle_connection(self, websocket: ServerConnection) -> None:
        """Serve one WebSocket connection.

        Args:
            websocket: WebSocket connection
        """
        logger.info("New WebSocket connection", extra={"remote": websocket.remote_address})

        channel = WebSocketChannel(websocket, on_send_failure=self._on_send_failure)
        try:
            await self._handler(channel)
        except Exception as e:
            logger.error(
                "Error in connection handler",
                extra={"remote": websocket.remote_address, "error": str(e)},
                exc_info=True,
            )
        finally:
            logger.info(
                "WebSocket connection closed",
                extra={"remote": websocket.remote_address},
            )

    def _process_request(self, connection: ServerConnection, request: Request) -> Response | None:
        """Answer non-upgrade HTTP requests with the static page."""
        if request.headers.get("Upgrade", "").lower() == "websocket":
            return None

        if self._static_page is None:
            return None

        try:
            body = self._static_page.read_bytes()
        except OSError as e:
            logger.warning(
                "Could not read static page",
                extra={"path": str(self._static_page), "error": str(e)},
            )
            return connection.respond(HTTPStatus.NOT_FOUND, "Not Found\n")

        headers = Headers(
            [
                ("Content-Type", "text/html; charset=utf-8"),
                ("Content-Length", str(len(body))),
                ("Connection", "close"),
            ]
        )
        return Response(HTTPStatus.OK.value, HTTPStatus.OK.phrase, headers, body)
