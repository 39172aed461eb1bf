"""Integration test fixtures and utilities.

Provides shared fixtures for:
- Free port allocation
- Relay server lifecycle (real WebSocket server on localhost)
- WebSocket client helpers
"""

import asyncio
import json
import logging
import socket
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from websockets.asyncio.client import ClientConnection

from src.signaling.config import RelayConfig, TransportConfig, WebSocketConfig
from src.signaling.server import RelayServer, build_relay

logger = logging.getLogger(__name__)


def get_free_port() -> int:
    """Get a free TCP port for binding.

    Returns:
        Available port number
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def static_page(tmp_path: Path) -> Path:
    """Static HTML page served to plain HTTP requests."""
    page = tmp_path / "index.html"
    page.write_text("<!DOCTYPE html><title>relay</title>")
    return page


@pytest.fixture
def relay_config(static_page: Path) -> RelayConfig:
    """Relay configuration bound to a free localhost port."""
    return RelayConfig(
        transport=TransportConfig(
            websocket=WebSocketConfig(
                host="127.0.0.1", port=get_free_port(), static_page=static_page
            )
        )
    )


@pytest_asyncio.fixture
async def relay(relay_config: RelayConfig) -> AsyncIterator[RelayServer]:
    """Running relay server."""
    server = build_relay(relay_config)
    await server.transport.start()
    logger.info("Test relay started", extra={"port": server.transport.port})
    try:
        yield server
    finally:
        await server.transport.stop()


@pytest.fixture
def relay_url(relay: RelayServer) -> str:
    return f"ws://127.0.0.1:{relay.transport.port}"


async def recv_json(ws: ClientConnection, timeout_s: float = 2.0) -> dict[str, Any]:
    """Receive one JSON message."""
    raw = await asyncio.wait_for(ws.recv(), timeout=timeout_s)
    return json.loads(raw)


async def recv_greeting(ws: ClientConnection) -> str:
    """Consume hello + iceServers and return the assigned client id."""
    hello = await recv_json(ws)
    assert hello["type"] == "hello"
    ice = await recv_json(ws)
    assert ice["type"] == "iceServers"
    return hello["id"]


async def wait_for_connections(relay: RelayServer, count: int, timeout_s: float = 2.0) -> None:
    """Wait until the registry holds the given number of connections."""
    async with asyncio.timeout(timeout_s):
        while len(relay.registry) != count:
            await asyncio.sleep(0.01)
