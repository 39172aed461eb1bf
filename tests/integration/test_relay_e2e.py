"""End-to-end relay tests over real WebSocket connections.

Tests the complete flow:
1. Start the relay on a free port
2. Connect WebSocket clients and receive greetings
3. Relay offers, answers and candidates between clients
4. Verify offer sanitization and forced disconnects
5. Verify registry cleanup on close
"""

import asyncio
import json

import aiohttp
import pytest
import websockets
from websockets.asyncio.client import connect

from src.signaling.server import RelayServer
from tests.helpers.sdp_samples import (
    APPLICATION,
    AUDIO,
    SESSION,
    VIDEO,
    VIDEO_TIMING_URI,
    make_sdp,
    without,
)
from tests.integration.conftest import (
    recv_greeting,
    recv_json,
    wait_for_connections,
)


@pytest.mark.integration
@pytest.mark.asyncio
async def test_greeting(relay: RelayServer, relay_url: str) -> None:
    """Test hello and iceServers on connect."""
    async with connect(relay_url) as ws:
        hello = await recv_json(ws)
        ice = await recv_json(ws)

        assert hello["type"] == "hello"
        assert hello["id"] in relay.registry
        assert ice == {
            "type": "iceServers",
            "iceServers": [{"urls": "stun:stun.l.google.com:19302"}],
        }


@pytest.mark.integration
@pytest.mark.asyncio
async def test_offer_answer_exchange(relay: RelayServer, relay_url: str) -> None:
    """Test offer sanitization and answer relay between two clients."""
    async with connect(relay_url) as ws_a, connect(relay_url) as ws_b:
        id_a = await recv_greeting(ws_a)
        id_b = await recv_greeting(ws_b)

        denied_line = f"a=extmap:12 {VIDEO_TIMING_URI}"
        offer_sdp = make_sdp(SESSION, AUDIO, VIDEO)
        await ws_a.send(json.dumps({"id": id_b, "type": "offer", "sdp": offer_sdp}))

        offer = await recv_json(ws_b)
        assert offer == {
            "id": id_a,
            "type": "offer",
            "sdp": make_sdp(SESSION, AUDIO, without(VIDEO, denied_line)),
        }

        answer_sdp = make_sdp(SESSION, AUDIO, VIDEO, eol="\n")
        await ws_b.send(json.dumps({"id": id_a, "type": "answer", "sdp": answer_sdp}))
        await ws_b.send(json.dumps({"id": id_a, "type": "candidate", "candidate": None}))

        assert await recv_json(ws_a) == {"id": id_b, "type": "answer", "sdp": answer_sdp}
        assert await recv_json(ws_a) == {"id": id_b, "type": "candidate", "candidate": None}


@pytest.mark.integration
@pytest.mark.asyncio
async def test_application_offer_disconnects_sender(relay: RelayServer, relay_url: str) -> None:
    """Test that a data channel offer drops the sender and reaches no one."""
    async with connect(relay_url) as ws_a, connect(relay_url) as ws_b:
        await recv_greeting(ws_a)
        id_b = await recv_greeting(ws_b)

        sdp = make_sdp(SESSION, AUDIO, APPLICATION)
        await ws_a.send(json.dumps({"id": id_b, "type": "offer", "sdp": sdp}))

        with pytest.raises(websockets.exceptions.ConnectionClosed):
            await asyncio.wait_for(ws_a.recv(), timeout=2.0)

        with pytest.raises(TimeoutError):
            await asyncio.wait_for(ws_b.recv(), timeout=0.3)

        await wait_for_connections(relay, 1)
        assert relay.metrics.violations["disallowed-media-kind"] == 1


@pytest.mark.integration
@pytest.mark.asyncio
async def test_messages_pipelined_after_rejected_offer_are_discarded(
    relay: RelayServer, relay_url: str
) -> None:
    """Test that frames queued behind a rejected offer never reach the peer."""
    async with connect(relay_url) as ws_a, connect(relay_url) as ws_b:
        await recv_greeting(ws_a)
        id_b = await recv_greeting(ws_b)

        sdp = make_sdp(SESSION, AUDIO, APPLICATION)
        await ws_a.send(json.dumps({"id": id_b, "type": "offer", "sdp": sdp}))
        for n in range(5):
            await ws_a.send(json.dumps({"id": id_b, "type": "candidate", "n": n}))

        with pytest.raises(TimeoutError):
            await asyncio.wait_for(ws_b.recv(), timeout=0.5)

        await wait_for_connections(relay, 1)
        assert relay.metrics.messages_forwarded == 0


@pytest.mark.integration
@pytest.mark.asyncio
async def test_unencodable_message_keeps_sender_open(relay: RelayServer, relay_url: str) -> None:
    """Test that a lone surrogate escape is dropped without closing the sender."""
    async with connect(relay_url) as ws_a, connect(relay_url) as ws_b:
        id_a = await recv_greeting(ws_a)
        id_b = await recv_greeting(ws_b)

        await ws_a.send('{"type": "candidate", "id": "%s", "x": "\\ud800"}' % id_b)
        await ws_a.send(json.dumps({"id": id_b, "type": "candidate", "n": 1}))

        assert await recv_json(ws_b) == {"id": id_a, "type": "candidate", "n": 1}
        assert relay.metrics.messages_dropped["unencodable"] == 1
        assert id_a in relay.registry


@pytest.mark.integration
@pytest.mark.asyncio
async def test_unknown_destination_keeps_sender_open(relay: RelayServer, relay_url: str) -> None:
    """Test that routing misses are silent and harmless."""
    async with connect(relay_url) as ws_a:
        id_a = await recv_greeting(ws_a)

        await ws_a.send(json.dumps({"id": "nobody", "type": "candidate"}))
        await ws_a.send("{not json")
        await ws_a.send(json.dumps({"id": id_a, "type": "ping"}))

        # Only the self-addressed message comes back
        assert await recv_json(ws_a) == {"id": id_a, "type": "ping"}
        assert relay.metrics.messages_dropped["not-found"] == 1
        assert relay.metrics.messages_dropped["invalid-json"] == 1


@pytest.mark.integration
@pytest.mark.asyncio
async def test_registry_cleanup_on_close(relay: RelayServer, relay_url: str) -> None:
    """Test that closing a client removes its registry entry."""
    async with connect(relay_url) as ws_b:
        id_b = await recv_greeting(ws_b)

        async with connect(relay_url) as ws_a:
            id_a = await recv_greeting(ws_a)
            await wait_for_connections(relay, 2)

        await wait_for_connections(relay, 1)
        assert id_a not in relay.registry
        assert id_b in relay.registry

        # Messages to the departed client are lost, not queued
        await ws_b.send(json.dumps({"id": id_a, "type": "candidate"}))
        with pytest.raises(TimeoutError):
            await asyncio.wait_for(ws_b.recv(), timeout=0.3)


@pytest.mark.integration
@pytest.mark.asyncio
async def test_static_page(relay: RelayServer) -> None:
    """Test that plain HTTP requests receive the static page."""
    async with aiohttp.ClientSession() as session:
        async with session.get(f"http://127.0.0.1:{relay.transport.port}/") as response:
            assert response.status == 200
            assert response.headers["Content-Type"].startswith("text/html")
            assert "<title>relay</title>" in await response.text()
