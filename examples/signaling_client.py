"""Two-peer signaling client example.

Demonstrates:
- Connecting two clients to the relay
- Receiving hello and iceServers
- Relaying an offer (and seeing denylisted extensions stripped)
- Relaying an answer back

Usage:
    python examples/signaling_client.py
    python examples/signaling_client.py --url ws://localhost:8080
"""

import argparse
import asyncio
import json
import sys
from typing import Any

import websockets
from websockets.asyncio.client import ClientConnection

OFFER_SDP = "\r\n".join(
    [
        "v=0",
        "o=- 4611731400430051336 2 IN IP4 127.0.0.1",
        "s=-",
        "t=0 0",
        "a=group:BUNDLE 0",
        "m=video 9 UDP/TLS/RTP/SAVPF 96",
        "c=IN IP4 0.0.0.0",
        "a=mid:0",
        "a=extmap:3 urn:ietf:params:rtp-hdrext:toffset",
        "a=extmap:12 http://www.webrtc.org/experiments/rtp-hdrext/video-timing",
        "a=sendrecv",
        "a=rtpmap:96 VP8/90000",
        "",
    ]
)


async def receive_json(ws: ClientConnection) -> dict[str, Any]:
    """Receive one JSON message."""
    message: dict[str, Any] = json.loads(await ws.recv())
    return message


async def receive_greeting(ws: ClientConnection, name: str) -> str:
    """Receive hello + iceServers and return the assigned id.

    Raises:
        RuntimeError: If the relay does not greet as expected
    """
    hello = await receive_json(ws)
    if hello["type"] != "hello":
        raise RuntimeError(f"Expected hello, got {hello['type']}")
    print(f"← {name}: hello (id={hello['id']})")

    ice = await receive_json(ws)
    if ice["type"] != "iceServers":
        raise RuntimeError(f"Expected iceServers, got {ice['type']}")
    print(f"← {name}: iceServers {ice['iceServers']}")

    client_id: str = hello["id"]
    return client_id


async def run_client(url: str = "ws://localhost:8080") -> None:
    """Connect two peers and exchange an offer and an answer.

    Args:
        url: WebSocket URL of the relay
    """
    print(f"Connecting to {url}...")

    async with websockets.connect(url) as ws_a, websockets.connect(url) as ws_b:
        id_a = await receive_greeting(ws_a, "A")
        id_b = await receive_greeting(ws_b, "B")

        await ws_a.send(json.dumps({"type": "offer", "id": id_b, "sdp": OFFER_SDP}))
        print(f"→ A: offer to {id_b} ({len(OFFER_SDP.splitlines())} lines)")

        offer = await receive_json(ws_b)
        print(f"← B: offer from {offer['id']} ({len(offer['sdp'].splitlines())} lines)")
        for line in set(OFFER_SDP.splitlines()) - set(offer["sdp"].splitlines()):
            print(f"   stripped by relay: {line}")

        await ws_b.send(json.dumps({"type": "answer", "id": id_a, "sdp": offer["sdp"]}))
        print(f"→ B: answer to {id_a}")

        answer = await receive_json(ws_a)
        print(f"← A: answer from {answer['id']}")

        print("\n✓ Signaling exchange complete")


def main() -> None:
    """Parse arguments and run client."""
    parser = argparse.ArgumentParser(description="Two-peer signaling relay client")
    parser.add_argument(
        "--url",
        default="ws://localhost:8080",
        help="WebSocket URL of the relay (default: ws://localhost:8080)",
    )
    args = parser.parse_args()

    try:
        asyncio.run(run_client(url=args.url))
    except KeyboardInterrupt:
        print("\nInterrupted")
    except (OSError, websockets.exceptions.WebSocketException, RuntimeError) as e:
        print(f"✗ {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
