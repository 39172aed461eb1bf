"""Signaling relay server.

Main server implementation that:
1. Loads configuration
2. Builds the registry, SDP sanitizer, router and lifecycle manager
3. Starts the WebSocket transport
4. Provides HTTP health check endpoints
5. Runs until interrupted
"""

import argparse
import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

from aiohttp.web import Application, AppRunner, TCPSite

from src.signaling.config import RelayConfig
from src.signaling.health import setup_health_routes
from src.signaling.metrics import RelayMetrics
from src.signaling.registry import ConnectionRegistry
from src.signaling.router import MessageRouter
from src.signaling.sdp import SdpSanitizer
from src.signaling.session import ConnectionLifecycle
from src.signaling.transport.websocket_transport import WebSocketTransport

logger = logging.getLogger(__name__)


@dataclass
class RelayServer:
    """Wired relay components sharing one registry and one set of counters."""

    config: RelayConfig
    registry: ConnectionRegistry
    metrics: RelayMetrics
    router: MessageRouter
    lifecycle: ConnectionLifecycle
    transport: WebSocketTransport


def build_relay(config: RelayConfig) -> RelayServer:
    """Build relay components from configuration.

    Args:
        config: Relay configuration

    Returns:
        RelayServer with a transport that has not been started yet
    """
    registry = ConnectionRegistry()
    metrics = RelayMetrics()
    sanitizer = SdpSanitizer(
        allowed_kinds=config.sdp.allowed_media_kinds,
        denied_extensions=config.sdp.denied_extensions,
    )
    router = MessageRouter(
        registry,
        sanitizer,
        metrics=metrics,
        error_replies=config.protocol.error_replies,
    )
    lifecycle = ConnectionLifecycle(
        registry,
        router,
        ice_servers=config.ice_servers,
        metrics=metrics,
        error_replies=config.protocol.error_replies,
    )

    ws_config = config.transport.websocket
    transport = WebSocketTransport(
        lifecycle.serve,
        host=ws_config.host,
        port=ws_config.port,
        max_size=ws_config.max_size,
        static_page=ws_config.static_page,
        on_send_failure=metrics.record_send_failure,
    )

    return RelayServer(
        config=config,
        registry=registry,
        metrics=metrics,
        router=router,
        lifecycle=lifecycle,
        transport=transport,
    )


async def start_server(config_path: Path) -> None:
    """Start the relay and run until cancelled.

    Args:
        config_path: Path to YAML config file

    Raises:
        OSError: If a port cannot be bound
    """
    config = RelayConfig.from_yaml_with_defaults(config_path)

    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.info("Loaded configuration", extra={"config_path": str(config_path)})

    relay = build_relay(config)

    await relay.transport.start()

    runner: AppRunner | None = None
    if config.health.enabled:
        health_app = Application()
        setup_health_routes(health_app, relay.registry, relay.metrics, relay.transport)

        runner = AppRunner(health_app)
        await runner.setup()
        site = TCPSite(runner, config.health.host, config.health_port)
        await site.start()
        logger.info("Health check server started", extra={"port": config.health_port})

    try:
        logger.info(
            "Signaling relay ready",
            extra={
                "port": relay.transport.port,
                "error_replies": config.protocol.error_replies,
            },
        )
        await asyncio.Future()

    except asyncio.CancelledError:
        logger.info("Server loop cancelled")
    finally:
        logger.info("Shutting down signaling relay")

        try:
            await asyncio.wait_for(
                relay.transport.stop(), timeout=config.graceful_shutdown_timeout_s
            )
        except TimeoutError:
            logger.warning(
                "Timed out waiting for connections to close",
                extra={"connections": len(relay.registry)},
            )

        if runner is not None:
            await runner.cleanup()
            logger.info("Health check server stopped")

        logger.info("Signaling relay stopped", extra={"metrics": relay.metrics.snapshot()})


def main() -> None:
    """Entry point for the signaling relay."""
    parser = argparse.ArgumentParser(description="WebRTC signaling relay")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path(__file__).parent.parent.parent / "configs" / "relay.yaml",
        help="Path to relay config YAML file",
    )
    args = parser.parse_args()

    try:
        asyncio.run(start_server(args.config))
    except KeyboardInterrupt:
        logger.info("Signaling relay interrupted")


if __name__ == "__main__":
    main()
