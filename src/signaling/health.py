"""Health check endpoints for the signaling relay.

Provides HTTP endpoints for load balancers, monitoring systems and
orchestration tools (e.g., Docker healthcheck, Kubernetes liveness probe).
"""

import logging
import time
from typing import Any

from aiohttp import web

from src.signaling.metrics import RelayMetrics
from src.signaling.registry import ConnectionRegistry

logger = logging.getLogger(__name__)


class HealthCheckHandler:
    """Health check handler for the relay.

    Provides /health, /liveness and /metrics/summary.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        metrics: RelayMetrics,
        transport: Any = None,
    ) -> None:
        """Initialize health check handler.

        Args:
            registry: Live connection registry
            metrics: Relay counters
            transport: Transport instance (optional, checked for is_running)
        """
        self.registry = registry
        self.metrics = metrics
        self.transport = transport
        self.start_time = time.time()

    async def health_check(self, request: web.Request) -> web.Response:
        """Health check endpoint.

        Returns:
            200 OK: Transport is accepting connections
            503 Service Unavailable: Transport is not running

        Response format:
        {
            "status": "healthy" | "unhealthy",
            "uptime_seconds": float,
            "transport": bool,
            "connections": int
        }
        """
        transport_ok = self.transport is None or bool(self.transport.is_running)
        status_code = 200 if transport_ok else 503

        response_data = {
            "status": "healthy" if transport_ok else "unhealthy",
            "uptime_seconds": time.time() - self.start_time,
            "transport": transport_ok,
            "connections": len(self.registry),
        }

        logger.debug("Health check performed", extra={"status": response_data["status"]})

        return web.json_response(response_data, status=status_code)

    async def liveness_check(self, request: web.Request) -> web.Response:
        """Liveness check endpoint.

        Returns OK if the process is running, even if the transport is down.
        """
        return web.json_response(
            {
                "status": "alive",
                "uptime_seconds": time.time() - self.start_time,
            },
            status=200,
        )

    async def metrics_summary(self, request: web.Request) -> web.Response:
        """Relay counters in JSON format for dashboards and debugging."""
        return web.json_response(
            {
                "status": "ok",
                "connections": len(self.registry),
                "metrics": self.metrics.snapshot(),
            },
            status=200,
        )


def setup_health_routes(
    app: web.Application,
    registry: ConnectionRegistry,
    metrics: RelayMetrics,
    transport: Any = None,
) -> None:
    """Set up health check routes on application.

    Args:
        app: aiohttp Application instance
        registry: Live connection registry
        metrics: Relay counters
        transport: Transport instance (optional)
    """
    handler = HealthCheckHandler(registry=registry, metrics=metrics, transport=transport)

    app.router.add_get("/health", handler.health_check)
    app.router.add_get("/liveness", handler.liveness_check)
    app.router.add_get("/metrics/summary", handler.metrics_summary)

    logger.info("Health check endpoints configured: /health, /liveness, /metrics/summary")
