"""
Prometheus metrics and the optional ``/metrics`` endpoint.

Metric objects are module-level singletons shared by every
[BaseService][myceliumchat.core.base_service.BaseService]. Services record
values through ``set_gauge()`` / ``inc_counter()``; the loop in
``run_forever()`` records tick durations and failure streaks on its own.

The endpoint is only served by long-running commands (``watch``); one-shot
CLI commands never bind a port.
"""

from __future__ import annotations

from aiohttp import web
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)
from pydantic import BaseModel, Field


class MetricsConfig(BaseModel):
    """Configuration for the Prometheus metrics endpoint."""

    enabled: bool = Field(default=False, description="Serve the /metrics endpoint")
    port: int = Field(default=9108, ge=1024, le=65535, description="Metrics HTTP port")
    host: str = Field(default="127.0.0.1", description="Metrics HTTP bind address")
    path: str = Field(default="/metrics", description="Metrics endpoint path")


# Labels: service (e.g. "overlay_monitor"), name (e.g. "overlay_peer_count")
SERVICE_GAUGE = Gauge(
    "myceliumchat_service_gauge",
    "Point-in-time service values",
    ["service", "name"],
)

SERVICE_COUNTER = Counter(
    "myceliumchat_service_counter",
    "Cumulative service totals",
    ["service", "name"],
)

TICK_DURATION_SECONDS = Histogram(
    "myceliumchat_tick_duration_seconds",
    "Duration of one service loop tick in seconds",
    ["service"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10, 30),
)


class MetricsServer:
    """aiohttp server exposing the Prometheus exposition format."""

    def __init__(self, config: MetricsConfig) -> None:
        self._config = config
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        """Bind the endpoint. No-op when metrics are disabled.

        Raises:
            OSError: If the port is already in use.
        """
        if not self._config.enabled:
            return

        app = web.Application()
        app.router.add_get(self._config.path, self._handle_metrics)

        self._runner = web.AppRunner(app, access_log=None)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._config.host, self._config.port)
        await site.start()

    async def stop(self) -> None:
        """Release the port. Safe to call when never started."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

    @staticmethod
    async def _handle_metrics(_request: web.Request) -> web.Response:
        return web.Response(body=generate_latest(), headers={"Content-Type": CONTENT_TYPE_LATEST})


async def start_metrics_server(config: MetricsConfig | None = None) -> MetricsServer:
    """Create and start a [MetricsServer][myceliumchat.core.metrics.MetricsServer]."""
    server = MetricsServer(config or MetricsConfig())
    await server.start()
    return server
