"""
Unit tests for core.metrics module.

Tests:
- MetricsConfig defaults and validation
- MetricsServer start/stop lifecycle
- /metrics endpoint response format
- start_metrics_server helper
"""

import socket

import aiohttp
import pytest
from aiohttp import web
from prometheus_client import CONTENT_TYPE_LATEST
from pydantic import ValidationError

from myceliumchat.core.metrics import (
    SERVICE_COUNTER,
    SERVICE_GAUGE,
    MetricsConfig,
    MetricsServer,
    start_metrics_server,
)


def _free_port() -> int:
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


# ============================================================================
# MetricsConfig Tests
# ============================================================================


class TestMetricsConfig:
    """Tests for MetricsConfig Pydantic model."""

    def test_defaults(self) -> None:
        config = MetricsConfig()
        assert config.enabled is False
        assert config.port == 9108
        assert config.host == "127.0.0.1"
        assert config.path == "/metrics"

    def test_port_below_minimum(self) -> None:
        with pytest.raises(ValidationError):
            MetricsConfig(port=1023)

    def test_port_above_maximum(self) -> None:
        with pytest.raises(ValidationError):
            MetricsConfig(port=65536)


# ============================================================================
# MetricsServer Tests
# ============================================================================


class TestMetricsServer:
    """Tests for MetricsServer lifecycle."""

    async def test_start_disabled_is_noop(self) -> None:
        server = MetricsServer(MetricsConfig(enabled=False))
        await server.start()
        assert server._runner is None
        await server.stop()

    async def test_stop_without_start_is_safe(self) -> None:
        await MetricsServer(MetricsConfig(enabled=True)).stop()

    async def test_handle_metrics_response(self) -> None:
        response = await MetricsServer._handle_metrics(None)  # type: ignore[arg-type]
        assert isinstance(response, web.Response)
        assert response.headers["Content-Type"] == CONTENT_TYPE_LATEST

    async def test_endpoint_serves_service_metrics(self) -> None:
        port = _free_port()
        SERVICE_GAUGE.labels(service="metrics_test", name="overlay_peer_count").set(4)
        SERVICE_COUNTER.labels(service="metrics_test", name="polls_total").inc()

        server = await start_metrics_server(
            MetricsConfig(enabled=True, port=port, path="/metrics")
        )
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(f"http://127.0.0.1:{port}/metrics") as response:
                    assert response.status == 200
                    text = await response.text()
        finally:
            await server.stop()

        assert 'myceliumchat_service_gauge{name="overlay_peer_count",service="metrics_test"} 4.0' in text
        assert "myceliumchat_service_counter_total" in text
