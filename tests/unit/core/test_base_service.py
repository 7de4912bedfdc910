"""
Unit tests for core.base_service module.

Tests:
- BaseServiceConfig defaults and validation
- Factory methods (from_yaml, from_dict)
- run_forever() sequential ticks and failure limit
- Graceful shutdown via request_shutdown() and wait()
- start() handle: cancel() and stop() end the loop with no further ticks
- Context manager support
- Metric helpers
"""

import asyncio
from unittest.mock import patch

import pytest
from pydantic import Field, ValidationError

from myceliumchat.core.base_service import BaseService, BaseServiceConfig, ServiceHandle
from myceliumchat.core.metrics import SERVICE_COUNTER, SERVICE_GAUGE, MetricsConfig


class ConcreteServiceConfig(BaseServiceConfig):
    """Test configuration inheriting from BaseServiceConfig."""

    label: str = Field(default="default")


class ConcreteService(BaseService[ConcreteServiceConfig]):
    """Test implementation counting its ticks."""

    SERVICE_NAME = "test_service"
    CONFIG_CLASS = ConcreteServiceConfig

    def __init__(self, config: ConcreteServiceConfig | None = None, *, marker: object = None):
        super().__init__(config=config)
        self.marker = marker
        self.run_count = 0
        self.should_fail = False

    async def run(self) -> None:
        self.run_count += 1
        if self.should_fail:
            raise RuntimeError("Simulated failure")


class TestBaseServiceConfig:
    """BaseServiceConfig defaults and validation."""

    def test_defaults(self) -> None:
        config = BaseServiceConfig()
        assert config.interval == 30.0
        assert config.max_consecutive_failures == 0
        assert config.metrics.enabled is False

    def test_interval_minimum(self) -> None:
        with pytest.raises(ValidationError):
            BaseServiceConfig(interval=0.5)

    def test_negative_failures_rejected(self) -> None:
        with pytest.raises(ValidationError):
            BaseServiceConfig(max_consecutive_failures=-1)


class TestInit:
    """BaseService initialization."""

    def test_default_config(self) -> None:
        service = ConcreteService()
        assert isinstance(service.config, ConcreteServiceConfig)
        assert service.config.interval == 30.0

    def test_explicit_config(self) -> None:
        config = ConcreteServiceConfig(interval=5.0, label="x")
        assert ConcreteService(config).config is config


class TestFactoryMethods:
    """BaseService factory methods."""

    def test_from_dict_forwards_kwargs(self) -> None:
        marker = object()
        service = ConcreteService.from_dict({"interval": 90.0, "label": "a"}, marker=marker)
        assert service.config.interval == 90.0
        assert service.config.label == "a"
        assert service.marker is marker

    def test_from_yaml(self, tmp_path) -> None:
        config_file = tmp_path / "service.yaml"
        config_file.write_text("interval: 120.0\nlabel: yaml\n")
        service = ConcreteService.from_yaml(str(config_file))
        assert service.config.interval == 120.0
        assert service.config.label == "yaml"

    def test_from_yaml_file_not_found(self) -> None:
        with pytest.raises(FileNotFoundError):
            ConcreteService.from_yaml("/nonexistent/path/config.yaml")


class TestShutdown:
    """request_shutdown(), is_running and wait()."""

    def test_request_shutdown(self) -> None:
        service = ConcreteService()
        assert service.is_running is True
        service.request_shutdown()
        assert service.is_running is False

    async def test_wait_returns_true_on_shutdown(self) -> None:
        service = ConcreteService()
        asyncio.get_running_loop().call_later(0.02, service.request_shutdown)
        assert await service.wait(timeout=1.0) is True

    async def test_wait_returns_false_on_timeout(self) -> None:
        assert await ConcreteService().wait(timeout=0.01) is False

    async def test_context_manager(self) -> None:
        service = ConcreteService()
        service.request_shutdown()
        async with service:
            assert service.is_running is True
        assert service.is_running is False


class TestRunForever:
    """run_forever() loop behavior."""

    async def test_runs_until_shutdown(self) -> None:
        service = ConcreteService()
        waits = iter([False, False, True])

        async def fake_wait(timeout: float) -> bool:
            return next(waits)

        with patch.object(service, "wait", fake_wait):
            await service.run_forever()
        assert service.run_count == 3

    async def test_failures_do_not_stop_unlimited_loop(self) -> None:
        service = ConcreteService()
        service.should_fail = True
        waits = iter([False, False, True])

        async def fake_wait(timeout: float) -> bool:
            return next(waits)

        with patch.object(service, "wait", fake_wait):
            await service.run_forever()
        assert service.run_count == 3

    async def test_stops_on_max_failures(self) -> None:
        service = ConcreteService(ConcreteServiceConfig(max_consecutive_failures=2))
        service.should_fail = True

        async def fake_wait(timeout: float) -> bool:
            return False

        with patch.object(service, "wait", fake_wait):
            await service.run_forever()
        assert service.run_count == 2

    async def test_cancelled_error_propagates(self) -> None:
        service = ConcreteService()

        async def cancelled() -> None:
            raise asyncio.CancelledError

        with patch.object(service, "run", cancelled), pytest.raises(asyncio.CancelledError):
            await service.run_forever()


class TestStart:
    """start() returns a caller-owned handle."""

    async def test_stop_ends_loop_without_further_ticks(self) -> None:
        service = ConcreteService(ConcreteServiceConfig(interval=1.0))
        handle = service.start()
        assert isinstance(handle, ServiceHandle)

        await asyncio.sleep(0.05)
        assert service.run_count == 1

        await handle.stop()
        assert handle.done is True
        assert service.is_running is False

        await asyncio.sleep(1.1)
        assert service.run_count == 1

    async def test_cancel_interrupts_in_flight_tick(self) -> None:
        started = asyncio.Event()

        class SlowService(ConcreteService):
            async def run(self) -> None:
                started.set()
                await asyncio.sleep(60)

        service = SlowService()
        handle = service.start()
        await started.wait()

        await asyncio.wait_for(handle.stop(), timeout=1.0)
        assert handle.done is True
        assert service.run_count == 1


class TestMetricHelpers:
    """set_gauge() and inc_counter()."""

    def test_noop_when_disabled(self) -> None:
        service = ConcreteService()
        with patch.object(SERVICE_GAUGE, "labels") as labels:
            service.set_gauge("x", 1)
        labels.assert_not_called()

    def test_records_when_enabled(self) -> None:
        service = ConcreteService(ConcreteServiceConfig(metrics=MetricsConfig(enabled=True)))
        service.set_gauge("peer_count", 7)
        service.inc_counter("polls_total")
        gauge = SERVICE_GAUGE.labels(service="test_service", name="peer_count")
        assert gauge._value.get() == 7
        counter = SERVICE_COUNTER.labels(service="test_service", name="polls_total")
        assert counter._value.get() >= 1
