"""
Abstract base class for periodic background services.

``BaseService[ConfigT]`` provides the lifecycle shared by every loop the
client runs on its own schedule: structured logging via
[Logger][myceliumchat.core.logger.Logger], interval-based cycling with
[run_forever()][myceliumchat.core.base_service.BaseService.run_forever],
interruptible waits, consecutive failure limits and Prometheus counters.

Loops are never driven by ambient timers. The owner calls
[start()][myceliumchat.core.base_service.BaseService.start] and receives a
[ServiceHandle][myceliumchat.core.base_service.ServiceHandle]; cancelling
the handle stops the loop at once, with no tick after cancellation.

See Also:
    [OverlayMonitor][myceliumchat.services.overlay.OverlayMonitor]: The
        overlay daemon poller built on this class.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from abc import ABC, abstractmethod
from types import TracebackType
from typing import Any, ClassVar, Generic, Self, TypeVar, cast

from pydantic import BaseModel, Field

from .logger import Logger
from .metrics import SERVICE_COUNTER, SERVICE_GAUGE, TICK_DURATION_SECONDS, MetricsConfig
from .yaml import load_yaml


class BaseServiceConfig(BaseModel):
    """Configuration shared by all services that run in a loop."""

    interval: float = Field(
        default=30.0,
        ge=1.0,
        description="Seconds between the end of one tick and the start of the next",
    )
    max_consecutive_failures: int = Field(
        default=0,
        ge=0,
        description="Stop after this many consecutive errors (0 = unlimited)",
    )
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)


ConfigT = TypeVar("ConfigT", bound=BaseServiceConfig)


class ServiceHandle:
    """Caller-owned handle on a running service loop.

    Returned by [BaseService.start()][myceliumchat.core.base_service.BaseService.start].
    The loop runs until [cancel()][myceliumchat.core.base_service.ServiceHandle.cancel]
    or [stop()][myceliumchat.core.base_service.ServiceHandle.stop] is called,
    or until the failure limit is reached.
    """

    def __init__(self, service: BaseService[Any], task: asyncio.Task[None]) -> None:
        self._service = service
        self._task = task

    @property
    def done(self) -> bool:
        return self._task.done()

    def cancel(self) -> None:
        """Stop the loop immediately, including any wait or tick in progress."""
        self._service.request_shutdown()
        self._task.cancel()

    async def stop(self) -> None:
        """Cancel the loop and wait until its task has fully unwound."""
        self.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task


class BaseService(ABC, Generic[ConfigT]):
    """Abstract base class for periodic services.

    Subclasses set ``SERVICE_NAME`` and ``CONFIG_CLASS`` and implement
    [run()][myceliumchat.core.base_service.BaseService.run], one bounded
    unit of work per tick.

    Attributes:
        SERVICE_NAME: Identifier used in logs and metric labels.
        CONFIG_CLASS: Pydantic model used by the factory methods.
    """

    SERVICE_NAME: ClassVar[str]
    CONFIG_CLASS: ClassVar[type[BaseModel]]

    def __init__(self, config: ConfigT | None = None) -> None:
        self._config: ConfigT = (
            config if config is not None else cast("ConfigT", self.CONFIG_CLASS())
        )
        self._logger = Logger(self.SERVICE_NAME)
        self._shutdown_event = asyncio.Event()

    @property
    def config(self) -> ConfigT:
        return self._config

    @abstractmethod
    async def run(self) -> None:
        """Execute one tick of the service's work."""
        ...

    def request_shutdown(self) -> None:
        """Ask the loop to exit at its next wait."""
        self._shutdown_event.set()

    @property
    def is_running(self) -> bool:
        return not self._shutdown_event.is_set()

    async def wait(self, timeout: float) -> bool:  # noqa: ASYNC109
        """Sleep for ``timeout`` seconds unless shutdown is requested first.

        Returns:
            ``True`` if shutdown was requested during the wait.
        """
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=timeout)
            return True
        except TimeoutError:
            return False

    async def run_forever(self) -> None:
        """Call [run()][myceliumchat.core.base_service.BaseService.run] every ``interval`` seconds.

        Ticks are strictly sequential: the next wait only starts after the
        current tick returns, so a slow tick delays the schedule instead of
        overlapping with the next one. ``CancelledError``,
        ``KeyboardInterrupt`` and ``SystemExit`` always propagate.
        """
        interval = self._config.interval
        max_consecutive_failures = self._config.max_consecutive_failures

        self._logger.info(
            "run_forever_started",
            interval=interval,
            max_consecutive_failures=max_consecutive_failures,
        )

        consecutive_failures = 0

        while self.is_running:
            tick_start = time.monotonic()

            try:
                await self.run()

                if self._config.metrics.enabled:
                    TICK_DURATION_SECONDS.labels(service=self.SERVICE_NAME).observe(
                        time.monotonic() - tick_start
                    )
                self.inc_counter("ticks_success")
                self.set_gauge("consecutive_failures", 0)
                consecutive_failures = 0

            except (asyncio.CancelledError, KeyboardInterrupt, SystemExit):
                raise

            except Exception as e:  # Intentionally broad: top-level error boundary for the loop
                consecutive_failures += 1
                self.inc_counter("ticks_failed")
                self.inc_counter(f"errors_{type(e).__name__}")
                self.set_gauge("consecutive_failures", consecutive_failures)
                self._logger.error(
                    "run_tick_error",
                    error=str(e),
                    consecutive_failures=consecutive_failures,
                )
                if 0 < max_consecutive_failures <= consecutive_failures:
                    self._logger.critical(
                        "max_consecutive_failures_reached",
                        failures=consecutive_failures,
                        limit=max_consecutive_failures,
                    )
                    break

            if await self.wait(interval):
                break

        self._logger.info("run_forever_stopped")

    def start(self) -> ServiceHandle:
        """Schedule [run_forever()][myceliumchat.core.base_service.BaseService.run_forever] as a task.

        Must be called from within a running event loop.
        """
        self._shutdown_event.clear()
        task = asyncio.create_task(self.run_forever(), name=f"{self.SERVICE_NAME}-loop")
        return ServiceHandle(self, task)

    # -------------------------------------------------------------------------
    # Factory Methods
    # -------------------------------------------------------------------------

    @classmethod
    def from_yaml(cls, config_path: str, **kwargs: Any) -> Self:
        """Create an instance from a YAML configuration file."""
        return cls.from_dict(load_yaml(config_path), **kwargs)

    @classmethod
    def from_dict(cls, data: dict[str, Any], **kwargs: Any) -> Self:
        """Create an instance from a configuration dictionary.

        ``kwargs`` are forwarded to the constructor (injected collaborators).
        """
        config = cast("ConfigT", cls.CONFIG_CLASS(**data))
        return cls(config=config, **kwargs)

    # -------------------------------------------------------------------------
    # Context Manager
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> Self:
        self._shutdown_event.clear()
        self._logger.info("service_started")
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        self._shutdown_event.set()
        self._logger.info("service_stopped")

    # -------------------------------------------------------------------------
    # Custom Metrics
    # -------------------------------------------------------------------------

    def set_gauge(self, name: str, value: float) -> None:
        """Set a named gauge for this service. No-op when metrics are disabled."""
        if not self._config.metrics.enabled:
            return
        SERVICE_GAUGE.labels(service=self.SERVICE_NAME, name=name).set(value)

    def inc_counter(self, name: str, value: float = 1) -> None:
        """Increment a named counter for this service. No-op when metrics are disabled."""
        if not self._config.metrics.enabled:
            return
        SERVICE_COUNTER.labels(service=self.SERVICE_NAME, name=name).inc(value)
