"""Overlay daemon health monitor.

[OverlayMonitor][myceliumchat.services.overlay.OverlayMonitor] polls the
overlay daemon, classifies the answer into a complete
[OverlayStatus][myceliumchat.models.overlay.OverlayStatus] and caches the
last one. A poll never raises for network or HTTP failures: every outcome
is a status value.

Classification:

- Admin endpoint 2xx: detected and connected. Version from the body.
  Peers from the body's ``peers`` list when present, otherwise from the
  peers endpoint, where a 404 or any failure means "no peers".
- Admin endpoint non-2xx: not detected, ``error="HTTP <status>"``.
- Transport failure: not detected, ``error=<message>``.

Examples:
    ```python
    monitor = OverlayMonitor(OverlayConfig(api_url="http://localhost:8989"))
    status = await monitor.poll()
    handle = monitor.start()       # background loop every 30 s
    ...
    await handle.stop()            # no tick after this returns
    ```
"""

from __future__ import annotations

import asyncio
from typing import Any, ClassVar

from pydantic import Field

from myceliumchat.clients.overlay import OverlayClient
from myceliumchat.core.base_service import BaseService, BaseServiceConfig
from myceliumchat.core.exceptions import TransportError
from myceliumchat.models import NetworkHealth, OverlayPeer, OverlayStatus


class OverlayConfig(BaseServiceConfig):
    """Overlay monitor settings (``interval`` is inherited, default 30 s)."""

    api_url: str = Field(default="http://localhost:8989", description="Overlay daemon API root")
    admin_timeout: float = Field(default=2.0, gt=0.0, le=30.0)
    peers_timeout: float = Field(default=3.0, gt=0.0, le=30.0)


class OverlayMonitor(BaseService[OverlayConfig]):
    """Polls the overlay daemon and caches the last known status."""

    SERVICE_NAME: ClassVar[str] = "overlay_monitor"
    CONFIG_CLASS: ClassVar[type[OverlayConfig]] = OverlayConfig

    def __init__(
        self,
        config: OverlayConfig | None = None,
        *,
        client: OverlayClient | None = None,
    ) -> None:
        super().__init__(config=config or OverlayConfig())
        self._client = client or OverlayClient(
            self._config.api_url,
            admin_timeout=self._config.admin_timeout,
            peers_timeout=self._config.peers_timeout,
        )
        self._last_status: OverlayStatus | None = None
        self._inflight: asyncio.Task[OverlayStatus] | None = None

    @property
    def last_status(self) -> OverlayStatus | None:
        """Status of the most recent completed poll, ``None`` before the first."""
        return self._last_status

    def current_health(self) -> NetworkHealth:
        """Health of the cached status; ``offline`` before the first poll."""
        if self._last_status is None:
            return NetworkHealth.OFFLINE
        return self._last_status.health

    async def run(self) -> None:
        await self.poll()

    async def poll(self) -> OverlayStatus:
        """Probe the daemon and replace the cached status.

        Callers arriving while a poll is in flight share its result instead
        of issuing a second request.
        """
        inflight = self._inflight
        if inflight is not None and not inflight.done():
            try:
                return await asyncio.shield(inflight)
            except asyncio.CancelledError:
                current = asyncio.current_task()
                if current is not None and current.cancelling():
                    raise
                # the shared poll was cancelled by its owner, run our own

        task = asyncio.create_task(self._poll_once(), name="overlay-poll")
        self._inflight = task
        try:
            return await task
        finally:
            if self._inflight is task:
                self._inflight = None

    async def _poll_once(self) -> OverlayStatus:
        status = await self._query_daemon()
        previous = self._last_status
        self._last_status = status

        self.inc_counter("polls_total")
        self.set_gauge("overlay_detected", 1 if status.detected else 0)
        self.set_gauge("overlay_peer_count", status.peer_count)

        if previous is None or previous.detected != status.detected:
            self._logger.info(
                "overlay_detection_changed",
                detected=status.detected,
                peers=status.peer_count,
                error=status.error or "",
            )
        self._logger.debug(
            "overlay_polled",
            detected=status.detected,
            peers=status.peer_count,
            health=status.health.value,
        )
        return status

    async def _query_daemon(self) -> OverlayStatus:
        try:
            admin = await self._client.get_admin()
        except TransportError as e:
            return OverlayStatus.offline(str(e))

        if not admin.ok:
            return OverlayStatus.offline(f"HTTP {admin.status}")

        body: dict[str, Any] = admin.body if isinstance(admin.body, dict) else {}
        version = body.get("version")
        raw_peers = body.get("peers")
        if isinstance(raw_peers, list):
            peers = _parse_peers(raw_peers)
        else:
            peers = await self._fetch_peers()
        return OverlayStatus.online(
            version=version if isinstance(version, str) else None,
            peers=peers,
        )

    async def _fetch_peers(self) -> tuple[OverlayPeer, ...]:
        try:
            response = await self._client.get_peers()
        except TransportError as e:
            self._logger.debug("overlay_peers_unavailable", error=str(e))
            return ()
        if response.status == 404:
            return ()
        if not response.ok:
            self._logger.debug("overlay_peers_unavailable", status=response.status)
            return ()
        body = response.body
        if isinstance(body, dict):
            body = body.get("peers")
        return _parse_peers(body) if isinstance(body, list) else ()

    async def close(self) -> None:
        await self._client.close()

    async def __aexit__(self, *exc_info: Any) -> None:
        await super().__aexit__(*exc_info)
        await self.close()


def _parse_peers(items: list[Any]) -> tuple[OverlayPeer, ...]:
    return tuple(OverlayPeer.from_dict(item) for item in items)
