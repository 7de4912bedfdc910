"""Connection mode selection.

The mode is derived, never stored authoritatively. It is computed fresh
at exactly two checkpoints (login and session restore); a handle that is
already built keeps its address for its whole lifetime.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from myceliumchat.clients.matrix import ProtocolConfig
from myceliumchat.core.logger import Logger
from myceliumchat.models import ConnectionMode, OverlayStatus


if TYPE_CHECKING:
    from .overlay import OverlayMonitor


class ModeConfig(BaseModel):
    """``reuse_window``: reuse a cached overlay status younger than this many seconds."""

    reuse_window: float = Field(default=0.0, ge=0.0, le=60.0)


class ConnectionModeSelector:
    """Chooses between the overlay bridge and the origin server."""

    def __init__(
        self,
        monitor: OverlayMonitor,
        protocol_config: ProtocolConfig | None = None,
        config: ModeConfig | None = None,
    ) -> None:
        self._monitor = monitor
        self._protocol_config = protocol_config or ProtocolConfig()
        self._config = config or ModeConfig()
        self._logger = Logger("mode_selector")

    async def select_mode(self) -> ConnectionMode:
        """``ENHANCED`` iff the freshest overlay status reports the daemon detected."""
        status = self._monitor.last_status
        if status is None or status.age() >= self._config.reuse_window:
            status = await self._monitor.poll()
        mode = self.mode_for(status)
        self._logger.debug("mode_selected", mode=mode.value, detected=status.detected)
        return mode

    @staticmethod
    def mode_for(status: OverlayStatus) -> ConnectionMode:
        return ConnectionMode.ENHANCED if status.detected else ConnectionMode.STANDARD

    def address_for(self, mode: ConnectionMode, server_name: str) -> str:
        """Base address a protocol handle should use for ``mode``."""
        if mode == ConnectionMode.ENHANCED:
            return self._protocol_config.bridge_url.rstrip("/")
        return self._protocol_config.origin_url_template.format(server_name=server_name).rstrip("/")
