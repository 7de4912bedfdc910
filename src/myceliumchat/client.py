"""Composition root wiring the session core together.

[ChatClient][myceliumchat.client.ChatClient] owns exactly one of each
collaborator and passes them to each other explicitly; there are no
module-level client singletons. Every collaborator can be injected, which is
how the tests substitute fakes.

Examples:
    ```python
    config = ClientConfig.from_yaml("config/client.yaml")
    async with ChatClient(config) as client:
        if await client.session.restore() is None:
            await client.session.login("alice", "secret")
        for room in await client.rooms.refresh():
            print(room.display_name)
    ```
"""

from __future__ import annotations

from pathlib import Path
from types import TracebackType
from typing import Any, Self

from pydantic import BaseModel, Field, ValidationError

from myceliumchat.clients.gateway import GatewayClient, GatewayConfig
from myceliumchat.clients.matrix import MatrixHandle, ProtocolConfig
from myceliumchat.clients.protocol import HandleFactory
from myceliumchat.core.exceptions import ConfigurationError, SessionError
from myceliumchat.core.logger import Logger
from myceliumchat.core.yaml import load_yaml
from myceliumchat.services.mode import ConnectionModeSelector, ModeConfig
from myceliumchat.services.overlay import OverlayConfig, OverlayMonitor
from myceliumchat.services.rooms import RoomRegistry
from myceliumchat.services.session import SessionManager, SessionStore, StorageConfig
from myceliumchat.services.timeline import TimelineManager, TimelineSynchronizer


class ClientConfig(BaseModel):
    """Top-level configuration, one section per collaborator."""

    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    overlay: OverlayConfig = Field(default_factory=OverlayConfig)
    protocol: ProtocolConfig = Field(default_factory=ProtocolConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    mode: ModeConfig = Field(default_factory=ModeConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ClientConfig:
        """Validate ``data``.

        Raises:
            ConfigurationError: If any value is invalid.
        """
        try:
            return cls(**data)
        except ValidationError as e:
            raise ConfigurationError(f"invalid configuration: {e}") from e

    @classmethod
    def from_yaml(cls, config_path: str | Path) -> ClientConfig:
        """Load and validate a YAML file. A missing file yields the defaults."""
        path = Path(config_path)
        if not path.exists():
            return cls()
        return cls.from_dict(load_yaml(path))


class ChatClient:
    """One gateway, one overlay monitor, one session, one room registry."""

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        gateway: GatewayClient | None = None,
        monitor: OverlayMonitor | None = None,
        handle_factory: HandleFactory | None = None,
        store: SessionStore | None = None,
    ) -> None:
        self._config = config or ClientConfig()
        self._logger = Logger("client")

        self.gateway = gateway or GatewayClient(self._config.gateway)
        self.monitor = monitor or OverlayMonitor(self._config.overlay)
        self.selector = ConnectionModeSelector(
            self.monitor, self._config.protocol, self._config.mode
        )
        self.session = SessionManager(
            self.gateway,
            self.selector,
            handle_factory or MatrixHandle.factory(self._config.protocol),
            store or SessionStore(self._config.storage.state_dir),
        )
        self.rooms = RoomRegistry(
            self.gateway,
            lambda: self.session.handle,
            lambda: self.session.session.access_token if self.session.session else None,
        )
        self._timelines: TimelineManager | None = None

    @property
    def config(self) -> ClientConfig:
        return self._config

    def select_room(self, room_id: str) -> TimelineSynchronizer:
        """Open ``room_id``'s timeline, deselecting the previously open room.

        Raises:
            SessionError: If there is no protocol handle (not signed in).
        """
        handle = self.session.handle
        if handle is None:
            raise SessionError("not signed in")
        if self._timelines is None or self._timelines.handle is not handle:
            self.close_room()
            self._timelines = TimelineManager(handle, self._config.protocol.timeline_limit)
        return self._timelines.select(room_id)

    def close_room(self) -> None:
        if self._timelines is not None:
            self._timelines.close()
            self._timelines = None

    async def close(self) -> None:
        """Release every network resource; the stored session is kept."""
        self.close_room()
        await self.session.close()
        await self.monitor.close()
        await self.gateway.close()
        self._logger.debug("client_closed")

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()
