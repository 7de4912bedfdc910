"""
Pytest configuration and shared fixtures for myceliumchat tests.

Provides:
- In-memory protocol handle fake and a recording handle factory
- Mock gateway and overlay clients with canned results
- A tmp-dir session store and sample session
- In-process aiohttp test servers for the HTTP clients
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from myceliumchat.clients.gateway import (
    AuthPayload,
    CreatedRoom,
    GatewayClient,
    GatewayError,
    GatewayResult,
    JoinedRoom,
    RoomList,
)
from myceliumchat.clients.overlay import OverlayClient, OverlayResponse
from myceliumchat.core.exceptions import TransportError
from myceliumchat.models import (
    ConnectionMode,
    ProtocolEvent,
    RoomRecord,
    Session,
)
from myceliumchat.services.session import SessionStore


# ============================================================================
# Logging Configuration
# ============================================================================


@pytest.fixture(scope="session", autouse=True)
def setup_logging() -> None:
    """Configure logging for tests."""
    logging.basicConfig(level=logging.DEBUG)


# ============================================================================
# Protocol Handle Fake
# ============================================================================


class FakeHandle:
    """In-memory protocol handle.

    Set the ``*_error`` attributes to make the matching call raise.
    ``emit()`` pushes an event to every registered listener, like the
    process-wide sync stream does.
    """

    def __init__(self, base_url: str = "https://matrix.org", session: Session | None = None):
        self.base_url = base_url
        self.session = session
        self.timeline: list[ProtocolEvent] = []
        self.rooms: list[RoomRecord] = []
        self.sent: list[tuple[str, str, str]] = []
        self.joined: list[str] = []
        self.listeners: dict[int, Callable[[ProtocolEvent], None]] = {}
        self._next_id = 0
        self.syncing = False
        self.degraded = False
        self.closed = False
        self.logged_out = False
        self.sync_error: Exception | None = None
        self.join_error: Exception | None = None
        self.rooms_error: Exception | None = None
        self.logout_error: Exception | None = None

    @property
    def is_syncing(self) -> bool:
        return self.syncing

    async def start_sync(self) -> None:
        if self.sync_error is not None:
            raise self.sync_error
        self.syncing = True

    async def stop_sync(self) -> None:
        self.syncing = False

    async def fetch_timeline(self, room_id: str, limit: int = 50) -> list[ProtocolEvent]:
        return [e for e in self.timeline if e.room_id == room_id][:limit]

    async def send_message(self, room_id: str, body: str, msgtype: str = "m.text") -> str:
        self.sent.append((room_id, body, msgtype))
        return f"$sent{len(self.sent)}"

    async def join_room(self, room_id_or_alias: str) -> str:
        if self.join_error is not None:
            raise self.join_error
        self.joined.append(room_id_or_alias)
        return room_id_or_alias

    async def leave_room(self, room_id: str) -> None:
        self.joined = [r for r in self.joined if r != room_id]

    async def joined_rooms(self) -> list[RoomRecord]:
        if self.rooms_error is not None:
            raise self.rooms_error
        return list(self.rooms)

    def add_timeline_listener(
        self, listener: Callable[[ProtocolEvent], None]
    ) -> Callable[[], None]:
        listener_id = self._next_id
        self._next_id += 1
        self.listeners[listener_id] = listener

        def remove() -> None:
            self.listeners.pop(listener_id, None)

        return remove

    def emit(self, event: ProtocolEvent) -> None:
        for listener in list(self.listeners.values()):
            listener(event)

    async def logout(self) -> None:
        if self.logout_error is not None:
            raise self.logout_error
        self.logged_out = True

    async def close(self) -> None:
        self.syncing = False
        self.closed = True
        self.listeners.clear()


class HandleRecorder:
    """Handle factory that keeps every handle it built."""

    def __init__(self) -> None:
        self.handles: list[FakeHandle] = []
        self.sync_error: Exception | None = None

    def __call__(self, base_url: str, session: Session) -> FakeHandle:
        handle = FakeHandle(base_url, session)
        handle.sync_error = self.sync_error
        self.handles.append(handle)
        return handle

    @property
    def last(self) -> FakeHandle:
        return self.handles[-1]


@pytest.fixture
def fake_handle() -> FakeHandle:
    return FakeHandle()


@pytest.fixture
def handle_factory() -> HandleRecorder:
    return HandleRecorder()


@pytest.fixture
def make_event() -> Callable[..., ProtocolEvent]:
    """Build an ``m.room.message`` event; ``id`` becomes ``$<id>``."""

    def _make(
        id: int | str,
        ts: int,
        *,
        room_id: str = "!room:matrix.org",
        body: str | None = None,
        type: str = "m.room.message",
        sender: str = "@alice:matrix.org",
    ) -> ProtocolEvent:
        return ProtocolEvent(
            event_id=f"${id}",
            room_id=room_id,
            type=type,
            sender=sender,
            origin_server_ts=ts,
            content={"msgtype": "m.text", "body": body if body is not None else f"message {id}"},
        )

    return _make


# ============================================================================
# Gateway Mock
# ============================================================================


def _failure(status: int | None, message: str) -> GatewayResult[Any]:
    return GatewayResult.failure(GatewayError(status=status, message=message))


@pytest.fixture
def mock_gateway() -> MagicMock:
    """GatewayClient mock whose calls all succeed by default."""
    gateway = MagicMock(spec=GatewayClient)
    gateway.login = AsyncMock(
        return_value=GatewayResult.success(
            AuthPayload(access_token="tok_abc", user_id="@alice:matrix.org", device_id="DEV1")
        )
    )
    gateway.logout = AsyncMock(return_value=GatewayResult.success(None))
    gateway.create_room = AsyncMock(
        return_value=GatewayResult.success(CreatedRoom(room_id="!new:matrix.org", room_name="new"))
    )
    gateway.join_room = AsyncMock(
        return_value=GatewayResult.success(JoinedRoom(room_id="!joined:matrix.org"))
    )
    gateway.list_rooms = AsyncMock(return_value=GatewayResult.success(RoomList(rooms=[])))
    gateway.health_check = AsyncMock(return_value=True)
    gateway.close = AsyncMock()
    return gateway


@pytest.fixture
def gateway_failure() -> Callable[[int | None, str], GatewayResult[Any]]:
    """Build a failed GatewayResult; ``status=None`` is a network failure."""
    return _failure


# ============================================================================
# Overlay Client Mock
# ============================================================================


class OverlaySwitch:
    """Drives a mocked OverlayClient between up and down between polls."""

    def __init__(self) -> None:
        self.client = MagicMock(spec=OverlayClient)
        self.client.get_admin = AsyncMock()
        self.client.get_peers = AsyncMock(return_value=OverlayResponse(404, None))
        self.client.close = AsyncMock()
        self.down()

    def up(self, peers: int = 3, version: str = "0.5.7") -> None:
        body = {
            "version": version,
            "peers": [{"public_key": f"pk{i}", "endpoint": "tcp://1.2.3.4:9651"} for i in range(peers)],
        }
        self.client.get_admin.side_effect = None
        self.client.get_admin.return_value = OverlayResponse(200, body)

    def down(self, message: str = "Connection refused") -> None:
        self.client.get_admin.side_effect = TransportError(message)


@pytest.fixture
def overlay() -> OverlaySwitch:
    return OverlaySwitch()


# ============================================================================
# Session Fixtures
# ============================================================================


@pytest.fixture
def sample_session() -> Session:
    return Session(
        user_id="@alice:matrix.org",
        access_token="tok_abc",
        server_name="matrix.org",
        connection_mode=ConnectionMode.ENHANCED,
        device_id="DEV1",
    )


@pytest.fixture
def store(tmp_path: Any) -> SessionStore:
    return SessionStore(tmp_path / "state")


# ============================================================================
# HTTP Test Servers
# ============================================================================


@pytest.fixture
async def serve() -> AsyncIterator[Callable[[web.Application], Awaitable[str]]]:
    """Start an aiohttp app in-process and return its base URL."""
    servers: list[TestServer] = []

    async def _serve(app: web.Application) -> str:
        server = TestServer(app)
        await server.start_server()
        servers.append(server)
        return f"http://{server.host}:{server.port}"

    yield _serve

    for server in servers:
        await server.close()
