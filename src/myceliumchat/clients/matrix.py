"""Matrix client-server API implementation of the protocol handle.

[MatrixHandle][myceliumchat.clients.matrix.MatrixHandle] speaks the v3
client-server API over aiohttp with a gateway-issued access token. It is
addressed either at the overlay bridge or at the origin homeserver; the
address is fixed when the handle is built.

Live delivery is a background long-poll ``/sync`` task. Every timeline
event of every joined room is passed to the registered listeners in the
order the server returned it. Per-room filtering is the listener's job.

See Also:
    [ProtocolHandle][myceliumchat.clients.protocol.ProtocolHandle]: The
        structural contract this class satisfies.
    [SessionManager][myceliumchat.services.session.SessionManager]: Builds
        and owns handles through a factory.
"""

from __future__ import annotations

import asyncio
import contextlib
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import aiohttp
from pydantic import BaseModel, Field

from myceliumchat.core.exceptions import AuthError, ProtocolClientError, TransportError
from myceliumchat.core.logger import Logger
from myceliumchat.models import DEFAULT_MSGTYPE, PROTOCOL, ProtocolEvent, RoomRecord
from myceliumchat.utils.http import client_timeout, read_bounded_json


if TYPE_CHECKING:
    from myceliumchat.models import Session

    from .protocol import TimelineListener


CLIENT_API = "/_matrix/client/v3"


class ProtocolConfig(BaseModel):
    """Protocol handle settings.

    ``bridge_url`` is used in enhanced mode, ``origin_url_template``
    (formatted with ``server_name``) in standard mode.
    """

    bridge_url: str = Field(default="http://localhost:8080")
    origin_url_template: str = Field(default="https://{server_name}")
    request_timeout: float = Field(default=30.0, gt=0.0, le=300.0)
    sync_timeout_ms: int = Field(default=30_000, ge=0, le=120_000)
    retry_delay: float = Field(default=5.0, ge=0.1, le=300.0)
    timeline_limit: int = Field(default=50, ge=1, le=1000)
    max_response_size: int = Field(default=16_777_216, ge=1024)


@dataclass(slots=True)
class _RoomState:
    name: str = ""
    topic: str | None = None
    member_count: int = 0


class MatrixHandle:
    """Protocol handle backed by the Matrix client-server API."""

    def __init__(
        self,
        base_url: str,
        session: Session,
        config: ProtocolConfig | None = None,
        *,
        http: aiohttp.ClientSession | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._session = session
        self._config = config or ProtocolConfig()
        self._http = http
        self._owns_http = http is None
        self._logger = Logger("matrix").bind(base_url=self._base_url)
        self._listeners: dict[int, TimelineListener] = {}
        self._next_listener_id = 0
        self._rooms: dict[str, _RoomState] = {}
        self._since: str | None = None
        self._sync_task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()
        self._degraded = False

    @classmethod
    def factory(cls, config: ProtocolConfig | None = None) -> Callable[[str, Session], MatrixHandle]:
        """Return a [HandleFactory][myceliumchat.clients.protocol.HandleFactory] bound to ``config``."""

        def build(base_url: str, session: Session) -> MatrixHandle:
            return cls(base_url, session, config)

        return build

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def is_syncing(self) -> bool:
        return self._sync_task is not None and not self._sync_task.done()

    @property
    def degraded(self) -> bool:
        """True once live sync stopped without being asked to (token rejected or loop crashed)."""
        return self._degraded

    # -------------------------------------------------------------------------
    # HTTP
    # -------------------------------------------------------------------------

    def _get_http(self) -> aiohttp.ClientSession:
        if self._http is None or self._http.closed:
            self._http = aiohttp.ClientSession()
            self._owns_http = True
        return self._http

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        body: dict[str, Any] | None = None,
        timeout: float | None = None,  # noqa: ASYNC109
    ) -> dict[str, Any]:
        """Perform one authenticated API call and return its JSON object.

        Raises:
            TransportError: On timeout or connection failure.
            AuthError: On HTTP 401, or 403 with ``M_UNKNOWN_TOKEN``/``M_MISSING_TOKEN``.
            ProtocolClientError: On any other non-2xx answer.
        """
        url = f"{self._base_url}{CLIENT_API}{path}"
        headers = {
            "Authorization": f"Bearer {self._session.access_token}",
            "Accept": "application/json",
        }
        try:
            async with self._get_http().request(
                method,
                url,
                params=params,
                json=body,
                headers=headers,
                timeout=client_timeout(timeout or self._config.request_timeout),
            ) as response:
                status = response.status
                try:
                    data = await read_bounded_json(response, self._config.max_response_size)
                except ValueError:
                    data = None
        except TimeoutError as e:
            raise TransportError(f"{method} {path} timed out") from e
        except aiohttp.ClientError as e:
            raise TransportError(str(e) or type(e).__name__) from e

        payload = data if isinstance(data, dict) else {}
        if 200 <= status < 300:
            return payload

        errcode = payload.get("errcode")
        message = str(payload.get("error") or f"HTTP {status}")
        if status == 401 or (status == 403 and errcode in ("M_UNKNOWN_TOKEN", "M_MISSING_TOKEN")):
            raise AuthError(message, status=status)
        raise ProtocolClientError(message, status=status, errcode=errcode)

    # -------------------------------------------------------------------------
    # Sync
    # -------------------------------------------------------------------------

    async def start_sync(self) -> None:
        if self.is_syncing:
            return
        initial = await self._request("GET", "/sync", params={"timeout": "0"})
        self._apply_sync(initial, dispatch=False)
        self._stop_event.clear()
        self._degraded = False
        self._sync_task = asyncio.create_task(self._sync_loop(), name="matrix-sync")
        self._sync_task.add_done_callback(self._on_sync_done)
        self._logger.info("sync_started", rooms=len(self._rooms))

    async def stop_sync(self) -> None:
        self._stop_event.set()
        task, self._sync_task = self._sync_task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _sync_loop(self) -> None:
        long_poll = self._config.sync_timeout_ms
        request_timeout = long_poll / 1000 + self._config.request_timeout
        while not self._stop_event.is_set():
            params = {"timeout": str(long_poll)}
            if self._since:
                params["since"] = self._since
            try:
                response = await self._request("GET", "/sync", params=params, timeout=request_timeout)
            except AuthError as e:
                self._degraded = True
                self._logger.error("sync_auth_failed", error=str(e))
                return
            except (TransportError, ProtocolClientError) as e:
                self._logger.warning("sync_failed", error=str(e), retry_in=self._config.retry_delay)
                with contextlib.suppress(TimeoutError):
                    await asyncio.wait_for(self._stop_event.wait(), self._config.retry_delay)
                continue
            self._apply_sync(response, dispatch=True)

    def _on_sync_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled() or self._stop_event.is_set():
            return
        self._degraded = True
        error = task.exception()
        if error is not None:
            self._logger.error("sync_loop_crashed", error=str(error), error_type=type(error).__name__)
        else:
            self._logger.warning("sync_loop_ended")

    def _apply_sync(self, response: dict[str, Any], *, dispatch: bool) -> None:
        next_batch = response.get("next_batch")
        if isinstance(next_batch, str):
            self._since = next_batch

        rooms = response.get("rooms")
        if not isinstance(rooms, dict):
            return

        left = rooms.get("leave")
        if isinstance(left, dict):
            for room_id in left:
                self._rooms.pop(room_id, None)

        joined = rooms.get("join")
        if not isinstance(joined, dict):
            return
        for room_id, room in joined.items():
            if not isinstance(room, dict):
                continue
            state = self._rooms.setdefault(room_id, _RoomState())
            summary = room.get("summary")
            if isinstance(summary, dict):
                count = summary.get("m.joined_member_count")
                if isinstance(count, int) and count >= 0:
                    state.member_count = count

            state_events = _events(room.get("state"))
            timeline_events = _events(room.get("timeline"))
            for raw in (*state_events, *timeline_events):
                _update_room_state(state, raw)

            if dispatch:
                for raw in timeline_events:
                    event = self._parse_event(raw, room_id)
                    if event is not None:
                        self._dispatch(event)

    def _parse_event(self, raw: dict[str, Any], room_id: str) -> ProtocolEvent | None:
        try:
            return ProtocolEvent.from_dict(raw, room_id)
        except (TypeError, ValueError) as e:
            self._logger.warning("event_skipped", room_id=room_id, error=str(e))
            return None

    def add_timeline_listener(self, listener: TimelineListener) -> Callable[[], None]:
        listener_id = self._next_listener_id
        self._next_listener_id += 1
        self._listeners[listener_id] = listener

        def remove() -> None:
            self._listeners.pop(listener_id, None)

        return remove

    def _dispatch(self, event: ProtocolEvent) -> None:
        for listener in list(self._listeners.values()):
            try:
                listener(event)
            except Exception:  # Intentionally broad: one faulty listener must not stop delivery
                self._logger.exception("timeline_listener_failed", event_id=event.event_id)

    # -------------------------------------------------------------------------
    # Rooms and messages
    # -------------------------------------------------------------------------

    async def fetch_timeline(self, room_id: str, limit: int | None = None) -> list[ProtocolEvent]:
        response = await self._request(
            "GET",
            f"/rooms/{quote(room_id, safe='')}/messages",
            params={"dir": "b", "limit": str(limit or self._config.timeline_limit)},
        )
        events = []
        for raw in response.get("chunk") or []:
            if isinstance(raw, dict) and (event := self._parse_event(raw, room_id)):
                events.append(event)
        return events

    async def send_message(self, room_id: str, body: str, msgtype: str = DEFAULT_MSGTYPE) -> str:
        txn_id = uuid.uuid4().hex
        response = await self._request(
            "PUT",
            f"/rooms/{quote(room_id, safe='')}/send/m.room.message/{txn_id}",
            body={"msgtype": msgtype, "body": body},
        )
        return str(response.get("event_id", ""))

    async def join_room(self, room_id_or_alias: str) -> str:
        response = await self._request("POST", f"/join/{quote(room_id_or_alias, safe='')}", body={})
        room_id = response.get("room_id")
        if not isinstance(room_id, str) or not room_id:
            room_id = room_id_or_alias
        self._rooms.setdefault(room_id, _RoomState())
        return room_id

    async def leave_room(self, room_id: str) -> None:
        await self._request("POST", f"/rooms/{quote(room_id, safe='')}/leave", body={})
        self._rooms.pop(room_id, None)

    async def joined_rooms(self) -> list[RoomRecord]:
        if not self._rooms and self._since is None:
            response = await self._request("GET", "/joined_rooms")
            for room_id in response.get("joined_rooms") or []:
                if isinstance(room_id, str) and room_id:
                    self._rooms.setdefault(room_id, _RoomState())
        return [
            RoomRecord(
                room_id=room_id,
                display_name=state.name,
                topic=state.topic,
                member_count=state.member_count,
                sources=PROTOCOL,
            )
            for room_id, state in self._rooms.items()
        ]

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def logout(self) -> None:
        await self._request("POST", "/logout", body={})

    async def close(self) -> None:
        await self.stop_sync()
        self._listeners.clear()
        if self._owns_http and self._http is not None and not self._http.closed:
            await self._http.close()
        self._http = None


def _events(section: Any) -> list[dict[str, Any]]:
    if not isinstance(section, dict):
        return []
    events = section.get("events")
    if not isinstance(events, list):
        return []
    return [e for e in events if isinstance(e, dict)]


def _update_room_state(state: _RoomState, raw: dict[str, Any]) -> None:
    content = raw.get("content")
    if not isinstance(content, dict):
        return
    event_type = raw.get("type")
    if event_type == "m.room.name" and isinstance(content.get("name"), str):
        state.name = content["name"]
    elif event_type == "m.room.topic" and isinstance(content.get("topic"), str):
        state.topic = content["topic"]
