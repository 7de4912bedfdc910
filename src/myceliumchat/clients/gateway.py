"""REST gateway client.

Typed wrapper over the gateway's auth and room endpoints. Every operation
returns a [GatewayResult][myceliumchat.clients.gateway.GatewayResult]
carrying either a pydantic payload or a
[GatewayError][myceliumchat.clients.gateway.GatewayError]; expected
failures (bad credentials, room exists, network down) are never raised.

All responses are wrapped as ``{"success": bool, "data": ..., "error": str}``
and ``success`` defaults to ``true`` when a 2xx body omits it.

Examples:
    ```python
    async with GatewayClient(GatewayConfig(base_url="http://localhost:8080")) as gateway:
        result = await gateway.login("alice", "secret")
        if result.ok:
            print(result.data.user_id)
        elif result.error.is_network:
            print("gateway unreachable:", result.error.message)
    ```
"""

from __future__ import annotations

from dataclasses import dataclass
from types import TracebackType
from typing import Any, Generic, Self, TypeVar
from urllib.parse import quote

import aiohttp
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from myceliumchat.core.logger import Logger
from myceliumchat.models import GATEWAY, RoomRecord
from myceliumchat.utils.http import DEFAULT_MAX_RESPONSE_SIZE, client_timeout, read_bounded_json


_T = TypeVar("_T")
_P = TypeVar("_P", bound=BaseModel)


class GatewayConfig(BaseModel):
    """Gateway connection settings."""

    base_url: str = Field(default="http://localhost:8080", description="Gateway root URL")
    timeout: float = Field(default=10.0, gt=0.0, le=120.0, description="Per-request timeout")
    max_response_size: int = Field(default=DEFAULT_MAX_RESPONSE_SIZE, ge=1024)


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------


class _Payload(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class AuthPayload(_Payload):
    access_token: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    device_id: str | None = None


class CreatedRoom(_Payload):
    room_id: str = Field(min_length=1)
    room_name: str = ""


class JoinedRoom(_Payload):
    room_id: str = Field(min_length=1)
    joined: bool = True


class RoomInfo(_Payload):
    room_id: str = Field(min_length=1)
    room_name: str = ""
    topic: str | None = None
    member_count: int = Field(default=0, ge=0)

    def to_record(self) -> RoomRecord:
        return RoomRecord(
            room_id=self.room_id,
            display_name=self.room_name,
            topic=self.topic,
            member_count=self.member_count,
            sources=GATEWAY,
        )


class RoomList(_Payload):
    rooms: list[RoomInfo] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class GatewayError:
    """A failed gateway call.

    Attributes:
        status: HTTP status code, or ``None`` when the request never got an
            HTTP answer (timeout, refused, DNS).
        message: Server-supplied error text, or the transport error message.
    """

    status: int | None
    message: str

    @property
    def is_network(self) -> bool:
        return self.status is None

    @property
    def is_auth(self) -> bool:
        return self.status in (401, 403)

    @property
    def is_conflict(self) -> bool:
        return self.status == 409

    def __str__(self) -> str:
        return self.message if self.status is None else f"{self.message} (HTTP {self.status})"


@dataclass(frozen=True, slots=True)
class GatewayResult(Generic[_T]):
    """Tagged result: exactly one of ``data`` (on success) or ``error`` is meaningful."""

    data: _T | None = None
    error: GatewayError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, data: _T | None) -> GatewayResult[_T]:
        return cls(data=data)

    @classmethod
    def failure(cls, error: GatewayError) -> GatewayResult[_T]:
        return cls(error=error)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class GatewayClient:
    """Async client for the REST gateway.

    Holds no state beyond its base address and a lazily created
    ``aiohttp.ClientSession``; use it as an async context manager or call
    [close()][myceliumchat.clients.gateway.GatewayClient.close].
    """

    def __init__(
        self,
        config: GatewayConfig | None = None,
        *,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._config = config or GatewayConfig()
        self._session = session
        self._owns_session = session is None
        self._logger = Logger("gateway")

    @property
    def base_url(self) -> str:
        return self._config.base_url.rstrip("/")

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        path: str,
        payload_type: type[_P] | None,
        *,
        body: dict[str, Any] | None = None,
        access_token: str | None = None,
    ) -> GatewayResult[Any]:
        url = f"{self.base_url}{path}"
        headers = {"Accept": "application/json"}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"

        try:
            async with self._get_session().request(
                method,
                url,
                json=body,
                headers=headers,
                timeout=client_timeout(self._config.timeout),
            ) as response:
                status = response.status
                reason = response.reason or ""
                try:
                    envelope = await read_bounded_json(response, self._config.max_response_size)
                except ValueError:
                    envelope = None
        except (aiohttp.ClientError, TimeoutError) as e:
            message = str(e) or type(e).__name__
            self._logger.warning("gateway_unreachable", method=method, path=path, error=message)
            return GatewayResult.failure(GatewayError(status=None, message=message))

        if not isinstance(envelope, dict):
            envelope = {}
        error_text = envelope.get("error")

        if not 200 <= status < 300:
            message = str(error_text) if error_text else f"HTTP {status}: {reason}".rstrip(": ")
            self._logger.info("gateway_error", method=method, path=path, status=status)
            return GatewayResult.failure(GatewayError(status=status, message=message))

        if envelope.get("success", True) is False:
            message = str(error_text) if error_text else "request failed"
            return GatewayResult.failure(GatewayError(status=status, message=message))

        if payload_type is None:
            return GatewayResult.success(None)

        try:
            data = payload_type.model_validate(envelope.get("data"))
        except ValidationError as e:
            self._logger.warning("gateway_invalid_payload", path=path, errors=e.error_count())
            return GatewayResult.failure(
                GatewayError(status=status, message=f"invalid response payload from {path}")
            )
        return GatewayResult.success(data)

    # -------------------------------------------------------------------------
    # Auth
    # -------------------------------------------------------------------------

    async def login(self, username: str, password: str) -> GatewayResult[AuthPayload]:
        return await self._request(
            "POST",
            "/api/auth/login",
            AuthPayload,
            body={"username": username, "password": password},
        )

    async def logout(self, access_token: str | None = None) -> GatewayResult[None]:
        return await self._request("POST", "/api/auth/logout", None, access_token=access_token)

    # -------------------------------------------------------------------------
    # Rooms
    # -------------------------------------------------------------------------

    async def create_room(
        self,
        room_name: str,
        *,
        topic: str | None = None,
        is_public: bool | None = None,
        access_token: str | None = None,
    ) -> GatewayResult[CreatedRoom]:
        body: dict[str, Any] = {"room_name": room_name}
        if topic is not None:
            body["topic"] = topic
        if is_public is not None:
            body["is_public"] = is_public
        return await self._request(
            "POST", "/api/rooms/create", CreatedRoom, body=body, access_token=access_token
        )

    async def join_room(
        self, room_id: str, *, access_token: str | None = None
    ) -> GatewayResult[JoinedRoom]:
        return await self._request(
            "POST",
            f"/api/rooms/join/{quote(room_id, safe='')}",
            JoinedRoom,
            body={"room_id": room_id},
            access_token=access_token,
        )

    async def list_rooms(self, *, access_token: str | None = None) -> GatewayResult[RoomList]:
        return await self._request("GET", "/api/rooms/list", RoomList, access_token=access_token)

    # -------------------------------------------------------------------------
    # Liveness
    # -------------------------------------------------------------------------

    async def health_check(self) -> bool:
        """``True`` iff ``GET /`` answers 2xx within the timeout."""
        try:
            async with self._get_session().get(
                f"{self.base_url}/", timeout=client_timeout(self._config.timeout)
            ) as response:
                return 200 <= response.status < 300
        except (aiohttp.ClientError, TimeoutError):
            return False
