"""Overlay daemon HTTP client.

Issues the two read-only requests the monitor needs, each with its own
bounded timeout. Classification of the answers (detected or not, peer
count) belongs to [OverlayMonitor][myceliumchat.services.overlay.OverlayMonitor];
this client only reports what came back.
"""

from __future__ import annotations

from typing import Any, NamedTuple

import aiohttp

from myceliumchat.core.exceptions import TransportError
from myceliumchat.utils.http import client_timeout, read_bounded_json


ADMIN_PATH = "/api/v1/admin"
PEERS_PATH = "/api/v1/peers"


class OverlayResponse(NamedTuple):
    """HTTP status and parsed JSON body (``None`` if absent or not JSON)."""

    status: int
    body: Any

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class OverlayClient:
    """Client for the overlay daemon's admin and peers endpoints."""

    def __init__(
        self,
        api_url: str = "http://localhost:8989",
        *,
        admin_timeout: float = 2.0,
        peers_timeout: float = 3.0,
        max_response_size: int = 1_048_576,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._api_url = api_url.rstrip("/")
        self._admin_timeout = admin_timeout
        self._peers_timeout = peers_timeout
        self._max_response_size = max_response_size
        self._session = session
        self._owns_session = session is None

    @property
    def api_url(self) -> str:
        return self._api_url

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _get(self, path: str, timeout: float) -> OverlayResponse:  # noqa: ASYNC109
        try:
            async with self._get_session().get(
                f"{self._api_url}{path}",
                headers={"Accept": "application/json"},
                timeout=client_timeout(timeout),
            ) as response:
                try:
                    body = await read_bounded_json(response, self._max_response_size)
                except ValueError:
                    body = None
                return OverlayResponse(status=response.status, body=body)
        except TimeoutError as e:
            raise TransportError(f"overlay daemon did not answer within {timeout}s") from e
        except aiohttp.ClientError as e:
            raise TransportError(str(e) or type(e).__name__) from e

    async def get_admin(self) -> OverlayResponse:
        """``GET /api/v1/admin``.

        Raises:
            TransportError: On timeout, refused connection or DNS failure.
        """
        return await self._get(ADMIN_PATH, self._admin_timeout)

    async def get_peers(self) -> OverlayResponse:
        """``GET /api/v1/peers``.

        Raises:
            TransportError: On timeout, refused connection or DNS failure.
        """
        return await self._get(PEERS_PATH, self._peers_timeout)
