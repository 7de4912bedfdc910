"""Protocol-client handle contract.

The chat protocol client is an opaque capability: it logs out, syncs,
fetches timelines, sends messages and joins rooms over a network it owns.
The session core only depends on this structural interface, so tests can
substitute in-memory fakes and the default
[MatrixHandle][myceliumchat.clients.matrix.MatrixHandle] can be swapped for
another implementation through a
[HandleFactory][myceliumchat.clients.protocol.HandleFactory].

A handle's transport address is fixed for its lifetime. Switching between
the bridge and the origin server means building a new handle.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Protocol, runtime_checkable


if TYPE_CHECKING:
    from myceliumchat.models import ProtocolEvent, RoomRecord, Session


TimelineListener = Callable[["ProtocolEvent"], None]
"""Callback receiving every live timeline event, for every joined room."""


@runtime_checkable
class ProtocolHandle(Protocol):
    """Structural interface of a logged-in protocol client."""

    @property
    def base_url(self) -> str: ...

    @property
    def is_syncing(self) -> bool: ...

    @property
    def degraded(self) -> bool:
        """True once live sync stopped on its own after a successful start."""
        ...

    async def start_sync(self) -> None:
        """Validate the token, seed room state and start live delivery.

        Raises:
            AuthError: If the access token is rejected.
            TransportError: If the server cannot be reached.
        """
        ...

    async def stop_sync(self) -> None: ...

    async def fetch_timeline(self, room_id: str, limit: int = 50) -> list[ProtocolEvent]:
        """Return up to ``limit`` recent events, newest first."""
        ...

    async def send_message(self, room_id: str, body: str, msgtype: str = "m.text") -> str:
        """Send a message and return its event id."""
        ...

    async def join_room(self, room_id_or_alias: str) -> str:
        """Join a room and return its canonical room id."""
        ...

    async def leave_room(self, room_id: str) -> None: ...

    async def joined_rooms(self) -> list[RoomRecord]: ...

    def add_timeline_listener(self, listener: TimelineListener) -> Callable[[], None]:
        """Register ``listener`` on the process-wide event stream.

        Returns:
            A callable that removes exactly this registration. Calling it
            more than once is harmless.
        """
        ...

    async def logout(self) -> None: ...

    async def close(self) -> None: ...


HandleFactory = Callable[[str, "Session"], ProtocolHandle]
"""Builds a handle addressed at ``base_url`` for an authenticated session."""
