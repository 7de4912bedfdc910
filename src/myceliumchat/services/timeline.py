"""Per-room ordered message timelines.

A [TimelineSynchronizer][myceliumchat.services.timeline.TimelineSynchronizer]
owns one room's message sequence: an initial snapshot followed by live
events. The protocol handle's event stream is process-wide, so the
synchronizer filters to its own room and deduplicates by event id (an
event can arrive both in the snapshot and live when the two race).

Order is the server's: the snapshot arrives newest first and is reversed,
never re-sorted by timestamp, and live events are appended in arrival order.

[TimelineManager][myceliumchat.services.timeline.TimelineManager] tracks
which room is selected and tears down the previous synchronizer before
opening the next, so a room never holds two live listeners.

Examples:
    ```python
    async with TimelineSynchronizer(handle, "!room:matrix.org") as timeline:
        for message in await timeline.load_initial():
            print(message.sender, message.body)
        timeline.subscribe_live(lambda m: print(m.sender, m.body))
        await stop.wait()
    ```
"""

from __future__ import annotations

from collections.abc import Callable
from types import TracebackType
from typing import TYPE_CHECKING, Self

from myceliumchat.core.logger import Logger
from myceliumchat.models import DEFAULT_MSGTYPE, MessageRecord, ProtocolEvent


if TYPE_CHECKING:
    from myceliumchat.clients.protocol import ProtocolHandle


MessageCallback = Callable[[MessageRecord], None]


class TimelineSynchronizer:
    """Ordered, duplicate-free message sequence of one room."""

    def __init__(self, handle: ProtocolHandle, room_id: str, limit: int = 50) -> None:
        if not room_id:
            raise ValueError("room_id must not be empty")
        if limit < 1:
            raise ValueError(f"limit must be positive, got {limit}")
        self._handle = handle
        self._room_id = room_id
        self._limit = limit
        self._logger = Logger("timeline").bind(room_id=room_id)
        self._messages: list[MessageRecord] = []
        self._seen: set[str] = set()
        self._remove_listener: Callable[[], None] | None = None
        self._on_message: MessageCallback | None = None

    @property
    def room_id(self) -> str:
        return self._room_id

    @property
    def messages(self) -> tuple[MessageRecord, ...]:
        return tuple(self._messages)

    @property
    def is_subscribed(self) -> bool:
        return self._remove_listener is not None

    async def load_initial(self) -> list[MessageRecord]:
        """Fetch the room's recent history and return the ordered sequence.

        Live messages received before the snapshot completed and absent
        from it are kept after the snapshot.
        """
        events = await self._handle.fetch_timeline(self._room_id, self._limit)
        snapshot: list[MessageRecord] = []
        seen: set[str] = set()
        for event in reversed(events):
            if not event.is_message or event.room_id != self._room_id:
                continue
            if event.event_id in seen:
                continue
            seen.add(event.event_id)
            snapshot.append(MessageRecord.from_event(event))

        early = [m for m in self._messages if m.id not in seen]
        self._messages = snapshot + early
        self._seen = seen | {m.id for m in early}
        self._logger.debug("timeline_loaded", snapshot=len(snapshot), live=len(early))
        return list(self._messages)

    def subscribe_live(self, on_message: MessageCallback | None = None) -> None:
        """Append this room's live messages and report each new one to ``on_message``.

        Calling again replaces the previous subscription.
        """
        self.unsubscribe()
        self._on_message = on_message
        self._remove_listener = self._handle.add_timeline_listener(self._on_event)
        self._logger.debug("timeline_subscribed")

    def unsubscribe(self) -> None:
        """Detach from the live stream. Idempotent."""
        remove, self._remove_listener = self._remove_listener, None
        self._on_message = None
        if remove is not None:
            remove()
            self._logger.debug("timeline_unsubscribed")

    def _on_event(self, event: ProtocolEvent) -> None:
        if event.room_id != self._room_id or not event.is_message:
            return
        if event.event_id in self._seen:
            return
        message = MessageRecord.from_event(event)
        self._seen.add(message.id)
        self._messages.append(message)
        if self._on_message is not None:
            self._on_message(message)

    async def send(self, body: str, msgtype: str = DEFAULT_MSGTYPE) -> str:
        """Post a message to the room; it shows up through the live stream."""
        event_id = await self._handle.send_message(self._room_id, body, msgtype)
        self._logger.debug("message_sent", event_id=event_id)
        return event_id

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.unsubscribe()


class TimelineManager:
    """Holds at most one selected room timeline at a time."""

    def __init__(self, handle: ProtocolHandle, limit: int = 50) -> None:
        self._handle = handle
        self._limit = limit
        self._current: TimelineSynchronizer | None = None

    @property
    def handle(self) -> ProtocolHandle:
        return self._handle

    @property
    def current(self) -> TimelineSynchronizer | None:
        return self._current

    def select(self, room_id: str) -> TimelineSynchronizer:
        """Deselect the current room (dropping its listener) and open ``room_id``."""
        self.close()
        self._current = TimelineSynchronizer(self._handle, room_id, self._limit)
        return self._current

    def close(self) -> None:
        current, self._current = self._current, None
        if current is not None:
            current.unsubscribe()
