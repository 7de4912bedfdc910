"""Timeline events and the message records derived from them."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from ._validation import validate_non_negative_int, validate_str_not_empty
from .constants import DEFAULT_MSGTYPE, MESSAGE_EVENT_TYPE


if TYPE_CHECKING:
    from collections.abc import Mapping


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ProtocolEvent:
    """A room timeline event as delivered by the protocol client.

    Attributes:
        event_id: Server-assigned id, unique within the room.
        room_id: Room the event belongs to.
        type: Event type (``m.room.message``, ``m.room.member``, ...).
        sender: Sender user id.
        origin_server_ts: Milliseconds since the epoch on the origin server.
        content: Event content, read-only.
    """

    event_id: str
    room_id: str
    type: str
    sender: str = ""
    origin_server_ts: int = 0
    content: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        validate_str_not_empty(self.event_id, "event_id")
        validate_str_not_empty(self.room_id, "room_id")
        validate_non_negative_int(self.origin_server_ts, "origin_server_ts")
        object.__setattr__(self, "content", MappingProxyType(dict(self.content)))

    @property
    def is_message(self) -> bool:
        return self.type == MESSAGE_EVENT_TYPE

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], room_id: str) -> ProtocolEvent | None:
        """Parse a raw client-server API event; returns ``None`` if it lacks an id."""
        event_id = data.get("event_id")
        if not isinstance(event_id, str) or not event_id:
            return None
        ts = data.get("origin_server_ts", 0)
        content = data.get("content")
        return cls(
            event_id=event_id,
            room_id=room_id,
            type=str(data.get("type", "")),
            sender=str(data.get("sender", "")),
            origin_server_ts=ts if isinstance(ts, int) and not isinstance(ts, bool) and ts >= 0 else 0,
            content=content if isinstance(content, dict) else {},
        )


@dataclass(frozen=True, slots=True)
class MessageRecord:
    """One message in a room's timeline. Never mutated after creation.

    Ordering key is ``(timestamp_ms, id)``; see
    [sort_key][myceliumchat.models.message.MessageRecord.sort_key].
    """

    id: str
    sender: str
    body: str
    timestamp_ms: int
    kind: str = DEFAULT_MSGTYPE

    def __post_init__(self) -> None:
        validate_str_not_empty(self.id, "id")
        validate_non_negative_int(self.timestamp_ms, "timestamp_ms")

    @property
    def sort_key(self) -> tuple[int, str]:
        return (self.timestamp_ms, self.id)

    @classmethod
    def from_event(cls, event: ProtocolEvent) -> MessageRecord:
        """Map an ``m.room.message`` event; missing body/msgtype get defaults."""
        body = event.content.get("body", "")
        kind = event.content.get("msgtype", DEFAULT_MSGTYPE)
        if not isinstance(body, str):
            logger.debug("non_string_message_body event_id=%s", event.event_id)
            body = str(body)
        return cls(
            id=event.event_id,
            sender=event.sender,
            body=body,
            timestamp_ms=event.origin_server_ts,
            kind=kind if isinstance(kind, str) and kind else DEFAULT_MSGTYPE,
        )
