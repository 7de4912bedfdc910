"""Room records reconciled from the gateway and the protocol client.

Identity is ``room_id``. The ``sources`` flags record which backend
reported the room; a record known only to the gateway is a room the user
created or joined whose live sync has not attached yet, and is kept.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ._validation import validate_non_negative_int, validate_optional_str, validate_str_not_empty


@dataclass(frozen=True, slots=True)
class SourceFlags:
    """Which backends reported a room."""

    from_gateway: bool = False
    from_protocol: bool = False

    def __or__(self, other: SourceFlags) -> SourceFlags:
        return SourceFlags(
            from_gateway=self.from_gateway or other.from_gateway,
            from_protocol=self.from_protocol or other.from_protocol,
        )


GATEWAY = SourceFlags(from_gateway=True)
PROTOCOL = SourceFlags(from_protocol=True)


@dataclass(frozen=True, slots=True)
class RoomRecord:
    """A room as seen by the merged registry.

    Attributes:
        room_id: Server-assigned room id (``!abc:matrix.org``).
        display_name: Human-readable name; falls back to ``room_id``.
        topic: Room topic, if any source reported one.
        member_count: Joined member count.
        sources: Backends that reported this room.
    """

    room_id: str
    display_name: str = ""
    topic: str | None = None
    member_count: int = 0
    sources: SourceFlags = field(default_factory=SourceFlags)

    def __post_init__(self) -> None:
        validate_str_not_empty(self.room_id, "room_id")
        validate_optional_str(self.topic, "topic")
        validate_non_negative_int(self.member_count, "member_count")
        if not self.display_name:
            object.__setattr__(self, "display_name", self.room_id)

    @property
    def is_live(self) -> bool:
        """True once the protocol client reports the room (live sync attached)."""
        return self.sources.from_protocol
