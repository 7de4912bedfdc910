"""Pure data models for the session and synchronization core.

No I/O and no dependencies on other ``myceliumchat`` layers. Every model is
a frozen dataclass validated in ``__post_init__``.
"""

from .constants import (
    DEFAULT_MSGTYPE,
    MESSAGE_EVENT_TYPE,
    ConnectionMode,
    NetworkHealth,
    SessionState,
)
from .message import MessageRecord, ProtocolEvent
from .overlay import OverlayPeer, OverlayStatus
from .room import GATEWAY, PROTOCOL, RoomRecord, SourceFlags
from .session import Session


__all__ = [
    "DEFAULT_MSGTYPE",
    "GATEWAY",
    "MESSAGE_EVENT_TYPE",
    "PROTOCOL",
    "ConnectionMode",
    "MessageRecord",
    "NetworkHealth",
    "OverlayPeer",
    "OverlayStatus",
    "ProtocolEvent",
    "RoomRecord",
    "Session",
    "SessionState",
    "SourceFlags",
]
