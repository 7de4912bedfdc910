"""Session and synchronization services.

Attributes:
    OverlayMonitor: Overlay daemon health polling. See
        [OverlayMonitor][myceliumchat.services.overlay.OverlayMonitor].
    ConnectionModeSelector: Standard vs enhanced routing. See
        [ConnectionModeSelector][myceliumchat.services.mode.ConnectionModeSelector].
    SessionManager: Login, restore, logout. See
        [SessionManager][myceliumchat.services.session.SessionManager].
    RoomRegistry: Gateway/protocol room reconciliation. See
        [RoomRegistry][myceliumchat.services.rooms.RoomRegistry].
    TimelineSynchronizer: Per-room ordered timeline. See
        [TimelineSynchronizer][myceliumchat.services.timeline.TimelineSynchronizer].
"""

from .mode import ConnectionModeSelector, ModeConfig
from .overlay import OverlayConfig, OverlayMonitor
from .rooms import RoomOperationResult, RoomRegistry
from .session import SessionManager, SessionStore, StorageConfig
from .timeline import TimelineManager, TimelineSynchronizer


__all__ = [
    "ConnectionModeSelector",
    "ModeConfig",
    "OverlayConfig",
    "OverlayMonitor",
    "RoomOperationResult",
    "RoomRegistry",
    "SessionManager",
    "SessionStore",
    "StorageConfig",
    "TimelineManager",
    "TimelineSynchronizer",
]
