"""Session lifecycle and its single persisted record.

Attributes:
    SessionManager: Login, restore, logout and reconnect. See
        [SessionManager][myceliumchat.services.session.service.SessionManager].
    SessionStore: Atomic versioned JSON storage for the session record.
    StorageConfig: Where the record lives.
"""

from .configs import StorageConfig
from .service import SessionManager
from .store import SCHEMA_VERSION, SESSION_FILE, SessionStore


__all__ = [
    "SCHEMA_VERSION",
    "SESSION_FILE",
    "SessionManager",
    "SessionStore",
    "StorageConfig",
]
