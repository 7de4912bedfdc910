"""myceliumchat exception hierarchy.

Typed exceptions for every error category the session core distinguishes.
Recoverable transport failures are kept apart from credential failures so
callers can decide between "try again later" and "log in again", and
``CancelledError`` is never caught alongside them.

Exception hierarchy:

```text
MyceliumChatError (base -- never raised directly)
├── ConfigurationError    -- bad YAML, invalid config values
├── TransportError        -- timeout, connection refused, DNS
├── AuthError             -- bad credentials, expired or revoked token
├── ConflictError         -- room already exists / already joined
├── DegradedSyncError     -- protocol-level step failed after gateway success
├── ProtocolClientError   -- protocol server rejected a request
└── SessionError          -- invalid session state transition
    └── LoginInProgressError
```

Note:
    [DegradedSyncError][myceliumchat.core.exceptions.DegradedSyncError] is
    normally *returned*, attached as a warning to a
    [RoomOperationResult][myceliumchat.services.rooms.RoomOperationResult],
    rather than raised: the gateway-confirmed state stays authoritative.
"""

from __future__ import annotations


class MyceliumChatError(Exception):
    """Base exception for all myceliumchat errors."""


class ConfigurationError(MyceliumChatError):
    """Invalid or missing configuration (YAML file, field values)."""


class TransportError(MyceliumChatError):
    """The remote end could not be reached or did not answer in time.

    Always recoverable. Retried only by the owner of the call on its own
    schedule (the overlay poll loop, the sync loop, the user).
    """


class AuthError(MyceliumChatError):
    """Credentials were rejected or the access token is no longer valid.

    Attributes:
        status: HTTP status reported by the server, if any.
    """

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class ConflictError(MyceliumChatError):
    """The requested room already exists or is already joined."""


class DegradedSyncError(MyceliumChatError):
    """A protocol-level room operation failed after the gateway succeeded.

    Attributes:
        room_id: Room the gateway confirmed.
        operation: ``"create"`` or ``"join"``.
    """

    def __init__(self, message: str, *, room_id: str, operation: str) -> None:
        super().__init__(message)
        self.room_id = room_id
        self.operation = operation


class ProtocolClientError(MyceliumChatError):
    """The chat server answered a protocol request with an error.

    Attributes:
        status: HTTP status code.
        errcode: Server error code (e.g. ``M_FORBIDDEN``), if provided.
    """

    def __init__(self, message: str, *, status: int, errcode: str | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.errcode = errcode


class SessionError(MyceliumChatError):
    """Operation not allowed in the current session state."""


class LoginInProgressError(SessionError):
    """A login is already in flight; concurrent logins are rejected."""
