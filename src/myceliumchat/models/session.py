"""Authenticated session model.

A [Session][myceliumchat.models.session.Session] is created by a
successful login and owned exclusively by the
[SessionManager][myceliumchat.services.session.SessionManager]. It is
replaced as a whole, never edited field by field; a refreshed connection
mode produces a new instance through
[with_mode()][myceliumchat.models.session.Session.with_mode].
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from typing import Any

from ._validation import validate_optional_str, validate_str_not_empty
from .constants import ConnectionMode


@dataclass(frozen=True, slots=True)
class Session:
    """Credentials and transport choice of a logged-in user.

    Attributes:
        user_id: Fully qualified user id (``@alice:matrix.org``).
        access_token: Gateway-issued token, also valid for the chat server.
        device_id: Protocol device id, if one was issued.
        server_name: Origin chat server name (``matrix.org``).
        connection_mode: Mode the current protocol handle was built for.
            Recomputed at restore; never trusted from storage.
    """

    user_id: str
    access_token: str
    server_name: str
    connection_mode: ConnectionMode
    device_id: str | None = None

    def __post_init__(self) -> None:
        validate_str_not_empty(self.user_id, "user_id")
        validate_str_not_empty(self.access_token, "access_token")
        validate_str_not_empty(self.server_name, "server_name")
        validate_optional_str(self.device_id, "device_id")
        object.__setattr__(self, "connection_mode", ConnectionMode(self.connection_mode))

    def __repr__(self) -> str:
        return (
            f"Session(user_id={self.user_id!r}, server_name={self.server_name!r}, "
            f"connection_mode={self.connection_mode.value!r}, device_id={self.device_id!r})"
        )

    def with_mode(self, mode: ConnectionMode) -> Session:
        return replace(self, connection_mode=mode)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["connection_mode"] = self.connection_mode.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Session:
        """Rebuild a session from :meth:`to_dict` output.

        Raises:
            KeyError: If a required field is missing.
            TypeError, ValueError: If a field has an invalid value.
        """
        return cls(
            user_id=data["user_id"],
            access_token=data["access_token"],
            server_name=data["server_name"],
            connection_mode=ConnectionMode(data.get("connection_mode", ConnectionMode.STANDARD)),
            device_id=data.get("device_id"),
        )
