"""
Unit tests for core.exceptions module.

Tests:
- Hierarchy: every error derives from MyceliumChatError
- Extra attributes on AuthError, DegradedSyncError, ProtocolClientError
- CancelledError is not part of the hierarchy
"""

import asyncio

import pytest

from myceliumchat.core.exceptions import (
    AuthError,
    ConfigurationError,
    ConflictError,
    DegradedSyncError,
    LoginInProgressError,
    MyceliumChatError,
    ProtocolClientError,
    SessionError,
    TransportError,
)


class TestHierarchy:
    """Exception class relationships."""

    @pytest.mark.parametrize(
        "exc_class",
        [
            ConfigurationError,
            TransportError,
            AuthError,
            ConflictError,
            DegradedSyncError,
            ProtocolClientError,
            SessionError,
            LoginInProgressError,
        ],
    )
    def test_subclass_of_base(self, exc_class: type[Exception]) -> None:
        assert issubclass(exc_class, MyceliumChatError)

    def test_login_in_progress_is_session_error(self) -> None:
        assert issubclass(LoginInProgressError, SessionError)

    def test_transport_and_auth_are_distinct(self) -> None:
        assert not issubclass(TransportError, AuthError)
        assert not issubclass(AuthError, TransportError)

    def test_cancelled_error_not_caught_by_base(self) -> None:
        assert not issubclass(asyncio.CancelledError, MyceliumChatError)


class TestAttributes:
    """Extra context carried by specific errors."""

    def test_auth_error_status(self) -> None:
        err = AuthError("Invalid credentials", status=401)
        assert err.status == 401
        assert str(err) == "Invalid credentials"

    def test_auth_error_status_defaults_to_none(self) -> None:
        assert AuthError("expired").status is None

    def test_degraded_sync_error(self) -> None:
        err = DegradedSyncError("sync down", room_id="!a:b", operation="join")
        assert err.room_id == "!a:b"
        assert err.operation == "join"
        assert str(err) == "sync down"

    def test_protocol_client_error(self) -> None:
        err = ProtocolClientError("forbidden", status=403, errcode="M_FORBIDDEN")
        assert err.status == 403
        assert err.errcode == "M_FORBIDDEN"
