"""Session lifecycle: login, restore, logout.

State machine::

    anonymous --login()/restore()--> authenticating --ok--> authenticated
        ^                                   |                    |
        +------------- failure -------------+                    |
        +------------------------- logout() ---------------------+

The gateway is the sole credential authority: a failed gateway login is
final and is never retried as a direct protocol login. The connection mode
is computed fresh at login and at restore only; the stored mode is never
trusted, because overlay availability can change between runs.

If live sync cannot be started after authentication, or the handle's sync
loop stops later (token revoked, loop crashed), the session stays
authenticated with ``degraded`` set until
[reconnect()][myceliumchat.services.session.SessionManager.reconnect]
builds a new handle.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from myceliumchat.core.exceptions import (
    AuthError,
    LoginInProgressError,
    MyceliumChatError,
    SessionError,
    TransportError,
)
from myceliumchat.core.logger import Logger
from myceliumchat.models import Session, SessionState


if TYPE_CHECKING:
    from myceliumchat.clients.gateway import GatewayClient, GatewayError
    from myceliumchat.clients.protocol import HandleFactory, ProtocolHandle
    from myceliumchat.services.mode import ConnectionModeSelector

    from .store import SessionStore


class SessionManager:
    """Owns the session, its persisted record and its protocol handle.

    One instance per process. Collaborators are injected so tests can pass
    fakes for the gateway, the overlay-backed mode selector and the handle
    factory.

    Attributes:
        state: Current [SessionState][myceliumchat.models.constants.SessionState].
        session: The active [Session][myceliumchat.models.session.Session], if any.
        handle: The protocol handle built for the active session, if any.
        degraded: True when live sync could not be started or stopped later.
        last_error: Error of the last failed login or rejected restore.
    """

    def __init__(
        self,
        gateway: GatewayClient,
        selector: ConnectionModeSelector,
        handle_factory: HandleFactory,
        store: SessionStore,
    ) -> None:
        self._gateway = gateway
        self._selector = selector
        self._handle_factory = handle_factory
        self._store = store
        self._logger = Logger("session")

        self._state = SessionState.ANONYMOUS
        self._session: Session | None = None
        self._handle: ProtocolHandle | None = None
        self._degraded = False
        self._last_error: MyceliumChatError | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def handle(self) -> ProtocolHandle | None:
        return self._handle

    @property
    def degraded(self) -> bool:
        """True if live sync failed to start or the handle's sync loop has since stopped."""
        if self._degraded:
            return True
        return self._handle is not None and self._handle.degraded

    @property
    def last_error(self) -> MyceliumChatError | None:
        return self._last_error

    @property
    def is_authenticated(self) -> bool:
        return self._state == SessionState.AUTHENTICATED

    # -------------------------------------------------------------------------
    # Login
    # -------------------------------------------------------------------------

    async def login(self, username: str, password: str, server_name: str = "matrix.org") -> Session:
        """Authenticate through the gateway and build the protocol handle.

        Raises:
            LoginInProgressError: If another login or restore is in flight.
            SessionError: If a session is already authenticated.
            AuthError: If the gateway rejected the credentials.
            TransportError: If the gateway could not be reached.
        """
        self._enter_authenticating()
        self._logger.info("login_started", username=username, server_name=server_name)

        succeeded = False
        try:
            result = await self._gateway.login(username, password)
            if not result.ok or result.data is None:
                raise _login_error(result.error)

            mode = await self._selector.select_mode()
            session = Session(
                user_id=result.data.user_id,
                access_token=result.data.access_token,
                device_id=result.data.device_id,
                server_name=server_name,
                connection_mode=mode,
            )
            self._activate(session)
            succeeded = True
        except MyceliumChatError as e:
            self._last_error = e
            self._logger.warning("login_failed", username=username, error=str(e))
            raise
        finally:
            if not succeeded:
                self._state = SessionState.ANONYMOUS

        self._persist(session)
        self._logger.info(
            "login_succeeded",
            user_id=session.user_id,
            mode=session.connection_mode.value,
            base_url=self._handle.base_url if self._handle else "",
        )
        await self._start_sync()
        return session

    # -------------------------------------------------------------------------
    # Restore
    # -------------------------------------------------------------------------

    async def restore(self) -> Session | None:
        """Rebuild the session persisted by a previous run, without re-authenticating.

        Returns:
            The restored session, or ``None`` if nothing usable was stored
            or the stored token turned out to be stale.

        Raises:
            LoginInProgressError: If a login or restore is in flight.
            SessionError: If a session is already authenticated.
        """
        self._enter_authenticating()

        succeeded = False
        try:
            stored = self._store.load()
            if stored is None:
                self._logger.debug("restore_skipped", reason="no_stored_session")
                return None

            mode = await self._selector.select_mode()
            if mode != stored.connection_mode:
                self._logger.info(
                    "restore_mode_changed",
                    stored=stored.connection_mode.value,
                    current=mode.value,
                )
            session = stored.with_mode(mode)
            self._activate(session)
            succeeded = True
        finally:
            if not succeeded:
                self._state = SessionState.ANONYMOUS

        self._persist(session)
        self._logger.info("session_restored", user_id=session.user_id, mode=mode.value)

        try:
            await self._start_sync(raise_auth=True)
        except AuthError as e:
            self._logger.warning("restore_stale_session", user_id=session.user_id, error=str(e))
            self._last_error = e
            await self._teardown()
            self._clear_store()
            return None
        return session

    # -------------------------------------------------------------------------
    # Logout
    # -------------------------------------------------------------------------

    async def logout(self) -> None:
        """End the session locally, invalidating it remotely on a best-effort basis.

        Remote failures are logged and never prevent the local cleanup; the
        persisted record is always cleared and the state is always
        ``anonymous`` afterwards.
        """
        session, handle = self._session, self._handle
        try:
            if session is not None:
                result = await self._gateway.logout(session.access_token)
                if not result.ok:
                    self._logger.warning("gateway_logout_failed", error=str(result.error))
            if handle is not None:
                try:
                    await handle.logout()
                except MyceliumChatError as e:
                    self._logger.warning("protocol_logout_failed", error=str(e))
        finally:
            await self._teardown()
            self._clear_store()
            self._logger.info("logged_out", user_id=session.user_id if session else "")

    # -------------------------------------------------------------------------
    # Reconnect
    # -------------------------------------------------------------------------

    async def reconnect(self) -> bool:
        """Replace the protocol handle and restart live sync.

        The new handle uses the mode recorded in the session; the mode is
        only recomputed at login and restore.

        Returns:
            True if live sync is running on the new handle.

        Raises:
            SessionError: If no session is authenticated.
            AuthError: If the token was rejected; the session is discarded.
        """
        if self._session is None or not self.is_authenticated:
            raise SessionError("no authenticated session to reconnect")

        session = self._session
        if self._handle is not None:
            await self._handle.close()
        self._handle = self._build_handle(session)
        self._degraded = False

        try:
            await self._start_sync(raise_auth=True)
        except AuthError as e:
            self._last_error = e
            await self._teardown()
            self._clear_store()
            raise
        return not self.degraded

    async def close(self) -> None:
        """Release the handle without logging out; the stored session is kept."""
        if self._handle is not None:
            await self._handle.close()
            self._handle = None

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _enter_authenticating(self) -> None:
        if self._state == SessionState.AUTHENTICATING:
            raise LoginInProgressError("a login is already in progress")
        if self._state == SessionState.AUTHENTICATED:
            raise SessionError("already authenticated; log out first")
        self._state = SessionState.AUTHENTICATING
        self._last_error = None

    def _activate(self, session: Session) -> None:
        self._handle = self._build_handle(session)
        self._session = session
        self._degraded = False
        self._state = SessionState.AUTHENTICATED

    def _build_handle(self, session: Session) -> ProtocolHandle:
        base_url = self._selector.address_for(session.connection_mode, session.server_name)
        handle = self._handle_factory(base_url, session)
        self._logger.debug(
            "protocol_handle_created", mode=session.connection_mode.value, base_url=base_url
        )
        return handle

    async def _start_sync(self, *, raise_auth: bool = False) -> None:
        if self._handle is None:
            return
        try:
            await self._handle.start_sync()
        except AuthError:
            if raise_auth:
                raise
            self._mark_degraded("token rejected by chat server")
        except MyceliumChatError as e:
            self._mark_degraded(str(e))

    def _mark_degraded(self, reason: str) -> None:
        self._degraded = True
        self._logger.warning("live_sync_unavailable", reason=reason)

    def _persist(self, session: Session) -> None:
        try:
            self._store.save(session)
        except OSError as e:
            self._logger.error("session_persist_failed", error=str(e))

    def _clear_store(self) -> None:
        try:
            self._store.clear()
        except OSError as e:
            self._logger.error("session_clear_failed", error=str(e))

    async def _teardown(self) -> None:
        handle = self._handle
        self._handle = None
        self._session = None
        self._degraded = False
        self._state = SessionState.ANONYMOUS
        if handle is not None:
            try:
                await handle.close()
            except MyceliumChatError as e:
                self._logger.warning("protocol_close_failed", error=str(e))


def _login_error(error: GatewayError | None) -> MyceliumChatError:
    if error is None:
        return AuthError("gateway returned no credentials")
    if error.is_network:
        return TransportError(f"gateway unreachable: {error.message}")
    return AuthError(error.message, status=error.status)
