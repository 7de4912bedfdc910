"""Room membership reconciled across the gateway and the protocol client.

The gateway is the durable record of which rooms exist and which the user
joined; the protocol client knows which rooms live sync is attached to.
Neither is silently preferred: every
[RoomRecord][myceliumchat.models.room.RoomRecord] carries the flags of the
sources that reported it.

Room operations always go to the gateway first. Only after the gateway
confirms does the registry attach the room to live sync through the
protocol handle; failure of that second step is returned as a
[DegradedSyncError][myceliumchat.core.exceptions.DegradedSyncError]
warning on the result and is not retried automatically.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from myceliumchat.core.exceptions import (
    AuthError,
    ConflictError,
    DegradedSyncError,
    MyceliumChatError,
    TransportError,
)
from myceliumchat.core.logger import Logger
from myceliumchat.models import GATEWAY, PROTOCOL, RoomRecord


if TYPE_CHECKING:
    from myceliumchat.clients.gateway import GatewayClient, GatewayError
    from myceliumchat.clients.protocol import ProtocolHandle


@dataclass(frozen=True, slots=True)
class RoomOperationResult:
    """Outcome of a create or join.

    Attributes:
        room: The room as now known to the registry; ``None`` on failure.
        error: Why the gateway refused or could not be reached.
        warning: Set when the gateway succeeded but live sync did not attach.
    """

    room: RoomRecord | None = None
    error: MyceliumChatError | None = None
    warning: DegradedSyncError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class RoomRegistry:
    """Merged view of the rooms the signed-in user belongs to.

    Args:
        gateway: Gateway client used for listing, creating and joining.
        handle_provider: Returns the current protocol handle (``None`` when
            signed out or not yet built); called on every operation so the
            registry follows handle replacement on reconnect.
        access_token: Returns the current gateway token, if any.
    """

    def __init__(
        self,
        gateway: GatewayClient,
        handle_provider: Callable[[], ProtocolHandle | None],
        access_token: Callable[[], str | None] | None = None,
    ) -> None:
        self._gateway = gateway
        self._handle_provider = handle_provider
        self._access_token = access_token or (lambda: None)
        self._logger = Logger("room_registry")
        self._gateway_rooms: dict[str, RoomRecord] = {}
        self._rooms: list[RoomRecord] = []

    @property
    def rooms(self) -> tuple[RoomRecord, ...]:
        """Result of the last refresh or room operation."""
        return tuple(self._rooms)

    # -------------------------------------------------------------------------
    # Reconciliation
    # -------------------------------------------------------------------------

    @staticmethod
    def merge(
        gateway_rooms: Iterable[RoomRecord], protocol_rooms: Iterable[RoomRecord]
    ) -> list[RoomRecord]:
        """Join both listings on ``room_id``.

        A room reported by both sources gets the union of their flags, the
        protocol's name and member count, and the gateway's topic when the
        protocol has none. Order: gateway listing order, then protocol-only
        rooms in their own order. Each room appears exactly once.
        """
        merged: dict[str, RoomRecord] = {}
        for record in gateway_rooms:
            previous = merged.get(record.room_id)
            merged[record.room_id] = record if previous is None else _combine(previous, record)
        for record in protocol_rooms:
            previous = merged.get(record.room_id)
            merged[record.room_id] = record if previous is None else _combine(previous, record)
        return list(merged.values())

    async def refresh(self) -> list[RoomRecord]:
        """Re-list both sources and rebuild the merged view.

        A failed gateway listing keeps the gateway records from the previous
        refresh; a missing or failing handle contributes no protocol rooms.
        """
        result = await self._gateway.list_rooms(access_token=self._access_token())
        if result.ok and result.data is not None:
            self._gateway_rooms = {
                info.room_id: info.to_record() for info in result.data.rooms
            }
        else:
            self._logger.warning("gateway_room_list_failed", error=str(result.error))

        protocol_rooms: list[RoomRecord] = []
        handle = self._handle_provider()
        if handle is not None:
            try:
                protocol_rooms = await handle.joined_rooms()
            except MyceliumChatError as e:
                self._logger.warning("protocol_room_list_failed", error=str(e))

        self._rooms = self.merge(self._gateway_rooms.values(), protocol_rooms)
        self._logger.debug(
            "rooms_refreshed",
            total=len(self._rooms),
            gateway=len(self._gateway_rooms),
            protocol=len(protocol_rooms),
        )
        return list(self._rooms)

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def create_room(
        self, name: str, topic: str | None = None, is_public: bool = False
    ) -> RoomOperationResult:
        """Create a room at the gateway, then attach it to live sync."""
        result = await self._gateway.create_room(
            name, topic=topic, is_public=is_public, access_token=self._access_token()
        )
        if not result.ok or result.data is None:
            error = _gateway_error(result.error)
            self._logger.warning("room_create_failed", name=name, error=str(error))
            return RoomOperationResult(error=error)

        record = RoomRecord(
            room_id=result.data.room_id,
            display_name=result.data.room_name or name,
            topic=topic,
            sources=GATEWAY,
        )
        self._logger.info("room_created", room_id=record.room_id)
        # the gateway already created the room; the protocol step is a join
        return await self._attach(record, "create")

    async def join_room(self, room_id_or_alias: str) -> RoomOperationResult:
        """Join through the gateway, then attach to live sync.

        A 409 from the gateway (already joined) counts as success.
        """
        result = await self._gateway.join_room(
            room_id_or_alias, access_token=self._access_token()
        )
        if result.ok and result.data is not None:
            room_id = result.data.room_id
        elif result.error is not None and result.error.is_conflict:
            self._logger.info("room_already_joined", room=room_id_or_alias)
            room_id = room_id_or_alias
        else:
            error = _gateway_error(result.error)
            self._logger.warning("room_join_failed", room=room_id_or_alias, error=str(error))
            return RoomOperationResult(error=error)

        known = self._gateway_rooms.get(room_id)
        record = known if known is not None else RoomRecord(room_id=room_id, sources=GATEWAY)
        self._logger.info("room_joined", room_id=room_id)
        return await self._attach(record, "join")

    async def _attach(self, record: RoomRecord, operation: str) -> RoomOperationResult:
        self._remember(record)

        handle = self._handle_provider()
        if handle is None:
            warning = DegradedSyncError(
                "no protocol session; live sync not attached",
                room_id=record.room_id,
                operation=operation,
            )
            self._logger.warning("room_sync_degraded", room_id=record.room_id, error=str(warning))
            return RoomOperationResult(room=record, warning=warning)

        try:
            canonical_id = await handle.join_room(record.room_id)
        except MyceliumChatError as e:
            warning = DegradedSyncError(str(e), room_id=record.room_id, operation=operation)
            self._logger.warning("room_sync_degraded", room_id=record.room_id, error=str(e))
            return RoomOperationResult(room=record, warning=warning)

        if canonical_id and canonical_id != record.room_id:
            # an alias resolved to the server-assigned id
            self._forget(record.room_id)
            known = self._gateway_rooms.get(canonical_id)
            record = known if known is not None else replace(record, room_id=canonical_id)
            self._remember(record)

        live = replace(record, sources=record.sources | PROTOCOL)
        self._remember(live)
        return RoomOperationResult(room=live)

    def _remember(self, record: RoomRecord) -> None:
        if record.sources.from_gateway:
            # protocol flags come only from the handle's own listing
            self._gateway_rooms[record.room_id] = replace(record, sources=GATEWAY)
        for i, existing in enumerate(self._rooms):
            if existing.room_id == record.room_id:
                self._rooms[i] = _combine(existing, record)
                return
        self._rooms.append(record)

    def _forget(self, room_id: str) -> None:
        self._gateway_rooms.pop(room_id, None)
        self._rooms = [r for r in self._rooms if r.room_id != room_id]


def _combine(first: RoomRecord, second: RoomRecord) -> RoomRecord:
    """Merge two records of the same room; ``second`` is the fresher source."""
    named = second.display_name != second.room_id
    return RoomRecord(
        room_id=first.room_id,
        display_name=second.display_name if named else first.display_name,
        topic=second.topic if second.topic is not None else first.topic,
        member_count=second.member_count if second.sources.from_protocol else first.member_count,
        sources=first.sources | second.sources,
    )


def _gateway_error(error: GatewayError | None) -> MyceliumChatError:
    if error is None:
        return MyceliumChatError("gateway returned no data")
    if error.is_network:
        return TransportError(error.message)
    if error.is_auth:
        return AuthError(error.message, status=error.status)
    if error.is_conflict:
        return ConflictError(error.message)
    return MyceliumChatError(str(error))
