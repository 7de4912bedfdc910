"""Clients for the three remote collaborators of the session core.

Attributes:
    GatewayClient: REST gateway (auth, room create/join/list). See
        [GatewayClient][myceliumchat.clients.gateway.GatewayClient].
    OverlayClient: Overlay daemon admin and peers endpoints. See
        [OverlayClient][myceliumchat.clients.overlay.OverlayClient].
    MatrixHandle: Default protocol handle over the Matrix client-server API.
        See [MatrixHandle][myceliumchat.clients.matrix.MatrixHandle].
"""

from .gateway import (
    AuthPayload,
    CreatedRoom,
    GatewayClient,
    GatewayConfig,
    GatewayError,
    GatewayResult,
    JoinedRoom,
    RoomInfo,
    RoomList,
)
from .matrix import MatrixHandle, ProtocolConfig
from .overlay import OverlayClient, OverlayResponse
from .protocol import HandleFactory, ProtocolHandle, TimelineListener


__all__ = [
    "AuthPayload",
    "CreatedRoom",
    "GatewayClient",
    "GatewayConfig",
    "GatewayError",
    "GatewayResult",
    "HandleFactory",
    "JoinedRoom",
    "MatrixHandle",
    "OverlayClient",
    "OverlayResponse",
    "ProtocolConfig",
    "ProtocolHandle",
    "RoomInfo",
    "RoomList",
    "TimelineListener",
]
