"""Shared enumerations and constants for the models layer.

See Also:
    [OverlayStatus][myceliumchat.models.overlay.OverlayStatus]: Projects its
        peer count onto [NetworkHealth][myceliumchat.models.constants.NetworkHealth].
    [Session][myceliumchat.models.session.Session]: Records the
        [ConnectionMode][myceliumchat.models.constants.ConnectionMode] its
        protocol handle was built for.
"""

from __future__ import annotations

from enum import StrEnum


MESSAGE_EVENT_TYPE = "m.room.message"
DEFAULT_MSGTYPE = "m.text"


class NetworkHealth(StrEnum):
    """Overlay network health derived from detection and peer count.

    The scale is ordered ``offline < poor < fair < good < excellent``;
    [rank][myceliumchat.models.constants.NetworkHealth.rank] exposes the
    position so callers can compare levels.

    Examples:
        ```python
        NetworkHealth.classify(peer_count=4, detected=True)   # GOOD
        NetworkHealth.classify(peer_count=9, detected=False)  # OFFLINE
        ```
    """

    OFFLINE = "offline"
    POOR = "poor"
    FAIR = "fair"
    GOOD = "good"
    EXCELLENT = "excellent"

    @property
    def rank(self) -> int:
        return _HEALTH_ORDER.index(self)

    @classmethod
    def classify(cls, peer_count: int, *, detected: bool) -> NetworkHealth:
        """Map overlay detection and peer count onto the health scale.

        ``offline`` iff the daemon was not detected; otherwise the peer
        thresholds 5/3/1 select excellent/good/fair and zero peers is poor.
        Negative counts are treated as zero.
        """
        if not detected:
            return cls.OFFLINE
        if peer_count >= 5:
            return cls.EXCELLENT
        if peer_count >= 3:
            return cls.GOOD
        if peer_count >= 1:
            return cls.FAIR
        return cls.POOR


_HEALTH_ORDER: tuple[NetworkHealth, ...] = (
    NetworkHealth.OFFLINE,
    NetworkHealth.POOR,
    NetworkHealth.FAIR,
    NetworkHealth.GOOD,
    NetworkHealth.EXCELLENT,
)


class ConnectionMode(StrEnum):
    """Transport path of the protocol handle.

    Attributes:
        STANDARD: Direct connection to the origin chat server.
        ENHANCED: Routed through the overlay-aware bridge endpoint.
    """

    STANDARD = "standard"
    ENHANCED = "enhanced"


class SessionState(StrEnum):
    """Lifecycle states of the [SessionManager][myceliumchat.services.session.SessionManager]."""

    ANONYMOUS = "anonymous"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
