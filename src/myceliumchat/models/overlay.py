"""Overlay daemon status models.

An [OverlayStatus][myceliumchat.models.overlay.OverlayStatus] is the
complete outcome of one poll of the overlay daemon. It is never updated in
place: every poll yields a new value that replaces the previous one.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from ._validation import validate_non_negative_int, validate_optional_str
from .constants import NetworkHealth


@dataclass(frozen=True, slots=True)
class OverlayPeer:
    """One peer reported by the overlay daemon's peers endpoint."""

    public_key: str = ""
    endpoint: str = ""
    state: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> OverlayPeer:
        """Build a peer from an untrusted JSON item; unknown shapes give an empty peer."""
        if not isinstance(data, dict):
            return cls()
        endpoint = data.get("endpoint", "")
        if isinstance(endpoint, dict):
            # Newer daemons report {"proto": "tcp", "socketAddr": "1.2.3.4:9651"}
            endpoint = f"{endpoint.get('proto', '')}://{endpoint.get('socketAddr', '')}"
        state = data.get("state", data.get("connectionState", ""))
        return cls(
            public_key=str(data.get("public_key", data.get("publicKey", ""))),
            endpoint=str(endpoint),
            state=str(state),
        )


@dataclass(frozen=True, slots=True)
class OverlayStatus:
    """Result of one overlay daemon poll.

    Attributes:
        detected: The daemon answered its admin endpoint with 2xx.
        connected: Same as ``detected`` for the current daemon API.
        version: Daemon version string, if reported.
        peer_count: Number of known peers (0 when not reported).
        error: ``"HTTP <status>"`` or the transport error message when not
            detected.
        peers: Peer details, when the daemon reported them.
        checked_at: ``time.monotonic()`` of the poll, used for cache reuse.
    """

    detected: bool
    connected: bool
    version: str | None = None
    peer_count: int = 0
    error: str | None = None
    peers: tuple[OverlayPeer, ...] = ()
    checked_at: float = field(default_factory=time.monotonic, compare=False)

    def __post_init__(self) -> None:
        validate_non_negative_int(self.peer_count, "peer_count")
        validate_optional_str(self.version, "version")
        validate_optional_str(self.error, "error")

    @classmethod
    def online(cls, *, version: str | None, peers: tuple[OverlayPeer, ...]) -> OverlayStatus:
        return cls(detected=True, connected=True, version=version, peer_count=len(peers), peers=peers)

    @classmethod
    def offline(cls, error: str) -> OverlayStatus:
        return cls(detected=False, connected=False, error=error)

    @property
    def health(self) -> NetworkHealth:
        return NetworkHealth.classify(self.peer_count, detected=self.detected)

    def age(self, now: float | None = None) -> float:
        """Seconds elapsed since this status was produced."""
        return (time.monotonic() if now is None else now) - self.checked_at
