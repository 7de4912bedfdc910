"""Session storage configuration.

See Also:
    [SessionStore][myceliumchat.services.session.SessionStore]: Consumes
        ``state_dir``.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, field_validator


class StorageConfig(BaseModel):
    """Where the single persisted session record lives."""

    state_dir: Path = Field(
        default=Path("~/.local/state/myceliumchat"),
        description="Directory holding session.json (created on first save)",
    )

    @field_validator("state_dir")
    @classmethod
    def _expand_user(cls, value: Path) -> Path:
        return value.expanduser()
