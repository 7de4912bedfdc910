"""Durable storage for the one persisted session record.

The record is a versioned JSON document under a fixed file name::

    {"version": 1, "session": {"user_id": ..., "access_token": ..., ...}}

Writes replace the whole file atomically (temp file in the same directory,
then ``os.replace``), so a concurrent reader sees either the previous record
or the new one, never a partial write. Only the
[SessionManager][myceliumchat.services.session.SessionManager] writes it.
"""

from __future__ import annotations

import contextlib
import json
import os
import tempfile
from pathlib import Path
from typing import Any

from myceliumchat.core.logger import Logger
from myceliumchat.models import Session


SESSION_FILE = "session.json"
SCHEMA_VERSION = 1


class SessionStore:
    """Reads, atomically writes and clears ``<state_dir>/session.json``."""

    def __init__(self, state_dir: str | Path) -> None:
        self._dir = Path(state_dir).expanduser()
        self._logger = Logger("session_store")

    @property
    def path(self) -> Path:
        return self._dir / SESSION_FILE

    def load(self) -> Session | None:
        """Return the stored session, or ``None`` if absent or unusable.

        Corrupt files and records of an unknown schema version are treated
        as absent (and logged); they are left in place until the next
        save or clear replaces them.
        """
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            self._logger.warning("session_unreadable", path=str(self.path), error=str(e))
            return None

        try:
            document: Any = json.loads(raw)
        except ValueError:
            self._logger.warning("session_corrupt", path=str(self.path))
            return None

        if not isinstance(document, dict) or document.get("version") != SCHEMA_VERSION:
            version = document.get("version") if isinstance(document, dict) else None
            self._logger.warning("session_version_unsupported", version=version)
            return None

        try:
            return Session.from_dict(document["session"])
        except (KeyError, TypeError, ValueError) as e:
            self._logger.warning("session_invalid", error=str(e))
            return None

    def save(self, session: Session) -> None:
        """Replace the stored record with ``session``.

        Raises:
            OSError: If the directory cannot be created or the file written.
        """
        self._dir.mkdir(parents=True, exist_ok=True)
        document = {"version": SCHEMA_VERSION, "session": session.to_dict()}

        fd, tmp_name = tempfile.mkstemp(dir=self._dir, prefix=".session-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self.path)
        except BaseException:
            with contextlib.suppress(OSError):
                os.unlink(tmp_name)
            raise

    def clear(self) -> None:
        """Delete the stored record. Idempotent."""
        self.path.unlink(missing_ok=True)
