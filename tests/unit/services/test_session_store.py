"""
Unit tests for services.session.store module.

Tests:
- save()/load() persistence of the versioned record
- Missing, corrupt, unknown-version and invalid records load as None
- Atomic replace leaves no temp files and restricts permissions
- clear() is idempotent
- StorageConfig expands ~
"""

import json
import os
import stat
from pathlib import Path

from myceliumchat.models import ConnectionMode, Session
from myceliumchat.services.session import SCHEMA_VERSION, SESSION_FILE, SessionStore, StorageConfig


class TestStorageConfig:
    """StorageConfig."""

    def test_default_is_expanded(self) -> None:
        config = StorageConfig()
        assert "~" not in str(config.state_dir)
        assert config.state_dir.name == "myceliumchat"

    def test_custom_dir(self, tmp_path: Path) -> None:
        assert StorageConfig(state_dir=tmp_path).state_dir == tmp_path


class TestSaveLoad:
    """save() and load()."""

    def test_missing_record(self, store: SessionStore) -> None:
        assert store.load() is None

    def test_save_then_load(self, store: SessionStore, sample_session: Session) -> None:
        store.save(sample_session)
        assert store.load() == sample_session

    def test_record_format(self, store: SessionStore, sample_session: Session) -> None:
        store.save(sample_session)
        document = json.loads(store.path.read_text())
        assert document["version"] == SCHEMA_VERSION
        assert document["session"]["connection_mode"] == "enhanced"
        assert store.path.name == SESSION_FILE

    def test_save_replaces_whole_record(self, store: SessionStore, sample_session: Session) -> None:
        store.save(sample_session)
        store.save(sample_session.with_mode(ConnectionMode.STANDARD))
        loaded = store.load()
        assert loaded is not None
        assert loaded.connection_mode is ConnectionMode.STANDARD

    def test_no_temp_files_left(self, store: SessionStore, sample_session: Session) -> None:
        store.save(sample_session)
        store.save(sample_session)
        assert sorted(p.name for p in store.path.parent.iterdir()) == [SESSION_FILE]

    def test_owner_only_permissions(self, store: SessionStore, sample_session: Session) -> None:
        store.save(sample_session)
        mode = stat.S_IMODE(os.stat(store.path).st_mode)
        assert mode == 0o600


class TestUnusableRecords:
    """Records that load as None."""

    def _write(self, store: SessionStore, text: str) -> None:
        store.path.parent.mkdir(parents=True, exist_ok=True)
        store.path.write_text(text)

    def test_corrupt_json(self, store: SessionStore) -> None:
        self._write(store, "{not json")
        assert store.load() is None

    def test_unknown_version(self, store: SessionStore, sample_session: Session) -> None:
        self._write(store, json.dumps({"version": 99, "session": sample_session.to_dict()}))
        assert store.load() is None

    def test_unversioned(self, store: SessionStore, sample_session: Session) -> None:
        self._write(store, json.dumps(sample_session.to_dict()))
        assert store.load() is None

    def test_invalid_session_fields(self, store: SessionStore) -> None:
        self._write(store, json.dumps({"version": 1, "session": {"user_id": ""}}))
        assert store.load() is None

    def test_non_object(self, store: SessionStore) -> None:
        self._write(store, "[1, 2]")
        assert store.load() is None


class TestClear:
    """clear()."""

    def test_clear_removes_record(self, store: SessionStore, sample_session: Session) -> None:
        store.save(sample_session)
        store.clear()
        assert not store.path.exists()
        assert store.load() is None

    def test_clear_is_idempotent(self, store: SessionStore) -> None:
        store.clear()
        store.clear()
