from __future__ import annotations

from pathlib import Path

import pytest

from cashrecon.errors import PersistenceCorruptionError
from cashrecon.storage.file_store import FileStore


def provoke_atomic_write_failure(store: FileStore, key: str, payload: str) -> None:
    try:
        with store._atomic_writer(key) as tmp_file:  # noqa: SLF001 (intentional private use)
            tmp_file.write(payload)
            raise RuntimeError("boom")
    except RuntimeError:
        pass


def test_set_get_round_trip(tmp_path: Path) -> None:
    store = FileStore(base_dir=tmp_path)
    store.set("pendingChanges", [{"route": "North"}])
    result = store.get("pendingChanges")

    assert result == [{"route": "North"}]
    assert store.exists("pendingChanges") is True


def test_missing_key_returns_none(tmp_path: Path) -> None:
    store = FileStore(base_dir=tmp_path)

    assert store.get("never-written") is None


def test_corrupt_file_raises_persistence_error(tmp_path: Path) -> None:
    store = FileStore(base_dir=tmp_path)
    Path(store.path_for("snapshot")).write_text("{not json", encoding="utf-8")

    with pytest.raises(PersistenceCorruptionError):
        store.get("snapshot")


def test_delete_semantics(tmp_path: Path) -> None:
    store = FileStore(base_dir=tmp_path)
    store.set("key", 42)

    first = store.delete("key")
    second = store.delete("key")
    exists = store.exists("key")

    assert first is True
    assert second is False
    assert exists is False


def test_atomic_writer_cleans_temp_on_exception(tmp_path: Path) -> None:
    store = FileStore(base_dir=tmp_path)
    store.set("key", "previous")

    provoke_atomic_write_failure(store, "key", payload="partial")

    temp_files = list(tmp_path.glob(".tmp*"))
    assert temp_files == []
    assert store.get("key") == "previous"


def test_invalid_key_raises(tmp_path: Path) -> None:
    store = FileStore(base_dir=tmp_path)

    with pytest.raises(ValueError):
        store.get("../evil")

    with pytest.raises(ValueError):
        store.set("", 1)
