from __future__ import annotations

import json
from pathlib import Path

import pytest

from taskdeck.storage import (
    InMemoryMedium,
    JsonFileMedium,
    StorageError,
    StorageQuotaError,
    StorageUnavailableError,
    VersionedKeyValueStore,
)
from tests.helpers.media import RecordingHandler


def test_in_memory_basic_operations() -> None:
    m = InMemoryMedium()
    assert m.get("a") is None
    m.set("a", "1")
    m.set("b", "2")
    assert m.get("a") == "1"
    assert list(m.keys()) == ["a", "b"]
    m.delete("a")
    m.delete("missing")
    assert list(m.keys()) == ["b"]
    assert m.is_available() is True


def test_in_memory_capacity_counts_keys_and_values() -> None:
    m = InMemoryMedium(capacity=10)
    m.set("ab", "cdef")  # 6
    assert m.used() == 6
    with pytest.raises(StorageQuotaError):
        m.set("x", "12345")  # would be 12
    # Overwriting frees the previous value first
    m.set("ab", "12345678")
    assert m.used() == 10
    assert m.get("x") is None


def test_in_memory_unbounded() -> None:
    m = InMemoryMedium(capacity=None)
    m.set("k", "v" * 100_000)
    assert m.capacity is None


def test_file_medium_persists_between_instances(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "store.json"
    m = JsonFileMedium(path)
    m.set("app_tasks", "[]")
    m.set("app_x", '"y"')
    m.delete("app_x")

    assert json.loads(path.read_text("utf-8")) == {"app_tasks": "[]"}
    again = JsonFileMedium(path)
    assert again.get("app_tasks") == "[]"
    assert list(again.keys()) == ["app_tasks"]


@pytest.mark.parametrize("content", ["[1, 2]", "{broken", "\"text\""])
def test_file_medium_moves_corrupt_file_aside(tmp_path: Path, content: str, log: RecordingHandler) -> None:
    path = tmp_path / "store.json"
    path.write_text(content, "utf-8")

    m = JsonFileMedium(path, logger=log.logger)
    assert list(m.keys()) == []
    assert m.quarantined is not None
    assert m.quarantined.name.startswith("store.json.corrupt-")
    assert m.quarantined.read_text("utf-8") == content
    assert not path.exists()
    assert "storage_file_corrupt" in log.events()

    m.set("a", "1")
    assert json.loads(path.read_text("utf-8")) == {"a": "1"}
    assert m.quarantined.read_text("utf-8") == content


def test_file_medium_unreadable_path_raises(tmp_path: Path) -> None:
    path = tmp_path / "store.json"
    path.mkdir()
    with pytest.raises(StorageUnavailableError):
        JsonFileMedium(path)

    path.write_text("{broken", "utf-8")
    with pytest.raises(StorageError):
        JsonFileMedium(path)


def test_file_medium_rolls_back_on_failed_flush(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    m = JsonFileMedium(tmp_path / "store.json")
    m.set("keep", "1")

    def _boom() -> None:
        raise StorageError("disk full")

    monkeypatch.setattr(m, "_flush", _boom)
    with pytest.raises(StorageError):
        m.set("new", "2")
    with pytest.raises(StorageError):
        m.delete("keep")
    assert m.get("new") is None
    assert m.get("keep") == "1"


def test_file_medium_quota(tmp_path: Path) -> None:
    m = JsonFileMedium(tmp_path / "store.json", capacity=8)
    with pytest.raises(StorageQuotaError):
        m.set("key", "123456")
    assert not (tmp_path / "store.json").exists()


def test_store_over_file_medium_survives_restart(tmp_path: Path) -> None:
    path = tmp_path / "store.json"
    store = VersionedKeyValueStore(JsonFileMedium(path), "app", "1.0")
    assert store.save("prefs", {"a": 1})

    reopened = VersionedKeyValueStore(JsonFileMedium(path), "app", "1.0")
    assert reopened.load("prefs") == {"a": 1}
    assert "prefs" in reopened.get_metadata().entities
