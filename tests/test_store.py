from __future__ import annotations

import json
import logging

import pytest

from taskdeck.observability import get_metrics
from taskdeck.storage import InMemoryMedium, StoreMetadata, VersionedKeyValueStore
from tests.helpers.media import FailingMedium, RecordingHandler


def test_construction_initializes_metadata(medium: InMemoryMedium, store: VersionedKeyValueStore) -> None:
    raw = medium.get("testapp__metadata")
    assert raw is not None
    assert json.loads(raw) == {"entities": {}}


def test_construction_rejects_empty_identity(medium: InMemoryMedium) -> None:
    with pytest.raises(ValueError):
        VersionedKeyValueStore(medium, "", "1.0")
    with pytest.raises(ValueError):
        VersionedKeyValueStore(medium, "app", "  ")


def test_save_and_load_roundtrip(medium: InMemoryMedium, store: VersionedKeyValueStore) -> None:
    value = {"a": [1, 2, 3], "b": "ünïcode", "c": None}
    assert store.save("prefs", value) is True
    assert json.loads(medium.get("testapp_prefs") or "null") == value
    assert store.load("prefs") == value

    meta = store.get_metadata()
    assert meta.entities["prefs"].version == "1.0"
    assert meta.entities["prefs"].last_updated.tzinfo is not None


def test_load_missing_returns_default(store: VersionedKeyValueStore) -> None:
    assert store.load("nothing") is None
    assert store.load("nothing", []) == []


def test_load_corrupt_returns_default_and_keeps_data(
    medium: InMemoryMedium, store: VersionedKeyValueStore, log: RecordingHandler
) -> None:
    medium.set("testapp_broken", "{not json")

    assert store.load("broken", {"fallback": True}) == {"fallback": True}
    assert medium.get("testapp_broken") == "{not json"
    assert "storage_corrupt" in log.events()
    assert get_metrics().value("storage_corrupt_reads", {"app": "testapp", "slot": "broken"}) == 1


@pytest.mark.parametrize("slot", ["", "   ", None, 42, "_metadata"])
def test_save_rejects_invalid_slots(store: VersionedKeyValueStore, slot: object) -> None:
    assert store.save(slot, {"x": 1}) is False  # type: ignore[arg-type]


def test_save_rejects_unserializable_values(store: VersionedKeyValueStore, log: RecordingHandler) -> None:
    assert store.save("bad", {"obj": object()}) is False
    assert store.save("nan", float("nan")) is False
    assert store.exists("bad") is False
    assert "storage_serialize_failed" in log.events()


def test_save_reports_quota_exceeded(log: RecordingHandler) -> None:
    medium = InMemoryMedium(capacity=120)
    store = VersionedKeyValueStore(medium, "app", "1.0", logger=log.logger)

    assert store.save("big", "x" * 500) is False
    assert store.exists("big") is False
    assert "storage_quota_exceeded" in log.events()
    assert get_metrics().value("storage_write_failures", {"app": "app", "slot": "big"}) == 1


def test_save_returns_false_when_medium_fails(log: RecordingHandler) -> None:
    medium = FailingMedium()
    store = VersionedKeyValueStore(medium, "app", "1.0", logger=log.logger)
    medium.fail_set = True

    assert store.save("slot", [1]) is False
    error_events = [getattr(r, "event", None) for r in log.at_level(logging.ERROR)]
    assert "storage_write_failed" in error_events


def test_load_returns_default_when_medium_fails(log: RecordingHandler) -> None:
    medium = FailingMedium()
    store = VersionedKeyValueStore(medium, "app", "1.0", logger=log.logger)
    store.save("slot", [1])
    medium.fail_get = True

    assert store.load("slot", "default") == "default"
    assert store.exists("slot") is False
    exists_failures = [
        r for r in log.at_level(logging.ERROR) if getattr(r, "event", None) == "storage_exists_failed"
    ]
    assert [r.slot for r in exists_failures] == ["slot"]
    assert exists_failures[0].exc_info is not None


def test_get_entities_logs_when_keys_fail(log: RecordingHandler) -> None:
    medium = FailingMedium()
    store = VersionedKeyValueStore(medium, "app", "1.0", logger=log.logger)
    store.save("slot", [1])
    medium.fail_keys = True

    assert store.get_entities() == set()
    assert "storage_entities_failed" in log.events()
    assert get_metrics().value("storage_read_failures", {"app": "app"}) == 1


def test_export_skips_and_logs_unreadable_keys(log: RecordingHandler) -> None:
    medium = FailingMedium()
    store = VersionedKeyValueStore(medium, "app", "1.0", logger=log.logger)
    store.save("slot", [1])
    medium.fail_get = True

    snapshot = store.export_data()
    assert snapshot.data == {}
    skipped = [r for r in log.records if getattr(r, "event", None) == "storage_export_read_failed"]
    assert {r.key for r in skipped} == {"app_slot", "app__metadata"}
    assert get_metrics().value("storage_read_failures", {"app": "app"}) == 2


def test_remove_deletes_value_and_metadata(medium: InMemoryMedium, store: VersionedKeyValueStore) -> None:
    store.save("todo", [1])
    assert store.remove("todo") is True
    assert medium.get("testapp_todo") is None
    assert "todo" not in store.get_metadata().entities
    # Removing a missing slot still succeeds
    assert store.remove("todo") is True


def test_remove_reports_medium_failure(log: RecordingHandler) -> None:
    medium = FailingMedium()
    store = VersionedKeyValueStore(medium, "app", "1.0", logger=log.logger)
    store.save("slot", 1)
    medium.fail_delete = True

    assert store.remove("slot") is False
    assert store.exists("slot") is True


def test_exists(store: VersionedKeyValueStore) -> None:
    assert store.exists("a") is False
    store.save("a", 0)
    assert store.exists("a") is True


def test_clear_only_touches_own_namespace(medium: InMemoryMedium, store: VersionedKeyValueStore) -> None:
    medium.set("otherapp_tasks", "[]")
    medium.set("unrelated", "1")
    store.save("tasks", [])
    store.save("settings", {})

    assert store.clear() is True
    assert [k for k in medium.keys() if k.startswith("testapp_")] == []
    assert medium.get("otherapp_tasks") == "[]"
    assert medium.get("unrelated") == "1"


def test_clear_reports_partial_failure(log: RecordingHandler) -> None:
    medium = FailingMedium()
    store = VersionedKeyValueStore(medium, "app", "1.0", logger=log.logger)
    store.save("a", 1)
    medium.fail_delete = True

    assert store.clear() is False
    assert "storage_clear_partial" in log.events()


def test_get_entities_excludes_metadata(medium: InMemoryMedium, store: VersionedKeyValueStore) -> None:
    medium.set("foreign_x", "1")
    store.save("tasks", [])
    store.save("settings", {})
    assert store.get_entities() == {"tasks", "settings"}


def test_get_metadata_survives_corrupt_record(medium: InMemoryMedium, store: VersionedKeyValueStore) -> None:
    medium.set("testapp__metadata", "garbage")
    assert store.get_metadata() == StoreMetadata()
    # A later save rewrites a valid record
    assert store.save("x", 1) is True
    assert set(store.get_metadata().entities) == {"x"}


def test_storage_info_sizes(medium: InMemoryMedium, store: VersionedKeyValueStore) -> None:
    medium.set("zz", "abc")
    store.save("s", "v")

    info = store.get_storage_info()
    meta_key = "testapp__metadata"
    app_size = len("testapp_s") + len('"v"') + len(meta_key) + len(medium.get(meta_key) or "")
    assert info.available is True
    assert info.app_item_count == 2
    assert info.total_item_count == 3
    assert info.app_size == app_size
    assert info.total_size == app_size + len("zz") + len("abc")
    assert info.usage_percentage == round(app_size / info.total_size * 100)


def test_storage_info_when_unavailable() -> None:
    medium = FailingMedium()
    store = VersionedKeyValueStore(medium, "app", "1.0")
    medium.available = False

    info = store.get_storage_info()
    assert info.available is False
    assert info.error
