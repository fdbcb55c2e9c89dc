from __future__ import annotations

import pytest

from taskdeck.config import load_config


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "TASKDECK_APP_NAME",
        "TASKDECK_SCHEMA_VERSION",
        "TASKDECK_BACKEND",
        "TASKDECK_DATA_FILE",
        "TASKDECK_CAPACITY",
        "TASKDECK_DUE_SOON_DAYS",
        "REDIS_URL",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults() -> None:
    cfg = load_config()
    assert cfg.app_name == "taskdeck"
    assert cfg.schema_version == "1.0"
    assert cfg.backend == "file"
    assert cfg.data_file == ".local/taskdeck/store.json"
    assert cfg.capacity == 5_000_000
    assert cfg.redis_url == "redis://localhost:6379/0"
    assert cfg.due_soon_days == 3


def test_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TASKDECK_APP_NAME", "fromenv")
    cfg = load_config(
        {
            "TASKDECK_SCHEMA_VERSION": "2.1",
            "TASKDECK_BACKEND": " Memory ",
            "TASKDECK_DATA_FILE": "/tmp/x.json",
            "TASKDECK_CAPACITY": "0",
            "REDIS_URL": "redis://cache:6379/2",
            "TASKDECK_DUE_SOON_DAYS": "7",
        }
    )
    assert cfg.app_name == "fromenv"
    assert cfg.schema_version == "2.1"
    assert cfg.backend == "memory"
    assert cfg.data_file == "/tmp/x.json"
    assert cfg.capacity is None
    assert cfg.redis_url == "redis://cache:6379/2"
    assert cfg.due_soon_days == 7


def test_bad_values_fall_back() -> None:
    cfg = load_config({"TASKDECK_CAPACITY": "lots", "TASKDECK_DUE_SOON_DAYS": "-", "TASKDECK_BACKEND": "s3"})
    assert cfg.capacity == 5_000_000
    assert cfg.due_soon_days == 3
    assert cfg.backend == "file"
