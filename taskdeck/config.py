from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any

BACKENDS = ("memory", "file", "redis")


@dataclass(slots=True)
class StoreConfig:
    app_name: str
    schema_version: str
    backend: str
    data_file: str
    capacity: int | None
    redis_url: str
    due_soon_days: int


def _read_int(raw: Any, default: int) -> int:
    text = str(raw or "").strip()
    if not text:
        return default
    try:
        return int(text)
    except ValueError:
        return default


def load_config(env: dict[str, str] | None = None) -> StoreConfig:
    e: dict[str, Any] = dict(os.environ)
    if env:
        e.update(env)
    backend = (e.get("TASKDECK_BACKEND") or "file").strip().lower()
    if backend not in BACKENDS:
        backend = "file"
    # 0 (or less) means no capacity bound
    capacity = _read_int(e.get("TASKDECK_CAPACITY"), 5_000_000)
    due_soon_days = _read_int(e.get("TASKDECK_DUE_SOON_DAYS"), 3)
    return StoreConfig(
        app_name=(e.get("TASKDECK_APP_NAME") or "").strip() or "taskdeck",
        schema_version=(e.get("TASKDECK_SCHEMA_VERSION") or "").strip() or "1.0",
        backend=backend,
        data_file=(e.get("TASKDECK_DATA_FILE") or "").strip() or ".local/taskdeck/store.json",
        capacity=capacity if capacity > 0 else None,
        redis_url=(e.get("REDIS_URL") or "").strip() or "redis://localhost:6379/0",
        due_soon_days=max(0, due_soon_days),
    )


__all__ = ["BACKENDS", "StoreConfig", "load_config"]
