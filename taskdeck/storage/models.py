from __future__ import annotations

import datetime as _dt
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

CAMEL_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _utcnow() -> _dt.datetime:
    return _dt.datetime.now(_dt.UTC)


class EntityMetadata(BaseModel):
    model_config = CAMEL_CONFIG

    last_updated: _dt.datetime = Field(default_factory=_utcnow)
    version: str


class StoreMetadata(BaseModel):
    """Per-slot bookkeeping persisted under ``<app>__metadata``."""

    model_config = CAMEL_CONFIG

    entities: dict[str, EntityMetadata] = Field(default_factory=dict)


class StorageInfo(BaseModel):
    """Diagnostic usage snapshot; sizes are ``len(key) + len(value)`` sums."""

    model_config = CAMEL_CONFIG

    available: bool
    total_size: int = 0
    app_size: int = 0
    total_item_count: int = 0
    app_item_count: int = 0
    usage_percentage: int = 0
    error: str | None = None


class ExportEntry(BaseModel):
    model_config = CAMEL_CONFIG

    data: Any
    version: str | None = None


class ExportSnapshot(BaseModel):
    """Whole-namespace backup keyed by fully qualified medium keys.

    Only the camelCase wire names (``appName``, ``exportedAt``) are accepted,
    so build instances from a mapping in that shape.
    """

    model_config = ConfigDict(alias_generator=to_camel)

    app_name: str = Field(min_length=1)
    version: str | None = None
    exported_at: _dt.datetime | None = None
    data: dict[str, ExportEntry]

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


__all__ = [
    "EntityMetadata",
    "ExportEntry",
    "ExportSnapshot",
    "StorageInfo",
    "StoreMetadata",
]
