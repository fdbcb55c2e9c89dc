from __future__ import annotations

from .interface import KeyValueMedium, StorageError, StorageQuotaError, StorageUnavailableError
from .memory import InMemoryMedium, JsonFileMedium
from .models import EntityMetadata, ExportEntry, ExportSnapshot, StorageInfo, StoreMetadata
from .store import METADATA_SLOT, VersionedKeyValueStore

__all__ = [
    "METADATA_SLOT",
    "EntityMetadata",
    "ExportEntry",
    "ExportSnapshot",
    "InMemoryMedium",
    "JsonFileMedium",
    "KeyValueMedium",
    "StorageError",
    "StorageInfo",
    "StorageQuotaError",
    "StorageUnavailableError",
    "StoreMetadata",
    "VersionedKeyValueStore",
]
