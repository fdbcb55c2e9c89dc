from __future__ import annotations

import datetime as _dt
import json
import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from taskdeck.observability import get_json_logger, get_metrics

from .interface import KeyValueMedium, StorageError, StorageQuotaError
from .models import EntityMetadata, ExportEntry, ExportSnapshot, StorageInfo, StoreMetadata

METADATA_SLOT = "_metadata"


def _clean_slot(slot: Any) -> str | None:
    if not isinstance(slot, str):
        return None
    s = slot.strip()
    return s or None


class VersionedKeyValueStore:
    """Namespaced, versioned JSON store on top of a host key-value medium.

    Every slot lives under ``<app_name>_<slot>``; per-slot metadata
    (last update time and schema version) lives under ``<app_name>__metadata``.

    Storage failures never escape: writes return False, reads return the
    caller's default, and the condition is logged and counted.
    """

    def __init__(
        self,
        medium: KeyValueMedium,
        app_name: str = "taskdeck",
        version: str = "1.0",
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        if not isinstance(app_name, str) or not app_name.strip():
            raise ValueError("app_name must be a non-empty string")
        if not isinstance(version, str) or not version.strip():
            raise ValueError("version must be a non-empty string")
        self._medium = medium
        self._app_name = app_name.strip()
        self._version = version.strip()
        self._prefix = f"{self._app_name}_"
        self._metadata_key = self._key(METADATA_SLOT)
        self._logger = logger or get_json_logger("taskdeck.storage")
        self._ensure_metadata()

    @property
    def app_name(self) -> str:
        return self._app_name

    @property
    def version(self) -> str:
        return self._version

    @property
    def medium(self) -> KeyValueMedium:
        return self._medium

    # ----------------------------
    # Key / metadata helpers
    # ----------------------------
    def _key(self, slot: str) -> str:
        return f"{self._prefix}{slot}"

    def _labels(self, slot: str | None = None) -> dict[str, str]:
        labels = {"app": self._app_name}
        if slot is not None:
            labels["slot"] = slot
        return labels

    def _app_keys(self) -> list[str]:
        return [k for k in self._medium.keys() if k.startswith(self._prefix)]

    def _ensure_metadata(self) -> None:
        try:
            if self._medium.get(self._metadata_key) is None:
                self._medium.set(self._metadata_key, StoreMetadata().model_dump_json(by_alias=True))
        except StorageError as exc:
            self._logger.warning(
                "metadata init failed",
                extra={"event": "metadata_init_failed", "app_name": self._app_name},
                exc_info=exc,
            )

    def _read_metadata(self) -> StoreMetadata:
        try:
            raw = self._medium.get(self._metadata_key)
        except StorageError as exc:
            self._logger.error(
                "metadata read failed",
                extra={"event": "metadata_read_failed", "app_name": self._app_name},
                exc_info=exc,
            )
            get_metrics().increment("storage_read_failures", self._labels(METADATA_SLOT))
            return StoreMetadata()
        if raw is None:
            return StoreMetadata()
        try:
            return StoreMetadata.model_validate_json(raw)
        except ValidationError:
            self._logger.warning(
                "metadata corrupt; starting fresh",
                extra={"event": "metadata_corrupt", "app_name": self._app_name},
            )
            get_metrics().increment("storage_corrupt_reads", self._labels(METADATA_SLOT))
            return StoreMetadata()

    def _write_metadata(self, metadata: StoreMetadata) -> bool:
        try:
            self._medium.set(self._metadata_key, metadata.model_dump_json(by_alias=True))
            return True
        except StorageError as exc:
            self._logger.error(
                "metadata write failed",
                extra={"event": "metadata_write_failed", "app_name": self._app_name},
                exc_info=exc,
            )
            get_metrics().increment("storage_write_failures", self._labels(METADATA_SLOT))
            return False

    def _touch(self, entries: Mapping[str, str]) -> bool:
        metadata = self._read_metadata()
        for slot, version in entries.items():
            metadata.entities[slot] = EntityMetadata(version=version)
        return self._write_metadata(metadata)

    # ----------------------------
    # Public API
    # ----------------------------
    def save(self, slot: str, value: Any) -> bool:
        s = _clean_slot(slot)
        if s is None or s == METADATA_SLOT:
            self._logger.error(
                "invalid slot name",
                extra={"event": "storage_invalid_slot", "app_name": self._app_name, "slot": slot},
            )
            get_metrics().increment("storage_write_failures", self._labels())
            return False
        try:
            payload = json.dumps(value, ensure_ascii=False, allow_nan=False)
        except (TypeError, ValueError) as exc:
            self._logger.error(
                "value is not JSON serializable",
                extra={"event": "storage_serialize_failed", "app_name": self._app_name, "slot": s},
                exc_info=exc,
            )
            get_metrics().increment("storage_write_failures", self._labels(s))
            return False
        try:
            self._medium.set(self._key(s), payload)
        except StorageQuotaError as exc:
            self._logger.error(
                "storage quota exceeded; consider clearing old data",
                extra={"event": "storage_quota_exceeded", "app_name": self._app_name, "slot": s},
                exc_info=exc,
            )
            get_metrics().increment("storage_write_failures", self._labels(s))
            return False
        except StorageError as exc:
            self._logger.error(
                "storage write failed",
                extra={"event": "storage_write_failed", "app_name": self._app_name, "slot": s},
                exc_info=exc,
            )
            get_metrics().increment("storage_write_failures", self._labels(s))
            return False
        self._logger.debug(
            "slot saved",
            extra={"event": "storage_saved", "app_name": self._app_name, "slot": s},
        )
        return self._touch({s: self._version})

    def load(self, slot: str, default: Any = None) -> Any:
        s = _clean_slot(slot)
        if s is None:
            return default
        try:
            raw = self._medium.get(self._key(s))
        except StorageError as exc:
            self._logger.error(
                "storage read failed; using default",
                extra={"event": "storage_read_failed", "app_name": self._app_name, "slot": s},
                exc_info=exc,
            )
            get_metrics().increment("storage_read_failures", self._labels(s))
            return default
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError:
            self._logger.warning(
                "stored data is not valid JSON; using default",
                extra={"event": "storage_corrupt", "app_name": self._app_name, "slot": s},
            )
            get_metrics().increment("storage_corrupt_reads", self._labels(s))
            return default

    def remove(self, slot: str) -> bool:
        s = _clean_slot(slot)
        if s is None or s == METADATA_SLOT:
            return False
        try:
            self._medium.delete(self._key(s))
        except StorageError as exc:
            self._logger.error(
                "storage delete failed",
                extra={"event": "storage_delete_failed", "app_name": self._app_name, "slot": s},
                exc_info=exc,
            )
            get_metrics().increment("storage_write_failures", self._labels(s))
            return False
        metadata = self._read_metadata()
        if metadata.entities.pop(s, None) is not None:
            return self._write_metadata(metadata)
        return True

    def exists(self, slot: str) -> bool:
        s = _clean_slot(slot)
        if s is None:
            return False
        try:
            return self._medium.get(self._key(s)) is not None
        except StorageError as exc:
            self._logger.error(
                "storage existence check failed",
                extra={"event": "storage_exists_failed", "app_name": self._app_name, "slot": s},
                exc_info=exc,
            )
            get_metrics().increment("storage_read_failures", self._labels(s))
            return False

    def clear(self) -> bool:
        try:
            keys = self._app_keys()
        except StorageError as exc:
            self._logger.error(
                "cannot enumerate keys for clear",
                extra={"event": "storage_clear_failed", "app_name": self._app_name},
                exc_info=exc,
            )
            return False
        failed = 0
        for key in keys:
            try:
                self._medium.delete(key)
            except StorageError:
                failed += 1
                self._logger.warning(
                    "failed to remove key",
                    extra={
                        "event": "storage_clear_key_failed",
                        "app_name": self._app_name,
                        "key": key,
                    },
                )
        if failed:
            self._logger.warning(
                f"failed to remove {failed} of {len(keys)} keys",
                extra={"event": "storage_clear_partial", "app_name": self._app_name},
            )
        return failed == 0

    def get_entities(self) -> set[str]:
        try:
            keys = self._app_keys()
        except StorageError as exc:
            self._logger.error(
                "cannot enumerate keys for entities",
                extra={"event": "storage_entities_failed", "app_name": self._app_name},
                exc_info=exc,
            )
            get_metrics().increment("storage_read_failures", self._labels())
            return set()
        return {k[len(self._prefix) :] for k in keys if k != self._metadata_key}

    def get_metadata(self) -> StoreMetadata:
        return self._read_metadata()

    def get_storage_info(self) -> StorageInfo:
        if not self._medium.is_available():
            return StorageInfo(available=False, error="storage medium not available")
        total_size = 0
        app_size = 0
        total_count = 0
        app_count = 0
        try:
            for key in list(self._medium.keys()):
                total_count += 1
                value = self._medium.get(key)
                if value is None:
                    continue
                size = len(key) + len(value)
                total_size += size
                if key.startswith(self._prefix):
                    app_size += size
                    app_count += 1
        except StorageError as exc:
            self._logger.error(
                "storage info failed",
                extra={"event": "storage_info_failed", "app_name": self._app_name},
                exc_info=exc,
            )
            return StorageInfo(available=False, error=str(exc))
        return StorageInfo(
            available=True,
            total_size=total_size,
            app_size=app_size,
            total_item_count=total_count,
            app_item_count=app_count,
            usage_percentage=round(app_size / total_size * 100) if total_size > 0 else 0,
        )

    def export_data(self) -> ExportSnapshot:
        metadata = self._read_metadata()
        entries: dict[str, ExportEntry] = {}
        try:
            keys = self._app_keys()
        except StorageError as exc:
            self._logger.error(
                "export could not enumerate keys",
                extra={"event": "storage_export_failed", "app_name": self._app_name},
                exc_info=exc,
            )
            keys = []
        for key in keys:
            try:
                raw = self._medium.get(key)
            except StorageError as exc:
                self._logger.error(
                    "export read failed; skipping key",
                    extra={
                        "event": "storage_export_read_failed",
                        "app_name": self._app_name,
                        "key": key,
                    },
                    exc_info=exc,
                )
                get_metrics().increment("storage_read_failures", self._labels())
                continue
            if raw is None:
                continue
            try:
                data = json.loads(raw)
            except ValueError:
                self._logger.warning(
                    "skipping corrupt key in export",
                    extra={"event": "storage_export_skip", "app_name": self._app_name, "key": key},
                )
                get_metrics().increment("storage_corrupt_reads", self._labels())
                continue
            slot_meta = metadata.entities.get(key[len(self._prefix) :])
            entries[key] = ExportEntry(
                data=data,
                version=slot_meta.version if slot_meta is not None else self._version,
            )
        return ExportSnapshot.model_validate(
            {
                "appName": self._app_name,
                "version": self._version,
                "exportedAt": _dt.datetime.now(_dt.UTC),
                "data": entries,
            }
        )

    def import_data(self, snapshot: ExportSnapshot | Mapping[str, Any] | None) -> bool:
        try:
            snap = (
                snapshot
                if isinstance(snapshot, ExportSnapshot)
                else ExportSnapshot.model_validate(snapshot)
            )
        except ValidationError as exc:
            self._logger.error(
                "invalid import data: appName and data are required",
                extra={
                    "event": "storage_import_invalid",
                    "app_name": self._app_name,
                    "attributes": {"errors": exc.error_count()},
                },
            )
            get_metrics().increment("storage_import_failures", self._labels())
            return False

        if snap.app_name != self._app_name:
            self._logger.warning(
                f"importing data from a different app: {snap.app_name!r}",
                extra={
                    "event": "storage_import_foreign_app",
                    "app_name": self._app_name,
                    "attributes": {"source_app": snap.app_name},
                },
            )

        try:
            payloads = {
                key: json.dumps(entry.data, ensure_ascii=False, allow_nan=False)
                for key, entry in snap.data.items()
            }
        except (TypeError, ValueError) as exc:
            self._logger.error(
                "import data is not JSON serializable",
                extra={"event": "storage_import_invalid", "app_name": self._app_name},
                exc_info=exc,
            )
            get_metrics().increment("storage_import_failures", self._labels())
            return False

        touched: dict[str, str] = {}
        for key, payload in payloads.items():
            try:
                # Keys are already fully qualified; write them as-is.
                self._medium.set(key, payload)
            except StorageError as exc:
                self._logger.error(
                    "import write failed",
                    extra={
                        "event": "storage_import_failed",
                        "app_name": self._app_name,
                        "key": key,
                    },
                    exc_info=exc,
                )
                get_metrics().increment("storage_import_failures", self._labels())
                return False
            if key.startswith(self._prefix) and key != self._metadata_key:
                touched[key[len(self._prefix) :]] = snap.data[key].version or self._version

        self._logger.info(
            f"imported {len(payloads)} keys",
            extra={"event": "storage_imported", "app_name": self._app_name},
        )
        if touched:
            return self._touch(touched)
        return True


__all__ = ["METADATA_SLOT", "VersionedKeyValueStore"]
