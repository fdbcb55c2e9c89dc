from __future__ import annotations

import datetime as dt
import json
import logging
import os
from collections.abc import Iterable
from pathlib import Path

from taskdeck.observability import get_json_logger

from .interface import StorageError, StorageQuotaError, StorageUnavailableError


class InMemoryMedium:
    """Capacity-bounded, insertion-ordered in-process medium.

    ``capacity`` is measured like browser local storage: the sum of
    ``len(key) + len(value)`` over every item. ``None`` means unbounded.
    """

    def __init__(self, capacity: int | None = 5_000_000) -> None:
        self._items: dict[str, str] = {}
        self._capacity = capacity

    @property
    def capacity(self) -> int | None:
        return self._capacity

    def used(self) -> int:
        return sum(len(k) + len(v) for k, v in self._items.items())

    def _check_quota(self, key: str, value: str) -> None:
        if self._capacity is None:
            return
        current = self._items.get(key)
        freed = len(key) + len(current) if current is not None else 0
        needed = self.used() - freed + len(key) + len(value)
        if needed > self._capacity:
            raise StorageQuotaError(
                f"capacity exceeded: need {needed} of {self._capacity} for key {key!r}"
            )

    def get(self, key: str) -> str | None:
        return self._items.get(key)

    def set(self, key: str, value: str) -> None:
        self._check_quota(key, value)
        self._items[key] = value

    def delete(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> Iterable[str]:
        return list(self._items)

    def is_available(self) -> bool:
        return True


class JsonFileMedium(InMemoryMedium):
    """In-memory medium mirrored to a single JSON object file.

    The file is read once at construction and rewritten (tmp file + replace)
    after every set/delete. A missing file starts empty. A file whose content
    is not a JSON object is renamed to ``<name>.corrupt-<utc stamp>`` and the
    medium starts empty; a file that cannot be read at all raises
    StorageUnavailableError.
    """

    def __init__(
        self,
        path: str | Path,
        capacity: int | None = 5_000_000,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(capacity=capacity)
        self._path = Path(path)
        self._logger = logger or get_json_logger("taskdeck.storage")
        self.quarantined: Path | None = None
        self._items = self._read_file()

    @property
    def path(self) -> Path:
        return self._path

    def _read_file(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            text = self._path.read_bytes()
        except OSError as exc:
            raise StorageUnavailableError(f"cannot read {self._path}", exc) from exc
        try:
            data = json.loads(text)
        except ValueError as exc:
            self._quarantine(str(exc))
            return {}
        if not isinstance(data, dict):
            self._quarantine(f"expected a JSON object, got {type(data).__name__}")
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _quarantine(self, reason: str) -> None:
        """Move a corrupt data file aside so later flushes cannot overwrite it."""
        stamp = dt.datetime.now(dt.UTC).strftime("%Y%m%dT%H%M%S%fZ")
        target = self._path.with_name(f"{self._path.name}.corrupt-{stamp}")
        try:
            os.replace(self._path, target)
        except OSError as exc:
            raise StorageUnavailableError(f"cannot move corrupt {self._path} aside", exc) from exc
        self.quarantined = target
        self._logger.warning(
            "data file is corrupt; moved aside and starting empty",
            extra={"event": "storage_file_corrupt", "key": str(target), "attributes": {"reason": reason}},
        )

    def _flush(self) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
            tmp_path.write_text(json.dumps(self._items, ensure_ascii=False), "utf-8")
            os.replace(tmp_path, self._path)
        except OSError as exc:
            raise StorageError(f"cannot write {self._path}", exc) from exc

    def set(self, key: str, value: str) -> None:
        self._check_quota(key, value)
        previous = self._items.get(key)
        self._items[key] = value
        try:
            self._flush()
        except StorageError:
            # Keep memory and file in step when the write did not land.
            if previous is None:
                self._items.pop(key, None)
            else:
                self._items[key] = previous
            raise

    def delete(self, key: str) -> None:
        if key not in self._items:
            return
        previous = self._items.pop(key)
        try:
            self._flush()
        except StorageError:
            self._items[key] = previous
            raise

    def is_available(self) -> bool:
        parent = self._path.parent
        return os.access(parent if parent.exists() else Path.cwd(), os.W_OK)


__all__ = ["InMemoryMedium", "JsonFileMedium"]
