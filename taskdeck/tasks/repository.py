from __future__ import annotations

import datetime as _dt
import logging
from collections import Counter
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from taskdeck.observability import get_json_logger, get_metrics
from taskdeck.storage import VersionedKeyValueStore

from .changes import TaskChange, parse_changes
from .models import (
    PRIORITY_WEIGHTS,
    TaskCategory,
    TaskError,
    TaskPriority,
    TaskRecord,
    TaskStatus,
    TaskValidationError,
    new_task_id,
    normalize_tag,
)

TASKS_SLOT = "tasks"

_CAMEL_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ----------------------------
# Load results
# ----------------------------
@dataclass(frozen=True, slots=True)
class SkippedRecord:
    index: int
    raw: Any
    error: str


@dataclass(slots=True)
class LoadResult:
    records: list[TaskRecord] = field(default_factory=list)
    skipped: list[SkippedRecord] = field(default_factory=list)


# ----------------------------
# Query / stats models
# ----------------------------
class TaskFilter(BaseModel):
    """AND-combined record constraints; unset (None) fields do not constrain."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    priority: TaskPriority | None = None
    status: TaskStatus | None = None
    category: TaskCategory | None = None
    owner_id: str | None = None
    assignee_id: str | None = None
    is_completed: bool | None = None

    @field_validator("priority", "status", "category", mode="before")
    @classmethod
    def _normalize(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    def matches(self, record: TaskRecord) -> bool:
        if self.priority is not None and record.priority != self.priority:
            return False
        if self.status is not None and record.status != self.status:
            return False
        if self.category is not None and record.category != self.category:
            return False
        if self.owner_id is not None and record.owner_id != self.owner_id:
            return False
        if self.assignee_id is not None and record.assignee_id != self.assignee_id:
            return False
        if self.is_completed is not None and record.is_completed != self.is_completed:
            return False
        return True


class TaskStats(BaseModel):
    model_config = _CAMEL_CONFIG

    total: int = 0
    completed: int = 0
    pending: int = 0
    by_category: dict[TaskCategory, int] = Field(default_factory=dict)
    by_priority: dict[TaskPriority, int] = Field(default_factory=dict)


class CategoryCounts(BaseModel):
    model_config = _CAMEL_CONFIG

    total: int = 0
    completed: int = 0
    pending: int = 0


class CategoryUsage(BaseModel):
    model_config = _CAMEL_CONFIG

    category: TaskCategory
    count: int


# ----------------------------
# Sorting
# ----------------------------
_SORT_KEYS: dict[str, Callable[[TaskRecord], Any]] = {
    "title": lambda r: r.title.casefold(),
    # Records without a date sort after every dated record.
    "dueDate": lambda r: (r.due_date is None, r.due_date or _dt.date.min),
    "createdAt": lambda r: r.created_at,
    "priority": lambda r: -PRIORITY_WEIGHTS[r.priority],
}
_SORT_ALIASES = {"due_date": "dueDate", "created_at": "createdAt"}


def sort_records(
    records: Iterable[TaskRecord],
    field: str = "createdAt",
    direction: str = "asc",
) -> list[TaskRecord]:
    """Stable sort by ``title``, ``dueDate``, ``createdAt`` or ``priority``.

    Ascending priority lists high first. ``desc`` reverses the comparison; ties
    keep their input order either way.
    """
    name = _SORT_ALIASES.get(field, field)
    key = _SORT_KEYS.get(name)
    if key is None:
        raise TaskValidationError(f"unknown sort field: {field!r}")
    order = direction.strip().lower() if isinstance(direction, str) else direction
    if order not in ("asc", "desc"):
        raise TaskValidationError(f"unknown sort direction: {direction!r}")
    return sorted(records, key=key, reverse=order == "desc")


class TaskRepository:
    """In-memory task collection persisted as one array in the ``tasks`` slot.

    Records are loaded once at construction and kept in insertion order. Every
    successful mutation writes the whole collection back through the store.
    """

    def __init__(
        self,
        store: VersionedKeyValueStore,
        *,
        slot: str = TASKS_SLOT,
        logger: logging.Logger | None = None,
    ) -> None:
        self._store = store
        self._slot = slot
        self._logger = logger or get_json_logger("taskdeck.tasks")
        self._tasks: dict[str, TaskRecord] = {}
        self.last_load = LoadResult()
        self.reload()

    @property
    def store(self) -> VersionedKeyValueStore:
        return self._store

    def __len__(self) -> int:
        return len(self._tasks)

    # ----------------------------
    # Loading / persistence
    # ----------------------------
    def _load(self) -> LoadResult:
        raw = self._store.load(self._slot, [])
        result = LoadResult()
        if not isinstance(raw, list):
            skipped = SkippedRecord(index=-1, raw=raw, error="stored tasks are not a list")
            result.skipped.append(skipped)
            return result
        seen: set[str] = set()
        for index, item in enumerate(raw):
            try:
                record = TaskRecord.from_snapshot(item)
            except TaskValidationError as exc:
                result.skipped.append(SkippedRecord(index=index, raw=item, error=str(exc)))
                continue
            if record.id in seen:
                result.skipped.append(
                    SkippedRecord(index=index, raw=item, error=f"duplicate task id {record.id!r}")
                )
                continue
            seen.add(record.id)
            result.records.append(record)
        return result

    def reload(self) -> LoadResult:
        """Re-read the stored collection, replacing what is held in memory."""
        result = self._load()
        self._tasks = {r.id: r for r in result.records}
        self.last_load = result
        for skipped in result.skipped:
            self._logger.warning(
                f"skipping stored task: {skipped.error}",
                extra={
                    "event": "task_load_skipped",
                    "slot": self._slot,
                    "attributes": {"index": skipped.index},
                },
            )
            get_metrics().increment("task_load_skipped", {"slot": self._slot})
        self._logger.debug(
            f"loaded {len(result.records)} tasks",
            extra={"event": "tasks_loaded", "slot": self._slot},
        )
        return result

    def _persist(self) -> bool:
        ok = self._store.save(self._slot, [r.to_snapshot() for r in self._tasks.values()])
        if not ok:
            self._logger.error(
                "failed to persist tasks; previous stored snapshot kept",
                extra={"event": "tasks_persist_failed", "slot": self._slot},
            )
        return ok

    def _mutated(self, action: str, record_id: str, owner_id: str | None = None) -> None:
        get_metrics().increment("task_mutations", {"action": action})
        self._logger.info(
            f"task {action}",
            extra={"event": f"task_{action}", "task_id": record_id, "owner_id": owner_id},
        )
        self._persist()

    def _rejected(self, action: str, exc: TaskError, record_id: str | None = None) -> None:
        get_metrics().increment("task_validation_errors", {"action": action})
        self._logger.warning(
            f"task {action} rejected: {exc}",
            extra={"event": "task_validation_failed", "task_id": record_id},
        )

    # ----------------------------
    # CRUD
    # ----------------------------
    def create(self, data: Mapping[str, Any]) -> TaskRecord:
        try:
            record = TaskRecord.new(data)
        except TaskValidationError as exc:
            self._rejected("create", exc)
            raise
        while record.id in self._tasks:
            record = record.model_copy(update={"id": new_task_id()})
        self._tasks[record.id] = record
        self._mutated("created", record.id, record.owner_id)
        return record

    def find_by_id(self, task_id: str) -> TaskRecord | None:
        return self._tasks.get(task_id)

    def find_all(self) -> list[TaskRecord]:
        return list(self._tasks.values())

    def update(
        self,
        task_id: str,
        changes: Mapping[str, Any] | Sequence[TaskChange],
    ) -> TaskRecord | None:
        """Apply changes in order to a copy of the record; all or nothing.

        A TaskValidationError from any change leaves the stored record as it
        was and is re-raised.
        """
        record = self._tasks.get(task_id)
        if record is None:
            return None
        if isinstance(changes, Mapping):
            operations, ignored = parse_changes(changes)
            if ignored:
                self._logger.debug(
                    "ignoring unknown update keys",
                    extra={
                        "event": "task_update_ignored",
                        "task_id": task_id,
                        "attributes": {"keys": ignored},
                    },
                )
        elif isinstance(changes, str | bytes) or not isinstance(changes, Iterable):
            exc = TaskValidationError("changes must be a mapping or a sequence of task changes")
            self._rejected("update", exc, task_id)
            raise exc
        else:
            operations = list(changes)
            stray = [op for op in operations if not isinstance(op, TaskChange)]
            if stray:
                exc = TaskValidationError(f"not a task change: {stray[0]!r}")
                self._rejected("update", exc, task_id)
                raise exc
        if not operations:
            return record

        working = record.model_copy(deep=True)
        try:
            for op in operations:
                op.apply(working)
        except TaskValidationError as exc:
            self._rejected("update", exc, task_id)
            raise
        self._tasks[task_id] = working
        self._mutated("updated", task_id, working.owner_id)
        return working

    def delete(self, task_id: str) -> bool:
        record = self._tasks.pop(task_id, None)
        if record is None:
            return False
        self._mutated("deleted", task_id, record.owner_id)
        return True

    # ----------------------------
    # Queries
    # ----------------------------
    def _where(self, predicate: Callable[[TaskRecord], bool]) -> list[TaskRecord]:
        return [r for r in self._tasks.values() if predicate(r)]

    def find_by_owner(self, owner_id: str) -> list[TaskRecord]:
        return self._where(lambda r: r.owner_id == owner_id)

    def find_by_assignee(self, assignee_id: str) -> list[TaskRecord]:
        return self._where(lambda r: r.assignee_id == assignee_id)

    def find_by_category(self, category: TaskCategory | str) -> list[TaskRecord]:
        return self._where(lambda r: r.category == category)

    def find_by_status(self, status: TaskStatus | str) -> list[TaskRecord]:
        return self._where(lambda r: r.status == status)

    def find_by_priority(self, priority: TaskPriority | str) -> list[TaskRecord]:
        return self._where(lambda r: r.priority == priority)

    def find_by_tag(self, tag: str) -> list[TaskRecord]:
        if not isinstance(tag, str) or not tag.strip():
            return []
        normalized = normalize_tag(tag)
        return self._where(lambda r: normalized in r.tags)

    def find_overdue(self) -> list[TaskRecord]:
        return self._where(lambda r: r.is_overdue)

    def find_due_soon(self, within_days: int = 3) -> list[TaskRecord]:
        def due_soon(r: TaskRecord) -> bool:
            days = r.days_until_due
            return days is not None and 0 <= days <= within_days and not r.is_completed

        return self._where(due_soon)

    def filter(self, criteria: TaskFilter | Mapping[str, Any]) -> list[TaskRecord]:
        if not isinstance(criteria, TaskFilter):
            try:
                criteria = TaskFilter.model_validate(dict(criteria))
            except ValidationError as exc:
                message = f"invalid filter: {exc.error_count()} error(s)"
                raise TaskValidationError(message, cause=exc) from exc
        return self._where(criteria.matches)

    def search(self, query: str) -> list[TaskRecord]:
        needle = (query or "").strip().casefold()
        if not needle:
            return self.find_all()
        return self._where(
            lambda r: needle in r.title.casefold() or needle in r.description.casefold()
        )

    def sort(
        self,
        records: Iterable[TaskRecord],
        field: str = "createdAt",
        direction: str = "asc",
    ) -> list[TaskRecord]:
        return sort_records(records, field, direction)

    # ----------------------------
    # Statistics
    # ----------------------------
    def _owned(self, owner_id: str | None) -> list[TaskRecord]:
        if owner_id is None:
            return self.find_all()
        return self.find_by_owner(owner_id)

    def get_stats(self, owner_id: str | None = None) -> TaskStats:
        records = self._owned(owner_id)
        completed = sum(1 for r in records if r.is_completed)
        categories = Counter(r.category for r in records)
        priorities = Counter(r.priority for r in records)
        return TaskStats(
            total=len(records),
            completed=completed,
            pending=len(records) - completed,
            by_category={c: categories[c] for c in TaskCategory if categories[c]},
            by_priority={p: priorities[p] for p in TaskPriority if priorities[p]},
        )

    def get_category_stats(self, owner_id: str | None = None) -> dict[TaskCategory, CategoryCounts]:
        stats = {c: CategoryCounts() for c in TaskCategory}
        for r in self._owned(owner_id):
            counts = stats[r.category]
            counts.total += 1
            if r.is_completed:
                counts.completed += 1
            else:
                counts.pending += 1
        return stats

    def get_most_used_categories(
        self,
        owner_id: str | None = None,
        limit: int | None = 5,
    ) -> list[CategoryUsage]:
        stats = self.get_category_stats(owner_id)
        usage = [CategoryUsage(category=c, count=counts.total) for c, counts in stats.items()]
        usage.sort(key=lambda u: -u.count)
        if limit is None:
            return usage
        return usage[: max(0, limit)]


__all__ = [
    "TASKS_SLOT",
    "CategoryCounts",
    "CategoryUsage",
    "LoadResult",
    "SkippedRecord",
    "TaskFilter",
    "TaskRepository",
    "TaskStats",
    "sort_records",
]
