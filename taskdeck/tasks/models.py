from __future__ import annotations

import datetime as _dt
import uuid
from collections.abc import Iterable, Mapping
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 1000


class TaskCategory(StrEnum):
    WORK = "work"
    PERSONAL = "personal"
    FINANCE = "finance"
    STUDY = "study"
    HEALTH = "health"
    OTHER = "other"


class TaskStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


class TaskPriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


PRIORITY_WEIGHTS: dict[TaskPriority, int] = {
    TaskPriority.HIGH: 3,
    TaskPriority.MEDIUM: 2,
    TaskPriority.LOW: 1,
}

CATEGORY_DISPLAY_NAMES: dict[TaskCategory, str] = {
    TaskCategory.WORK: "Work",
    TaskCategory.PERSONAL: "Personal",
    TaskCategory.FINANCE: "Finance",
    TaskCategory.STUDY: "Study",
    TaskCategory.HEALTH: "Health",
    TaskCategory.OTHER: "Other",
}

# Fields a caller may not choose when creating a task.
_GENERATED_FIELDS = ("id", "createdAt", "created_at", "updatedAt", "updated_at")


class TaskError(Exception):
    """Base error for task model and repository failures."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class TaskValidationError(TaskError, ValueError):
    """Invalid task input (empty title, unknown enum value, bad date, ...)."""


def utc_now() -> _dt.datetime:
    return _dt.datetime.now(_dt.UTC)


def utc_today() -> _dt.date:
    return utc_now().date()


def new_task_id() -> str:
    return f"task_{uuid.uuid4().hex}"


def _describe(exc: ValidationError) -> str:
    parts: list[str] = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "task"
        msg = str(err.get("msg", "invalid value")).removeprefix("Value error, ")
        parts.append(f"{loc}: {msg}")
    return "; ".join(parts)


def _normalize_choice(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().lower()
    return value


def normalize_tag(tag: Any) -> str:
    if not isinstance(tag, str) or not tag.strip():
        raise TaskValidationError("tag must be a non-empty string")
    return tag.strip().lower()


class TaskRecord(BaseModel):
    """A task as held by the repository.

    Stored fields round-trip through ``to_snapshot``/``from_snapshot`` using
    camelCase keys. ``is_completed``, ``is_overdue`` and ``days_until_due`` are
    computed on every read and never persisted.

    Mutate through the field operations (``rename``, ``set_status``, ...): each
    one validates, raises TaskValidationError on bad input and refreshes
    ``updated_at``.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
        extra="ignore",
    )

    id: str = Field(default_factory=new_task_id, min_length=1, frozen=True)
    title: str
    description: str = ""
    owner_id: str = Field(frozen=True)
    assignee_id: str | None = None
    category: TaskCategory = TaskCategory.OTHER
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    tags: list[str] = Field(default_factory=list)
    due_date: _dt.date | None = None
    estimated_hours: float = Field(default=0.0, ge=0)
    time_spent: float = Field(default=0.0, ge=0)
    notes: list[str] = Field(default_factory=list)
    created_at: _dt.datetime = Field(default_factory=utc_now)
    updated_at: _dt.datetime = Field(default_factory=utc_now)

    # ----------------------------
    # Field validation
    # ----------------------------
    @field_validator("title", mode="before")
    @classmethod
    def _check_title(cls, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("title is required and must be a non-empty string")
        title = value.strip()
        if len(title) > TITLE_MAX_LENGTH:
            raise ValueError(f"title cannot exceed {TITLE_MAX_LENGTH} characters")
        return title

    @field_validator("description", mode="before")
    @classmethod
    def _check_description(cls, value: Any) -> str:
        if value is None:
            return ""
        if not isinstance(value, str):
            raise ValueError("description must be a string")
        description = value.strip()
        if len(description) > DESCRIPTION_MAX_LENGTH:
            raise ValueError(f"description cannot exceed {DESCRIPTION_MAX_LENGTH} characters")
        return description

    @field_validator("owner_id", mode="before")
    @classmethod
    def _check_owner(cls, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("ownerId is required")
        return value.strip()

    @field_validator("assignee_id", mode="before")
    @classmethod
    def _check_assignee(cls, value: Any) -> str | None:
        if value is None:
            return None
        if not isinstance(value, str):
            raise ValueError("assigneeId must be a string")
        return value.strip() or None

    @field_validator("category", "priority", mode="before")
    @classmethod
    def _check_choice(cls, value: Any) -> Any:
        return _normalize_choice(value)

    @field_validator("status", mode="before")
    @classmethod
    def _check_status(cls, value: Any) -> Any:
        value = _normalize_choice(value)
        if isinstance(value, str):
            return value.replace("_", "-")
        return value

    @field_validator("tags", mode="before")
    @classmethod
    def _check_tags(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str) or not isinstance(value, Iterable):
            raise ValueError("tags must be a list of strings")
        tags: list[str] = []
        for tag in value:
            if not isinstance(tag, str) or not tag.strip():
                raise ValueError("tags must be non-empty strings")
            normalized = tag.strip().lower()
            if normalized not in tags:
                tags.append(normalized)
        return tags

    @field_validator("due_date", mode="before")
    @classmethod
    def _check_due_date(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        if isinstance(value, _dt.datetime):
            return value.date()
        if isinstance(value, str) and "T" in value:
            # Full timestamps keep only their calendar date.
            return _dt.datetime.fromisoformat(value.strip()).date()
        return value

    @field_validator("notes", mode="before")
    @classmethod
    def _check_notes(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("created_at", "updated_at")
    @classmethod
    def _assume_utc(cls, value: _dt.datetime) -> _dt.datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=_dt.UTC)
        return value

    @model_validator(mode="after")
    def _check_timestamps(self) -> TaskRecord:
        if self.updated_at < self.created_at:
            raise ValueError("updatedAt cannot be earlier than createdAt")
        return self

    # ----------------------------
    # Construction / snapshots
    # ----------------------------
    @classmethod
    def new(cls, data: Mapping[str, Any]) -> TaskRecord:
        """Build a fresh record from caller input; id and timestamps are generated."""
        if not isinstance(data, Mapping):
            raise TaskValidationError("task data must be a mapping")
        fields = {k: v for k, v in data.items() if k not in _GENERATED_FIELDS}
        try:
            return cls.model_validate(fields)
        except ValidationError as exc:
            raise TaskValidationError(_describe(exc), cause=exc) from exc

    @classmethod
    def from_snapshot(cls, data: Any) -> TaskRecord:
        if not isinstance(data, Mapping):
            raise TaskValidationError("invalid data provided for task reconstruction")
        try:
            return cls.model_validate(dict(data))
        except ValidationError as exc:
            raise TaskValidationError(_describe(exc), cause=exc) from exc

    def to_snapshot(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    # ----------------------------
    # Derived fields
    # ----------------------------
    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED

    @property
    def days_until_due(self) -> int | None:
        if self.due_date is None:
            return None
        return (self.due_date - utc_today()).days

    @property
    def is_overdue(self) -> bool:
        days = self.days_until_due
        return days is not None and days < 0 and not self.is_completed

    @property
    def category_display_name(self) -> str:
        return CATEGORY_DISPLAY_NAMES[self.category]

    # ----------------------------
    # Field operations
    # ----------------------------
    def _apply(self, **changes: Any) -> None:
        try:
            for name, value in changes.items():
                setattr(self, name, value)
            self.updated_at = max(utc_now(), self.created_at)
        except ValidationError as exc:
            raise TaskValidationError(_describe(exc), cause=exc) from exc

    def rename(self, title: str) -> None:
        self._apply(title=title)

    def redescribe(self, description: str | None) -> None:
        self._apply(description=description)

    def set_category(self, category: TaskCategory | str) -> None:
        self._apply(category=category)

    def set_priority(self, priority: TaskPriority | str) -> None:
        self._apply(priority=priority)

    def set_status(self, status: TaskStatus | str) -> None:
        self._apply(status=status)

    def mark_complete(self) -> None:
        self.set_status(TaskStatus.COMPLETED)

    def mark_incomplete(self) -> None:
        self.set_status(TaskStatus.PENDING)

    def set_due_date(self, due_date: _dt.date | _dt.datetime | str | None) -> None:
        self._apply(due_date=due_date)

    def assign_to(self, assignee_id: str | None) -> None:
        self._apply(assignee_id=assignee_id)

    def set_estimated_hours(self, hours: float) -> None:
        if isinstance(hours, bool) or not isinstance(hours, int | float):
            raise TaskValidationError("estimatedHours must be a number")
        self._apply(estimated_hours=float(hours))

    def add_time_spent(self, hours: float) -> None:
        if isinstance(hours, bool) or not isinstance(hours, int | float):
            raise TaskValidationError("time spent must be a number")
        if hours <= 0:
            raise TaskValidationError("time spent must be positive")
        self._apply(time_spent=self.time_spent + float(hours))

    def add_tag(self, tag: str) -> None:
        normalized = normalize_tag(tag)
        if normalized in self.tags:
            return
        self._apply(tags=[*self.tags, normalized])

    def remove_tag(self, tag: str) -> None:
        normalized = normalize_tag(tag)
        if normalized not in self.tags:
            return
        self._apply(tags=[t for t in self.tags if t != normalized])

    def add_note(self, note: str) -> None:
        if not isinstance(note, str) or not note.strip():
            raise TaskValidationError("note must be a non-empty string")
        self._apply(notes=[*self.notes, note.strip()])


__all__ = [
    "CATEGORY_DISPLAY_NAMES",
    "DESCRIPTION_MAX_LENGTH",
    "PRIORITY_WEIGHTS",
    "TITLE_MAX_LENGTH",
    "TaskCategory",
    "TaskError",
    "TaskPriority",
    "TaskRecord",
    "TaskStatus",
    "TaskValidationError",
    "new_task_id",
    "normalize_tag",
    "utc_now",
    "utc_today",
]
