from __future__ import annotations

import datetime as _dt
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from .models import TaskCategory, TaskPriority, TaskRecord, TaskStatus


@dataclass(frozen=True, slots=True)
class Rename:
    title: str

    def apply(self, record: TaskRecord) -> None:
        record.rename(self.title)


@dataclass(frozen=True, slots=True)
class Redescribe:
    description: str | None

    def apply(self, record: TaskRecord) -> None:
        record.redescribe(self.description)


@dataclass(frozen=True, slots=True)
class SetCategory:
    category: TaskCategory | str

    def apply(self, record: TaskRecord) -> None:
        record.set_category(self.category)


@dataclass(frozen=True, slots=True)
class SetPriority:
    priority: TaskPriority | str

    def apply(self, record: TaskRecord) -> None:
        record.set_priority(self.priority)


@dataclass(frozen=True, slots=True)
class SetStatus:
    status: TaskStatus | str

    def apply(self, record: TaskRecord) -> None:
        record.set_status(self.status)


@dataclass(frozen=True, slots=True)
class SetDueDate:
    due_date: _dt.date | str | None

    def apply(self, record: TaskRecord) -> None:
        record.set_due_date(self.due_date)


@dataclass(frozen=True, slots=True)
class AssignTo:
    assignee_id: str | None

    def apply(self, record: TaskRecord) -> None:
        record.assign_to(self.assignee_id)


@dataclass(frozen=True, slots=True)
class SetEstimatedHours:
    hours: float

    def apply(self, record: TaskRecord) -> None:
        record.set_estimated_hours(self.hours)


@dataclass(frozen=True, slots=True)
class AddTimeSpent:
    hours: float

    def apply(self, record: TaskRecord) -> None:
        record.add_time_spent(self.hours)


@dataclass(frozen=True, slots=True)
class AddTag:
    tag: str

    def apply(self, record: TaskRecord) -> None:
        record.add_tag(self.tag)


@dataclass(frozen=True, slots=True)
class RemoveTag:
    tag: str

    def apply(self, record: TaskRecord) -> None:
        record.remove_tag(self.tag)


@dataclass(frozen=True, slots=True)
class AddNote:
    note: str

    def apply(self, record: TaskRecord) -> None:
        record.add_note(self.note)


TaskChange = (
    Rename
    | Redescribe
    | SetCategory
    | SetPriority
    | SetStatus
    | SetDueDate
    | AssignTo
    | SetEstimatedHours
    | AddTimeSpent
    | AddTag
    | RemoveTag
    | AddNote
)

# Accepted keys of the mapping form of an update, camelCase and snake_case.
CHANGE_KEYS: dict[str, Callable[[Any], TaskChange]] = {
    "title": Rename,
    "description": Redescribe,
    "category": SetCategory,
    "priority": SetPriority,
    "status": SetStatus,
    "dueDate": SetDueDate,
    "due_date": SetDueDate,
    "assigneeId": AssignTo,
    "assignee_id": AssignTo,
    "estimatedHours": SetEstimatedHours,
    "estimated_hours": SetEstimatedHours,
    "addTimeSpent": AddTimeSpent,
    "add_time_spent": AddTimeSpent,
    "addTag": AddTag,
    "add_tag": AddTag,
    "removeTag": RemoveTag,
    "remove_tag": RemoveTag,
    "note": AddNote,
}


def parse_changes(changes: Mapping[str, Any]) -> tuple[list[TaskChange], list[str]]:
    """Turn an update mapping into ordered changes plus the keys that were not recognized."""
    parsed: list[TaskChange] = []
    ignored: list[str] = []
    for key, value in changes.items():
        factory = CHANGE_KEYS.get(key)
        if factory is None:
            ignored.append(key)
            continue
        parsed.append(factory(value))
    return parsed, ignored


__all__ = [
    "CHANGE_KEYS",
    "AddNote",
    "AddTag",
    "AddTimeSpent",
    "AssignTo",
    "Redescribe",
    "RemoveTag",
    "Rename",
    "SetCategory",
    "SetDueDate",
    "SetEstimatedHours",
    "SetPriority",
    "SetStatus",
    "TaskChange",
    "parse_changes",
]
