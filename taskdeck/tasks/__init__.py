from __future__ import annotations

from .changes import (
    AddNote,
    AddTag,
    AddTimeSpent,
    AssignTo,
    Redescribe,
    RemoveTag,
    Rename,
    SetCategory,
    SetDueDate,
    SetEstimatedHours,
    SetPriority,
    SetStatus,
    TaskChange,
    parse_changes,
)
from .models import (
    TaskCategory,
    TaskError,
    TaskPriority,
    TaskRecord,
    TaskStatus,
    TaskValidationError,
)
from .repository import (
    CategoryCounts,
    CategoryUsage,
    LoadResult,
    SkippedRecord,
    TaskFilter,
    TaskRepository,
    TaskStats,
    sort_records,
)

__all__ = [
    "AddNote",
    "AddTag",
    "AddTimeSpent",
    "AssignTo",
    "CategoryCounts",
    "CategoryUsage",
    "LoadResult",
    "Redescribe",
    "RemoveTag",
    "Rename",
    "SetCategory",
    "SetDueDate",
    "SetEstimatedHours",
    "SetPriority",
    "SetStatus",
    "SkippedRecord",
    "TaskCategory",
    "TaskChange",
    "TaskError",
    "TaskFilter",
    "TaskPriority",
    "TaskRecord",
    "TaskRepository",
    "TaskStats",
    "TaskStatus",
    "TaskValidationError",
    "parse_changes",
    "sort_records",
]
