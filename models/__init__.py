"""ORM models for the on-device Ajanda store."""
from .task import LOCAL_ONLY_FIELDS, LocalTask, SyncFields
from .habit import LocalHabit, LocalHabitCompletion
from .reference import Subject, TaskType, Topic

__all__ = [
    "LOCAL_ONLY_FIELDS",
    "LocalHabit",
    "LocalHabitCompletion",
    "LocalTask",
    "Subject",
    "SyncFields",
    "TaskType",
    "Topic",
]
