# ajanda/models/habit.py
from __future__ import annotations

from typing import List, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field

from models.task import SyncFields, new_id
from utils.datetime_utils import day_string, utc_now_iso


FREQUENCIES = ("daily", "weekly", "monthly", "custom")
TARGET_TYPES = ("boolean", "count", "duration")


class LocalHabit(SyncFields, table=True):
    __tablename__ = "habits"

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    subject_id: Optional[str] = None
    topic_id: Optional[str] = None
    name: str
    description: Optional[str] = None
    frequency: str = "daily"
    # 0 = Sunday .. 6 = Saturday
    frequency_days: Optional[List[int]] = Field(default=None, sa_column=Column(JSON))
    target_type: Optional[str] = "boolean"
    target_count: Optional[int] = None
    target_duration: Optional[int] = None
    color: str = "#6366F1"
    icon: str = "check"
    current_streak: int = 0
    longest_streak: int = 0
    total_completions: int = 0
    start_date: str = Field(default_factory=day_string)
    end_date: Optional[str] = None
    is_active: bool = True
    sort_order: int = 0
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: str = Field(default_factory=utc_now_iso)


class LocalHabitCompletion(SyncFields, table=True):
    __tablename__ = "habit_completions"

    id: str = Field(default_factory=new_id, primary_key=True)
    habit_id: str = Field(index=True)
    user_id: str = Field(index=True)
    completed_at: str = Field(default_factory=utc_now_iso)
    completed_date: str = Field(default_factory=day_string, index=True)
    count: Optional[int] = 1
    duration: Optional[int] = None
    notes: Optional[str] = None
    created_at: str = Field(default_factory=utc_now_iso)


__all__ = ["FREQUENCIES", "TARGET_TYPES", "LocalHabit", "LocalHabitCompletion"]
