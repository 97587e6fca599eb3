"""Read-only reference tables mirrored from the remote.

These rows carry no sync bookkeeping: every pull replaces them.
"""
from __future__ import annotations

from typing import Optional

from sqlmodel import Field, SQLModel


class TaskType(SQLModel, table=True):
    __tablename__ = "task_types"

    id: str = Field(primary_key=True)
    name: str
    slug: str = Field(index=True)
    icon: Optional[str] = None
    description: Optional[str] = None
    is_active: bool = True


class Subject(SQLModel, table=True):
    __tablename__ = "subjects"

    id: str = Field(primary_key=True)
    name: str
    category: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None


class Topic(SQLModel, table=True):
    __tablename__ = "topics"

    id: str = Field(primary_key=True)
    subject_id: Optional[str] = Field(default=None, index=True)
    name: str
    sort_order: int = 0


__all__ = ["Subject", "TaskType", "Topic"]
