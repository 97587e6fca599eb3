# ajanda/models/task.py
from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from utils.datetime_utils import utc_now_iso


def new_id() -> str:
    return str(uuid.uuid4())


class SyncFields(SQLModel):
    """Local-only bookkeeping carried by every mutable row.

    ``is_dirty`` decides merge direction: 1 means the local change has not been
    confirmed by the remote yet and must not be overwritten by a pull.
    """

    is_dirty: int = Field(default=1, index=True)
    last_synced_at: Optional[str] = None
    # tombstone, pushed as a remote delete
    is_deleted: int = Field(default=0)


LOCAL_ONLY_FIELDS = ("is_dirty", "last_synced_at", "is_deleted")


class LocalTask(SyncFields, table=True):
    __tablename__ = "tasks"

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    task_type_id: Optional[str] = None
    title: str
    description: Optional[str] = None
    # "metadata" is reserved on declarative classes
    meta: Optional[Dict[str, Any]] = Field(
        default_factory=dict, sa_column=Column("metadata", JSON)
    )
    due_date: Optional[str] = Field(default=None, index=True)
    due_time: Optional[str] = None
    is_completed: bool = False
    completed_at: Optional[str] = None
    subject_id: Optional[str] = None
    topic_id: Optional[str] = None
    project_id: Optional[str] = None
    parent_id: Optional[str] = Field(default=None, index=True)
    progress_percent: int = 0
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    dependency_ids: Optional[List[str]] = Field(default=None, sa_column=Column(JSON))
    is_private: bool = False
    sort_order: int = 0
    relationship_id: Optional[str] = None
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: str = Field(default_factory=utc_now_iso)


__all__ = ["LOCAL_ONLY_FIELDS", "LocalTask", "SyncFields", "new_id"]
