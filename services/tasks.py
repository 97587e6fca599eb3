# ajanda/services/tasks.py
from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Optional

from models.task import new_id
from storage.local_store import LocalStore, RecordNotFound
from utils.datetime_utils import parse_rfc3339, utc_now_iso


COLLECTION = "tasks"

logger = logging.getLogger("ajanda.tasks")


class DependencyError(ValueError):
    """A task would start before one of its predecessors ends."""

    def __init__(self, task_id: str, predecessor: Dict[str, Any]) -> None:
        title = predecessor.get("title") or predecessor.get("id")
        super().__init__(f'Dependency error: "{title}" must finish before this task can start')
        self.task_id = task_id
        self.predecessor_id = predecessor.get("id")


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class TaskService:
    """Local task mutations. Every write marks the row dirty for the next push."""

    _listeners = {
        "after_create": set(),
        "after_update": set(),
        "after_delete": set(),
    }

    def __init__(self, store: Optional[LocalStore] = None) -> None:
        self.store = store or LocalStore()

    @classmethod
    def subscribe(cls, event: str, callback):
        if event not in cls._listeners:
            raise ValueError(f"Unsupported event: {event}")
        cls._listeners[event].add(callback)

    @classmethod
    def unsubscribe(cls, event: str, callback):
        if event not in cls._listeners:
            return
        cls._listeners[event].discard(callback)

    @classmethod
    def _emit(cls, event: str, task_id: str):
        for listener in list(cls._listeners.get(event, [])):
            try:
                listener(task_id)
            except Exception:
                logger.exception("Listener for %s failed", event)

    # ---------- reads ----------
    def get(self, task_id: str) -> Optional[Dict[str, Any]]:
        record = self.store.get(COLLECTION, task_id)
        if record is None or record.get("is_deleted"):
            return None
        return record

    def list_for_owner(self, owner_id: str) -> List[Dict[str, Any]]:
        tasks = self.store.list_by_owner(COLLECTION, owner_id)
        return sorted(tasks, key=lambda t: (t.get("sort_order") or 0, t.get("created_at") or ""))

    def children(self, parent_id: str) -> List[Dict[str, Any]]:
        return self.store.find(COLLECTION, parent_id=parent_id)

    def _require(self, task_id: str) -> Dict[str, Any]:
        record = self.get(task_id)
        if record is None:
            raise RecordNotFound(COLLECTION, task_id)
        return record

    # ---------- writes ----------
    def create(
        self,
        owner_id: str,
        title: str,
        *,
        task_type_id: Optional[str] = None,
        emit: bool = True,
        **fields: Any,
    ) -> Dict[str, Any]:
        if not owner_id:
            raise ValueError("owner_id is required")
        now = utc_now_iso()
        record: Dict[str, Any] = {
            "id": fields.pop("id", None) or new_id(),
            "user_id": owner_id,
            "task_type_id": task_type_id,
            "title": (title or "").strip(),
            "metadata": {},
        }
        record.update(fields)
        record.update(is_dirty=1, is_deleted=0, last_synced_at=None, created_at=now, updated_at=now)
        if not record["title"]:
            raise ValueError("Task title must not be empty")
        if record.get("start_date") and record.get("dependency_ids"):
            self._check_predecessors(record["id"], record["dependency_ids"], record["start_date"])

        created = self.store.put(COLLECTION, record)
        if created.get("parent_id"):
            self.recalculate_parent_progress(created["parent_id"])
        if emit:
            self._emit("after_create", created["id"])
        return created

    def update(self, task_id: str, *, emit: bool = True, **changes: Any) -> Dict[str, Any]:
        current = self._require(task_id)
        if "start_date" in changes or "end_date" in changes:
            self.validate_dependencies(task_id, changes, current=current)

        changes.update(is_dirty=1, updated_at=utc_now_iso())
        updated = self.store.update(COLLECTION, task_id, changes)

        parents = {current.get("parent_id"), updated.get("parent_id")}
        for parent_id in parents:
            if parent_id:
                self.recalculate_parent_progress(parent_id)
        if emit:
            self._emit("after_update", task_id)
        return updated

    def set_completed(self, task_id: str, done: bool = True) -> Dict[str, Any]:
        return self.update(
            task_id,
            is_completed=done,
            completed_at=utc_now_iso() if done else None,
            progress_percent=100 if done else 0,
        )

    def delete(self, task_id: str, *, emit: bool = True) -> bool:
        """Delete locally; rows the remote has seen become tombstones for the next push."""

        current = self.get(task_id)
        if current is None:
            return False
        if emit:
            self._emit("after_delete", task_id)
        if current.get("last_synced_at"):
            self.store.update(COLLECTION, task_id, {"is_deleted": 1, "is_dirty": 1})
        else:
            self.store.delete(COLLECTION, task_id)
        if current.get("parent_id"):
            self.recalculate_parent_progress(current["parent_id"])
        return True

    # ---------- project rules ----------
    def validate_dependencies(
        self,
        task_id: str,
        changes: Dict[str, Any],
        *,
        current: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Raise :class:`DependencyError` if the new start precedes a predecessor's end."""

        current = current or self.get(task_id) or {}
        dependency_ids = changes.get("dependency_ids") or current.get("dependency_ids") or []
        start = changes.get("start_date") or current.get("start_date")
        if dependency_ids and start:
            self._check_predecessors(task_id, dependency_ids, start)

    def _check_predecessors(self, task_id: str, dependency_ids: List[str], start: str) -> None:
        new_start = parse_rfc3339(start)
        if new_start is None:
            return
        for dep_id in dependency_ids:
            predecessor = self.get(dep_id)
            if not predecessor:
                continue
            end = parse_rfc3339(predecessor.get("end_date"))
            if end is not None and end > new_start:
                raise DependencyError(task_id, predecessor)

    def recalculate_parent_progress(self, parent_id: str, _seen: Optional[set] = None) -> Optional[Dict[str, Any]]:
        """Roll child progress up into ``parent_id`` and on up the tree."""

        seen = _seen if _seen is not None else set()
        if parent_id in seen:
            logger.warning("Task hierarchy cycle at %s", parent_id)
            return None
        seen.add(parent_id)

        parent = self.get(parent_id)
        subtasks = self.children(parent_id)
        if parent is None or not subtasks:
            return None

        total = sum(t.get("progress_percent") or 0 for t in subtasks)
        average = _round_half_up(total / len(subtasks))
        all_completed = all(t.get("is_completed") for t in subtasks)
        completed_at = None
        if all_completed:
            completed_at = parent.get("completed_at") if parent.get("is_completed") else utc_now_iso()

        updated = self.store.update(
            COLLECTION,
            parent_id,
            {
                "progress_percent": average,
                "is_completed": all_completed,
                "completed_at": completed_at,
                "is_dirty": 1,
                "updated_at": utc_now_iso(),
            },
        )
        if updated.get("parent_id"):
            self.recalculate_parent_progress(updated["parent_id"], seen)
        return updated


__all__ = ["DependencyError", "TaskService"]
