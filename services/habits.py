from __future__ import annotations

from typing import Any, Dict, List, Optional, Union
from datetime import date, datetime

from models.habit import FREQUENCIES, TARGET_TYPES
from models.task import new_id
from storage.local_store import LocalStore, RecordNotFound
from utils.datetime_utils import day_string, to_rfc3339_utc, utc_now, utc_now_iso


HABITS = "habits"
COMPLETIONS = "habit_completions"


def _check_choice(value: Optional[str], allowed, label: str) -> None:
    if value is not None and value not in allowed:
        raise ValueError(f"Unsupported {label}: {value}")


def _check_weekdays(days) -> None:
    if days is None:
        return
    if any(not isinstance(d, int) or d < 0 or d > 6 for d in days):
        raise ValueError(f"Weekdays must be integers 0-6, got {days!r}")


class HabitService:
    def __init__(self, store: Optional[LocalStore] = None) -> None:
        self.store = store or LocalStore()

    def get(self, habit_id: str) -> Optional[Dict[str, Any]]:
        record = self.store.get(HABITS, habit_id)
        if record is None or record.get("is_deleted"):
            return None
        return record

    def list_for_owner(self, owner_id: str, *, active_only: bool = True) -> List[Dict[str, Any]]:
        habits = self.store.list_by_owner(HABITS, owner_id)
        if active_only:
            habits = [h for h in habits if h.get("is_active")]
        return sorted(habits, key=lambda h: (h.get("sort_order") or 0, h.get("name") or ""))

    def create(self, owner_id: str, name: str, **fields: Any) -> Dict[str, Any]:
        if not owner_id:
            raise ValueError("owner_id is required")
        name = (name or "").strip()
        if not name:
            raise ValueError("Habit name must not be empty")
        _check_choice(fields.get("frequency"), FREQUENCIES, "frequency")
        _check_choice(fields.get("target_type"), TARGET_TYPES, "target type")
        _check_weekdays(fields.get("frequency_days"))

        now = utc_now_iso()
        record: Dict[str, Any] = {"id": fields.pop("id", None) or new_id(), "user_id": owner_id, "name": name}
        record.update(fields)
        record.update(is_dirty=1, is_deleted=0, last_synced_at=None, created_at=now, updated_at=now)
        return self.store.put(HABITS, record)

    def update(self, habit_id: str, **changes: Any) -> Dict[str, Any]:
        if self.get(habit_id) is None:
            raise RecordNotFound(HABITS, habit_id)
        _check_choice(changes.get("frequency"), FREQUENCIES, "frequency")
        _check_choice(changes.get("target_type"), TARGET_TYPES, "target type")
        _check_weekdays(changes.get("frequency_days"))
        changes.update(is_dirty=1, updated_at=utc_now_iso())
        return self.store.update(HABITS, habit_id, changes)

    def deactivate(self, habit_id: str) -> Dict[str, Any]:
        # habits are retired, not deleted, so their completion history survives
        return self.update(habit_id, is_active=False)

    # ---------- completions ----------
    def complete(
        self,
        habit_id: str,
        *,
        count: Optional[int] = None,
        duration: Optional[int] = None,
        notes: Optional[str] = None,
        when: Union[datetime, date, str, None] = None,
    ) -> Dict[str, Any]:
        habit = self.get(habit_id)
        if habit is None:
            raise RecordNotFound(HABITS, habit_id)

        target = habit.get("target_type") or "boolean"
        if isinstance(when, datetime):
            completed_at = to_rfc3339_utc(when)
        elif when is None:
            completed_at = to_rfc3339_utc(utc_now())
        else:
            completed_at = f"{day_string(when)}T00:00:00.000Z"

        record = {
            "id": new_id(),
            "habit_id": habit_id,
            "user_id": habit["user_id"],
            "completed_at": completed_at,
            "completed_date": day_string(completed_at),
            "count": (count or 1) if target == "count" else (1 if target == "boolean" else None),
            "duration": duration if target == "duration" else None,
            "notes": (notes or "").strip() or None,
            "created_at": utc_now_iso(),
            "is_dirty": 1,
            "is_deleted": 0,
            "last_synced_at": None,
        }
        return self.store.put(COMPLETIONS, record)

    def completions_for(self, habit_id: str, *, since: Union[date, str, None] = None) -> List[Dict[str, Any]]:
        rows = self.store.find(COMPLETIONS, habit_id=habit_id)
        if since is not None:
            floor = day_string(since)
            rows = [r for r in rows if (r.get("completed_date") or "") >= floor]
        return sorted(rows, key=lambda r: r.get("completed_at") or "")

    def uncomplete(self, habit_id: str, day: Union[date, datetime, str]) -> int:
        """Remove the completions logged for ``day``; returns how many went."""

        target_day = day_string(day)
        removed = 0
        for row in self.store.find(COMPLETIONS, habit_id=habit_id, completed_date=target_day):
            if row.get("last_synced_at"):
                self.store.update(COMPLETIONS, row["id"], {"is_deleted": 1, "is_dirty": 1})
            else:
                self.store.delete(COMPLETIONS, row["id"])
            removed += 1
        return removed


__all__ = ["HabitService"]
