"""On-device record store used by the sync reconciler.

Records cross this boundary as plain ``dict``s keyed by remote column name, so
the reconciler can hand a pulled row to :meth:`LocalStore.put` untouched and a
dirty row to the remote adapter after stripping the local-only fields.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Type

from sqlalchemy import func
from sqlmodel import Session, SQLModel, select

from models import (
    LOCAL_ONLY_FIELDS,
    LocalHabit,
    LocalHabitCompletion,
    LocalTask,
    Subject,
    TaskType,
    Topic,
)
from storage.db import get_session


MUTABLE_COLLECTIONS: Dict[str, Type[SQLModel]] = {
    "tasks": LocalTask,
    "habits": LocalHabit,
    "habit_completions": LocalHabitCompletion,
}

REFERENCE_COLLECTIONS: Dict[str, Type[SQLModel]] = {
    "task_types": TaskType,
    "subjects": Subject,
    "topics": Topic,
}

# remote column -> model attribute
_ATTR_ALIASES = {"metadata": "meta"}
_COLUMN_ALIASES = {attr: column for column, attr in _ATTR_ALIASES.items()}

logger = logging.getLogger("ajanda.storage")


class UnknownCollection(ValueError):
    pass


class RecordNotFound(KeyError):
    def __init__(self, collection: str, record_id: str) -> None:
        super().__init__(f"{collection}/{record_id}")
        self.collection = collection
        self.record_id = record_id


def _model_fields(model: Type[SQLModel]) -> Iterable[str]:
    return model.model_fields.keys()


def _row_values(model: Type[SQLModel], record: Mapping[str, Any]) -> Dict[str, Any]:
    fields = set(_model_fields(model))
    values: Dict[str, Any] = {}
    for key, value in record.items():
        attr = _ATTR_ALIASES.get(key, key)
        if attr in fields:
            values[attr] = value
    return values


def _to_record(row: SQLModel) -> Dict[str, Any]:
    data = row.model_dump()
    return {_COLUMN_ALIASES.get(key, key): value for key, value in data.items()}


def comparable(record: Mapping[str, Any]) -> Dict[str, Any]:
    """Return ``record`` without local sync bookkeeping."""

    return {k: v for k, v in record.items() if k not in LOCAL_ONLY_FIELDS}


class LocalStore:
    """Collection-oriented access to the local SQLite tables."""

    def __init__(self, session_factory: Callable[[], Session] = get_session) -> None:
        self._session_factory = session_factory

    # ----- schema helpers -----
    @staticmethod
    def model_for(collection: str) -> Type[SQLModel]:
        model = MUTABLE_COLLECTIONS.get(collection) or REFERENCE_COLLECTIONS.get(collection)
        if model is None:
            raise UnknownCollection(f"Unknown collection: {collection}")
        return model

    @staticmethod
    def is_mutable(collection: str) -> bool:
        return collection in MUTABLE_COLLECTIONS

    def _mutable_model(self, collection: str) -> Type[SQLModel]:
        model = self.model_for(collection)
        if not self.is_mutable(collection):
            raise UnknownCollection(f"{collection} has no sync state")
        return model

    # ----- point operations -----
    def get(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        model = self.model_for(collection)
        with self._session_factory() as session:
            row = session.get(model, record_id)
            return _to_record(row) if row is not None else None

    def put(self, collection: str, record: Mapping[str, Any]) -> Dict[str, Any]:
        """Insert or replace ``record``; every column is overwritten."""

        model = self.model_for(collection)
        row = model(**_row_values(model, record))
        with self._session_factory() as session:
            merged = session.merge(row)
            session.commit()
            session.refresh(merged)
            return _to_record(merged)

    def update(self, collection: str, record_id: str, fields: Mapping[str, Any]) -> Dict[str, Any]:
        model = self.model_for(collection)
        values = _row_values(model, fields)
        with self._session_factory() as session:
            row = session.get(model, record_id)
            if row is None:
                raise RecordNotFound(collection, record_id)
            for key, value in values.items():
                setattr(row, key, value)
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_record(row)

    def delete(self, collection: str, record_id: str) -> bool:
        model = self.model_for(collection)
        with self._session_factory() as session:
            row = session.get(model, record_id)
            if row is None:
                return False
            session.delete(row)
            session.commit()
            return True

    # ----- sync state -----
    def query_dirty(self, collection: str) -> List[Dict[str, Any]]:
        model = self._mutable_model(collection)
        with self._session_factory() as session:
            rows = session.exec(select(model).where(model.is_dirty == 1)).all()
            return [_to_record(row) for row in rows]

    def count_dirty(self, collection: str) -> int:
        model = self._mutable_model(collection)
        with self._session_factory() as session:
            stmt = select(func.count()).select_from(model).where(model.is_dirty == 1)
            return int(session.exec(stmt).one())

    def mark_synced(
        self,
        collection: str,
        record_id: str,
        synced_at: str,
        *,
        expected: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        """Clear the dirty flag and stamp ``last_synced_at`` in one transaction.

        With ``expected`` the flag is only cleared while the stored row still
        matches it, so an edit made after the push snapshot stays dirty.
        """

        model = self._mutable_model(collection)
        with self._session_factory() as session:
            row = session.get(model, record_id)
            if row is None:
                return False
            if expected is not None and comparable(_to_record(row)) != comparable(expected):
                logger.debug("%s/%s changed during push; keeping it dirty", collection, record_id)
                return False
            row.is_dirty = 0
            row.last_synced_at = synced_at
            session.add(row)
            session.commit()
            return True

    def apply_remote(self, collection: str, record: Mapping[str, Any]) -> bool:
        """Replace the local row with ``record`` unless the local row is dirty.

        The dirty check and the write share one transaction. Returns whether
        the row was written.
        """

        model = self._mutable_model(collection)
        with self._session_factory() as session:
            current = session.get(model, record["id"])
            if current is not None and current.is_dirty:
                return False
            session.merge(model(**_row_values(model, record)))
            session.commit()
            return True

    # ----- listings -----
    def list_all(self, collection: str) -> List[Dict[str, Any]]:
        model = self.model_for(collection)
        with self._session_factory() as session:
            return [_to_record(row) for row in session.exec(select(model)).all()]

    def list_by_owner(
        self,
        collection: str,
        owner_id: str,
        *,
        include_deleted: bool = False,
    ) -> List[Dict[str, Any]]:
        model = self._mutable_model(collection)
        with self._session_factory() as session:
            stmt = select(model).where(model.user_id == owner_id)
            if not include_deleted:
                stmt = stmt.where(model.is_deleted == 0)
            return [_to_record(row) for row in session.exec(stmt).all()]

    def find(self, collection: str, **criteria: Any) -> List[Dict[str, Any]]:
        """Return live rows whose columns equal ``criteria``."""

        model = self.model_for(collection)
        with self._session_factory() as session:
            stmt = select(model)
            for key, value in criteria.items():
                stmt = stmt.where(getattr(model, _ATTR_ALIASES.get(key, key)) == value)
            if self.is_mutable(collection):
                stmt = stmt.where(model.is_deleted == 0)
            return [_to_record(row) for row in session.exec(stmt).all()]

    def prune_missing(self, collection: str, owner_id: str, remote_ids: Iterable[str]) -> List[str]:
        """Remove clean, previously synced rows of ``owner_id`` absent remotely."""

        model = self._mutable_model(collection)
        keep = set(remote_ids)
        removed: List[str] = []
        with self._session_factory() as session:
            stmt = select(model).where(
                model.user_id == owner_id,
                model.is_dirty == 0,
                model.last_synced_at != None,  # noqa: E711
            )
            for row in session.exec(stmt).all():
                if row.id not in keep:
                    removed.append(row.id)
                    session.delete(row)
            if removed:
                session.commit()
        return removed


__all__ = [
    "LocalStore",
    "MUTABLE_COLLECTIONS",
    "REFERENCE_COLLECTIONS",
    "RecordNotFound",
    "UnknownCollection",
    "comparable",
]
