from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError

from core.settings import SYNC
from services.remote_store import RemoteError, strip_local_fields
from storage.local_store import MUTABLE_COLLECTIONS, REFERENCE_COLLECTIONS, LocalStore
from utils.datetime_utils import utc_now_iso


# reference data first so joined views resolve right after a pass
REFERENCE_ORDER = ("task_types", "subjects", "topics")
# completions belong to habits and must follow them
COLLECTION_ORDER = ("tasks", "habits", "habit_completions")


def _ensure_logger() -> logging.Logger:
    logger = logging.getLogger("ajanda.sync")
    if not logger.handlers:
        log_path = Path(SYNC.log_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(log_path, maxBytes=1_000_000, backupCount=3, encoding="utf-8")
        formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    # keep a level chosen by the caller (CLI --verbose)
    if logger.level == logging.NOTSET:
        logger.setLevel(logging.INFO)
    return logger


@dataclass
class CollectionReport:
    collection: str
    pushed: int = 0
    push_failed: int = 0
    edited_during_push: int = 0
    deleted: int = 0
    pulled: int = 0
    skipped_dirty: int = 0
    pruned: int = 0
    pull_ok: bool = False
    error: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "pushed": self.pushed,
            "pushFailed": self.push_failed,
            "editedDuringPush": self.edited_during_push,
            "deleted": self.deleted,
            "pulled": self.pulled,
            "skippedDirty": self.skipped_dirty,
            "pruned": self.pruned,
            "pullOk": self.pull_ok,
            "error": self.error,
        }


@dataclass
class SyncReport:
    owner_id: str
    started_at: str
    finished_at: Optional[str] = None
    collections: Dict[str, CollectionReport] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)

    def collection(self, name: str) -> CollectionReport:
        if name not in self.collections:
            self.collections[name] = CollectionReport(name)
        return self.collections[name]

    @property
    def ok(self) -> bool:
        if self.errors:
            return False
        return all(not c.push_failed and c.error is None for c in self.collections.values())

    def summary(self) -> str:
        parts = []
        for name, c in self.collections.items():
            if name in REFERENCE_COLLECTIONS:
                parts.append(f"{name}: pulled {c.pulled}")
            else:
                parts.append(
                    f"{name}: pushed {c.pushed}, failed {c.push_failed}, re-edited {c.edited_during_push}, "
                    f"deleted {c.deleted}, pulled {c.pulled}, kept dirty {c.skipped_dirty}, pruned {c.pruned}"
                )
        status = "ok" if self.ok else "with errors"
        return f"Sync for {self.owner_id} finished {status}; " + "; ".join(parts)


class Reconciler:
    """Runs full push-then-pull passes between the local store and the remote.

    The dirty flag alone decides merge direction: a pull never overwrites a row
    whose local change has not been confirmed by a push yet. Passes for the same
    owner are serialised by a per-owner lock taken before the dirty snapshot is
    read and released after the last pull.
    """

    def __init__(
        self,
        store: LocalStore,
        remote,
        *,
        clock: Callable[[], str] = utc_now_iso,
        prune_remote_deletes: bool = True,
    ) -> None:
        self.store = store
        self.remote = remote
        self._clock = clock
        self.prune_remote_deletes = prune_remote_deletes
        self.logger = _ensure_logger()
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._last_reports: Dict[str, SyncReport] = {}

    # ------------------------------------------------------------------
    # Public API
    def full_sync(self, owner_id: str, *, blocking: bool = True) -> Optional[SyncReport]:
        """Run one reconciliation pass for ``owner_id``.

        Returns ``None`` without doing anything when ``blocking`` is false and a
        pass for the same owner is already running.
        """

        if not owner_id:
            raise ValueError("owner_id is required")

        lock = self._lock_for(owner_id)
        if not lock.acquire(blocking=blocking):
            self.logger.info("Sync for %s already in flight; request coalesced", owner_id)
            return None
        try:
            report = SyncReport(owner_id=owner_id, started_at=self._clock())
            self.logger.info("Sync started for %s", owner_id)

            self._run_step(report, "reference", lambda: self.sync_reference(report))
            for collection in COLLECTION_ORDER:
                self._run_step(
                    report,
                    collection,
                    lambda c=collection: self.sync_collection(c, owner_id, report),
                )

            report.finished_at = self._clock()
            self._last_reports[owner_id] = report
            if report.ok:
                self.logger.info(report.summary())
            else:
                self.logger.warning(report.summary())
            return report
        finally:
            lock.release()

    def is_running(self, owner_id: str) -> bool:
        return self._lock_for(owner_id).locked()

    def last_report(self, owner_id: str) -> Optional[SyncReport]:
        return self._last_reports.get(owner_id)

    def status(self, owner_id: str) -> dict:
        last = self._last_reports.get(owner_id)
        return {
            "ownerId": owner_id,
            "running": self.is_running(owner_id),
            "dirty": {name: self.store.count_dirty(name) for name in COLLECTION_ORDER},
            "lastSyncStartedAt": last.started_at if last else None,
            "lastSyncFinishedAt": last.finished_at if last else None,
            "lastSyncOk": last.ok if last else None,
            "lastSync": {name: c.as_dict() for name, c in last.collections.items()} if last else {},
        }

    # ------------------------------------------------------------------
    # Sub-syncs
    def sync_reference(self, report: SyncReport) -> None:
        """Pull every reference table and overwrite the local copies."""

        for collection in REFERENCE_ORDER:
            entry = report.collection(collection)
            try:
                rows = self.remote.list_all(collection)
            except RemoteError as exc:
                entry.error = str(exc)
                self.logger.warning("Reference pull for %s skipped: %s", collection, exc)
                continue
            entry.pull_ok = True
            for row in rows:
                try:
                    self.store.put(collection, row)
                    entry.pulled += 1
                except SQLAlchemyError as exc:
                    self.logger.error("Could not store %s/%s: %s", collection, row.get("id"), exc)

    def sync_collection(self, collection: str, owner_id: str, report: SyncReport) -> None:
        if collection not in MUTABLE_COLLECTIONS:
            raise ValueError(f"{collection} is not a synchronised collection")
        entry = report.collection(collection)
        self._push(collection, entry)
        self._pull(collection, owner_id, entry)

    # ------------------------------------------------------------------
    # Push / pull helpers
    def _push(self, collection: str, entry: CollectionReport) -> None:
        dirty = self.store.query_dirty(collection)
        if dirty:
            self.logger.debug("Pushing %d dirty %s", len(dirty), collection)
        # one record at a time: a failed row stays dirty and the loop moves on
        for record in dirty:
            record_id = record.get("id")
            try:
                if record.get("is_deleted"):
                    self.remote.delete(collection, record_id)
                    self.store.delete(collection, record_id)
                    entry.deleted += 1
                    continue
                self.remote.upsert(collection, strip_local_fields(record))
                if self.store.mark_synced(collection, record_id, self._clock(), expected=record):
                    entry.pushed += 1
                else:
                    entry.edited_during_push += 1
                    self.logger.info("%s/%s edited while pushing; left dirty", collection, record_id)
            except RemoteError as exc:
                entry.push_failed += 1
                self.logger.warning("Push of %s/%s failed: %s", collection, record_id, exc)
            except SQLAlchemyError as exc:
                self.logger.error("Local store failure for %s/%s: %s", collection, record_id, exc)

    def _pull(self, collection: str, owner_id: str, entry: CollectionReport) -> None:
        try:
            rows = self.remote.list_by_owner(collection, owner_id)
        except RemoteError as exc:
            entry.error = str(exc)
            self.logger.warning("Pull of %s skipped: %s", collection, exc)
            return
        entry.pull_ok = True

        seen: List[str] = []
        for row in rows:
            record_id = row.get("id")
            if not record_id:
                continue
            seen.append(record_id)
            try:
                if self.store.apply_remote(collection, self._clean_copy(row)):
                    entry.pulled += 1
                else:
                    entry.skipped_dirty += 1
            except SQLAlchemyError as exc:
                self.logger.error("Could not apply %s/%s: %s", collection, record_id, exc)

        if self.prune_remote_deletes:
            removed = self.store.prune_missing(collection, owner_id, seen)
            if removed:
                self.logger.info("Removed %d %s deleted remotely", len(removed), collection)
            entry.pruned = len(removed)

    def _clean_copy(self, row: Mapping[str, Any]) -> Dict[str, Any]:
        record = dict(row)
        record.update(is_dirty=0, is_deleted=0, last_synced_at=self._clock())
        return record

    def _run_step(self, report: SyncReport, name: str, step: Callable[[], None]) -> None:
        try:
            step()
        except Exception as exc:
            report.errors.append(f"{name}: {exc}")
            self.logger.exception("Sync step %s failed", name)

    def _lock_for(self, owner_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(owner_id)
            if lock is None:
                lock = self._locks[owner_id] = threading.Lock()
            return lock


__all__ = ["COLLECTION_ORDER", "CollectionReport", "REFERENCE_ORDER", "Reconciler", "SyncReport"]
