import os
import tempfile

# keep settings, logs and backups out of the real user data dir
os.environ.setdefault("AJANDA_DATA_DIR", tempfile.mkdtemp(prefix="ajanda-tests-"))

import pytest
from sqlmodel import Session

from services.remote_store import RemoteError
from storage.db import init_db, make_engine
from storage.local_store import LocalStore


class FakeRemote:
    """In-memory stand-in for :class:`SupabaseRemote` keyed by row id."""

    def __init__(self, tables=None):
        self.tables = {name: {} for name in (
            "tasks", "habits", "habit_completions", "task_types", "subjects", "topics"
        )}
        for name, rows in (tables or {}).items():
            self.tables[name] = {row["id"]: dict(row) for row in rows}
        self.calls = []
        self.fail_upsert_ids = set()
        self.fail_lists = set()
        self.on_upsert = None

    def upsert(self, table, record):
        self.calls.append(("upsert", table, record.get("id")))
        if record.get("id") in self.fail_upsert_ids:
            raise RemoteError("simulated network error", collection=table)
        if self.on_upsert is not None:
            self.on_upsert(table, record)
        self.tables[table][record["id"]] = dict(record)

    def delete(self, table, record_id):
        self.calls.append(("delete", table, record_id))
        if record_id in self.fail_upsert_ids:
            raise RemoteError("simulated network error", collection=table)
        self.tables[table].pop(record_id, None)

    def list_by_owner(self, table, owner_id):
        self.calls.append(("list_by_owner", table, owner_id))
        if table in self.fail_lists:
            raise RemoteError("simulated pull failure", collection=table)
        return [dict(r) for r in self.tables[table].values() if r.get("user_id") == owner_id]

    def list_all(self, table):
        self.calls.append(("list_all", table, None))
        if table in self.fail_lists:
            raise RemoteError("simulated pull failure", collection=table)
        return [dict(r) for r in self.tables[table].values()]


@pytest.fixture()
def engine(tmp_path):
    engine = make_engine(tmp_path / "local.db")
    init_db(engine, backup=False)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    def factory():
        return Session(engine)

    return factory


@pytest.fixture()
def store(session_factory):
    return LocalStore(session_factory)


@pytest.fixture()
def remote():
    return FakeRemote()
