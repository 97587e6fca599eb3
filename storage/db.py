# ajanda/storage/db.py
from __future__ import annotations

from pathlib import Path
from typing import Optional

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, Session, create_engine

from core.settings import BACKUP, DB_PATH
from storage.backup import snapshot_database

# Ensure SQLModel metadata is populated
import models.task  # noqa: F401
import models.habit  # noqa: F401
import models.reference  # noqa: F401
from storage import migrations


_engine: Optional[Engine] = None


def make_engine(db_path: str | Path) -> Engine:
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    # the sync trigger runs passes on a worker thread
    return create_engine(
        f"sqlite:///{path.as_posix()}",
        echo=False,
        connect_args={"check_same_thread": False},
    )


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        _engine = make_engine(DB_PATH)
    return _engine


def use_database(db_path: str | Path) -> Engine:
    """Point the module-level engine at ``db_path`` (used by the CLI ``--db``)."""

    global _engine
    if _engine is not None:
        _engine.dispose()
    _engine = make_engine(db_path)
    return _engine


def init_db(engine: Optional[Engine] = None, *, backup: Optional[bool] = None) -> Engine:
    actual = engine or get_engine()
    SQLModel.metadata.create_all(actual)
    migrations.run_all(actual)
    if (BACKUP.enabled if backup is None else backup):
        database = actual.url.database
        if database and database != ":memory:":
            snapshot_database(database, BACKUP.directory, keep_days=BACKUP.keep_days)
    return actual


def reset_db(engine: Optional[Engine] = None) -> Engine:
    """Drop every local table and recreate an empty store."""

    actual = engine or get_engine()
    SQLModel.metadata.drop_all(actual)
    return init_db(actual, backup=False)


def get_session() -> Session:
    return Session(get_engine())


__all__ = ["get_engine", "get_session", "init_db", "make_engine", "reset_db", "use_database"]
