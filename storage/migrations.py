"""Ad-hoc migrations for the on-device Ajanda store.

The schema version lives in ``PRAGMA user_version``. Every step is idempotent so
that a store created by ``create_all`` on a fresh install passes through them
untouched.
"""

from __future__ import annotations

import logging

from sqlalchemy import text


SCHEMA_VERSION = 3

MUTABLE_TABLES = ("tasks", "habits", "habit_completions")

logger = logging.getLogger("ajanda.storage")


def _column_exists(conn, table: str, column: str) -> bool:
    result = conn.execute(text(f"PRAGMA table_info('{table}')"))
    return any(row[1] == column for row in result)


def _table_exists(conn, table: str) -> bool:
    row = conn.execute(
        text("SELECT name FROM sqlite_master WHERE type='table' AND name=:name"),
        {"name": table},
    ).first()
    return row is not None


def _add_columns(conn, table: str, columns: dict) -> None:
    for name, ddl in columns.items():
        if not _column_exists(conn, table, name):
            logger.info("Adding column %s.%s", table, name)
            conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {name} {ddl}"))


def get_schema_version(conn) -> int:
    return int(conn.execute(text("PRAGMA user_version")).scalar() or 0)


def ensure_sync_columns(conn) -> None:
    # rows written before sync existed were never pushed: start them dirty
    columns = {
        "is_dirty": "INTEGER NOT NULL DEFAULT 1",
        "last_synced_at": "TEXT",
        "is_deleted": "INTEGER NOT NULL DEFAULT 0",
    }
    for table in MUTABLE_TABLES:
        if _table_exists(conn, table):
            _add_columns(conn, table, columns)
            conn.execute(
                text(f"CREATE INDEX IF NOT EXISTS ix_{table}_is_dirty ON {table} (is_dirty)")
            )
            conn.execute(
                text(f"CREATE INDEX IF NOT EXISTS ix_{table}_user_id ON {table} (user_id)")
            )


def ensure_task_hierarchy_columns(conn) -> None:
    if not _table_exists(conn, "tasks"):
        return
    _add_columns(
        conn,
        "tasks",
        {
            "parent_id": "TEXT",
            "progress_percent": "INTEGER NOT NULL DEFAULT 0",
            "start_date": "TEXT",
            "end_date": "TEXT",
            "dependency_ids": "JSON",
            "subject_id": "TEXT",
            "topic_id": "TEXT",
        },
    )
    conn.execute(text("CREATE INDEX IF NOT EXISTS ix_tasks_parent_id ON tasks (parent_id)"))


def ensure_reference_indexes(conn) -> None:
    if _table_exists(conn, "topics"):
        conn.execute(text("CREATE INDEX IF NOT EXISTS ix_topics_subject_id ON topics (subject_id)"))
    if _table_exists(conn, "task_types"):
        conn.execute(text("CREATE INDEX IF NOT EXISTS ix_task_types_slug ON task_types (slug)"))


def run_all(engine) -> None:
    with engine.begin() as conn:
        current = get_schema_version(conn)
        ensure_sync_columns(conn)
        ensure_task_hierarchy_columns(conn)
        ensure_reference_indexes(conn)
        if current != SCHEMA_VERSION:
            logger.info("Local schema version %s -> %s", current, SCHEMA_VERSION)
            conn.execute(text(f"PRAGMA user_version = {SCHEMA_VERSION}"))


__all__ = ["SCHEMA_VERSION", "get_schema_version", "run_all"]
