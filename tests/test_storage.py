from sqlalchemy import text
from sqlmodel import Session

from storage.config import AppConfig, load_config, save_config, update_config
from storage.db import init_db, make_engine, reset_db
from storage.local_store import LocalStore
from storage.migrations import SCHEMA_VERSION, get_schema_version, run_all


def _columns(conn, table):
    return {row[1] for row in conn.execute(text(f"PRAGMA table_info('{table}')"))}


def test_legacy_rows_gain_sync_columns_and_start_dirty(tmp_path):
    engine = make_engine(tmp_path / "legacy.db")
    with engine.begin() as conn:
        conn.execute(text("CREATE TABLE tasks (id TEXT PRIMARY KEY, user_id TEXT, title TEXT)"))
        conn.execute(text("INSERT INTO tasks VALUES ('old', 'u1', 'Written offline')"))

    run_all(engine)

    with engine.connect() as conn:
        cols = _columns(conn, "tasks")
        assert {"is_dirty", "last_synced_at", "is_deleted", "parent_id", "dependency_ids"} <= cols
        row = conn.execute(text("SELECT is_dirty, is_deleted FROM tasks WHERE id = 'old'")).one()
        assert tuple(row) == (1, 0)
        assert get_schema_version(conn) == SCHEMA_VERSION
    engine.dispose()


def test_migrations_are_idempotent(engine):
    run_all(engine)
    run_all(engine)

    with engine.connect() as conn:
        assert get_schema_version(conn) == SCHEMA_VERSION
        assert "is_dirty" in _columns(conn, "habit_completions")


def test_reset_db_empties_the_store(engine):
    store = LocalStore(lambda: Session(engine))
    store.put("tasks", {"id": "t1", "user_id": "u1", "title": "x"})

    reset_db(engine)

    assert store.get("tasks", "t1") is None


def test_init_db_can_snapshot(tmp_path, monkeypatch):
    backups = tmp_path / "backups"
    monkeypatch.setattr("storage.db.BACKUP", type("B", (), {"enabled": True, "directory": backups, "keep_days": 2}))
    engine = make_engine(tmp_path / "snap.db")

    init_db(engine)

    assert [p.suffix for p in backups.iterdir()] == [".db"]
    engine.dispose()


def test_config_roundtrip(tmp_path):
    path = tmp_path / "config.json"
    save_config(AppConfig(supabase_url="https://x.supabase.co/", access_token="jwt"), path)

    cfg = load_config(path)
    assert cfg.supabase_url == "https://x.supabase.co/"
    assert cfg.resolved_url() == "https://x.supabase.co"
    assert cfg.access_token == "jwt"

    updated = update_config(path, last_owner_id="u1", unknown_key="ignored")
    assert updated.last_owner_id == "u1"
    assert load_config(path).last_owner_id == "u1"
    assert not (tmp_path / "config.tmp").exists()


def test_corrupt_config_falls_back_to_defaults(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json", encoding="utf-8")

    assert load_config(path) == AppConfig()
