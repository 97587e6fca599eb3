"""Daily snapshots of the local SQLite store."""
from __future__ import annotations

import logging
import sqlite3
from contextlib import closing
from datetime import datetime, timedelta
from pathlib import Path

logger = logging.getLogger("ajanda.storage")


def _snapshot_day(path: Path, prefix: str) -> datetime | None:
    stem = path.stem
    if not stem.startswith(prefix):
        return None
    try:
        return datetime.strptime(stem[len(prefix):], "%Y-%m-%d")
    except ValueError:
        return None


def _online_copy(source: Path, destination: Path) -> None:
    # sqlite's backup API gives a consistent copy even while the store is open
    tmp = destination.with_suffix(destination.suffix + ".part")
    with closing(sqlite3.connect(source)) as src, closing(sqlite3.connect(tmp)) as dst:
        src.backup(dst)
    tmp.replace(destination)


def rotate_snapshots(backup_dir: Path, stem: str, suffix: str, keep_days: int, today) -> list[Path]:
    removed: list[Path] = []
    if keep_days <= 0:
        return removed
    prefix = f"{stem}_"
    cutoff = today - timedelta(days=keep_days - 1)
    for file in backup_dir.glob(f"{stem}_*{suffix}"):
        day = _snapshot_day(file, prefix)
        if day and day.date() < cutoff:
            try:
                file.unlink()
                removed.append(file)
            except OSError as exc:
                logger.warning("Could not remove old snapshot %s: %s", file, exc)
    return removed


def snapshot_database(
    db_path: str | Path,
    backup_dir: str | Path,
    *,
    keep_days: int = 7,
) -> Path | None:
    """Write today's snapshot of ``db_path`` (once per day) and drop expired ones."""

    db_file = Path(db_path)
    if not db_file.exists():
        return None

    backups = Path(backup_dir)
    backups.mkdir(parents=True, exist_ok=True)

    today = datetime.now().date()
    destination = backups / f"{db_file.stem}_{today.isoformat()}{db_file.suffix}"

    created: Path | None = None
    if not destination.exists():
        _online_copy(db_file, destination)
        logger.info("Local store snapshot written to %s", destination)
        created = destination

    rotate_snapshots(backups, db_file.stem, db_file.suffix, keep_days, today)
    return created


__all__ = ["rotate_snapshots", "snapshot_database"]
