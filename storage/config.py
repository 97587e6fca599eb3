"""JSON-backed connection config for the sync client."""
from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from core.settings import CONFIG_PATH, REMOTE


@dataclass
class AppConfig:
    """Values persisted to ``config.json``; empty ones fall back to the environment."""

    supabase_url: Optional[str] = None
    supabase_anon_key: Optional[str] = None
    access_token: Optional[str] = None
    last_owner_id: Optional[str] = None

    def resolved_url(self) -> str:
        return (self.supabase_url or REMOTE.url or "").rstrip("/")

    def resolved_key(self) -> str:
        return self.supabase_anon_key or REMOTE.anon_key or ""


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def _load_raw(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return {}
    return data if isinstance(data, dict) else {}


def load_config(path: Optional[Path] = None) -> AppConfig:
    data = _load_raw(path or CONFIG_PATH)
    return AppConfig(
        supabase_url=data.get("supabase_url"),
        supabase_anon_key=data.get("supabase_anon_key"),
        access_token=data.get("access_token"),
        last_owner_id=data.get("last_owner_id"),
    )


def save_config(config: AppConfig, path: Optional[Path] = None) -> None:
    target = path or CONFIG_PATH
    _ensure_parent(target)
    payload = json.dumps(asdict(config), ensure_ascii=False, indent=2, sort_keys=True)
    tmp = target.with_suffix(".tmp")
    try:
        tmp.write_text(payload, encoding="utf-8")
        tmp.replace(target)
    finally:
        if tmp.exists():
            try:
                tmp.unlink()
            except OSError:
                pass


def update_config(path: Optional[Path] = None, **changes: Any) -> AppConfig:
    target = path or CONFIG_PATH
    cfg = load_config(target)
    for key, value in changes.items():
        if hasattr(cfg, key):
            setattr(cfg, key, value)
    save_config(cfg, target)
    return cfg


__all__ = ["AppConfig", "load_config", "save_config", "update_config"]
