"""Ajanda offline sync client: run, watch or inspect local/remote reconciliation."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Optional, Sequence

from storage import db
from storage.config import load_config, update_config
from storage.local_store import LocalStore
from services.reconciler import Reconciler
from services.remote_store import SupabaseRemote
from services.sync_trigger import SyncTrigger


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logging.getLogger("ajanda.sync").setLevel(logging.DEBUG if verbose else logging.INFO)


def _owner(args, parser: argparse.ArgumentParser) -> str:
    owner = args.owner or load_config().last_owner_id
    if not owner:
        parser.error("--owner is required (no previous owner recorded)")
    update_config(last_owner_id=owner)
    return owner


def build_reconciler(remote: Optional[SupabaseRemote] = None) -> Reconciler:
    if remote is None:
        cfg = load_config()
        remote = SupabaseRemote(
            cfg.resolved_url(),
            cfg.resolved_key(),
            access_token=cfg.access_token,
        )
    return Reconciler(LocalStore(), remote)


def cmd_once(args, parser) -> int:
    owner = _owner(args, parser)
    report = build_reconciler().full_sync(owner)
    print(report.summary())
    return 0 if report.ok else 1


def cmd_watch(args, parser) -> int:
    owner = _owner(args, parser)
    reconciler = build_reconciler()
    trigger = SyncTrigger(reconciler, probe=reconciler.remote.ping)

    async def _watch() -> None:
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGTERM, stop.set)
        except (NotImplementedError, RuntimeError):
            pass
        await trigger.run_forever(owner, stop)

    try:
        asyncio.run(_watch())
    except KeyboardInterrupt:
        print("Stopped.")
    return 0


def cmd_status(args, parser) -> int:
    owner = _owner(args, parser)
    # status only reads the local store, so no remote client is built
    status = Reconciler(LocalStore(), None).status(owner)
    print(json.dumps(status, indent=2))
    return 0


def cmd_reset(args, parser) -> int:
    db.reset_db()
    print("Local store cleared.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ajanda-sync", description=__doc__ or "")
    parser.add_argument("--db", type=Path, help="Path to the local store (default: data dir)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log to the console at debug level")
    sub = parser.add_subparsers(dest="command", required=True)

    for name, func, help_text in (
        ("once", cmd_once, "Run one full sync pass"),
        ("watch", cmd_watch, "Keep syncing on a timer and on reconnect"),
        ("status", cmd_status, "Show pending local changes"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--owner", help="Owner (user) id to sync")
        p.set_defaults(func=func)

    p = sub.add_parser("reset", help="Drop and recreate the local store")
    p.set_defaults(func=cmd_reset)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)
    if args.db:
        db.use_database(args.db)
    db.init_db()
    return args.func(args, parser)


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
