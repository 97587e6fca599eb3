"""Decides when the reconciler runs: on sign-in, on reconnect and on a timer."""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from core.settings import SYNC
from services.reconciler import Reconciler, SyncReport


IDLE = "idle"
SYNCING = "syncing"

logger = logging.getLogger("ajanda.sync")


class SyncTrigger:
    """Owns the interval timer and the connectivity listener for one owner.

    Must be driven from a running asyncio loop. Passes run on a worker thread so
    the loop stays responsive. A pass already running for the same owner absorbs
    new events; a pass for a different owner runs to completion before the new
    owner's pass starts.
    """

    def __init__(
        self,
        reconciler: Reconciler,
        *,
        interval_sec: float | None = None,
        probe: Optional[Callable[[], bool]] = None,
        probe_interval_sec: float | None = None,
    ) -> None:
        self.reconciler = reconciler
        self.interval = interval_sec or SYNC.interval_sec
        self.probe = probe
        self.probe_interval = probe_interval_sec or SYNC.probe_interval_sec

        self._owner_id: Optional[str] = None
        self._online: Optional[bool] = None
        self._state = IDLE
        self._timer_task: asyncio.Task | None = None
        self._probe_task: asyncio.Task | None = None
        self._inflight: asyncio.Task | None = None
        self._inflight_owner: Optional[str] = None
        self.last_report: Optional[SyncReport] = None

    # ------------------------------------------------------------------
    @property
    def state(self) -> str:
        return self._state

    @property
    def owner_id(self) -> Optional[str]:
        return self._owner_id

    @property
    def active(self) -> bool:
        return self._owner_id is not None

    # ------------------------------------------------------------------
    # Lifecycle
    def start(self, owner_id: Optional[str]) -> Optional[asyncio.Task]:
        """Attach to ``owner_id`` and run the initial pass.

        A falsy ``owner_id`` (signed out) tears everything down instead.
        """

        if not owner_id:
            self.stop()
            return None
        if owner_id == self._owner_id and self._timer_task is not None:
            return self._inflight

        self.stop()
        self._owner_id = owner_id
        logger.info("Sync trigger attached to %s", owner_id)

        self._timer_task = asyncio.create_task(self._timer_loop(owner_id))
        if self.probe is not None:
            self._probe_task = asyncio.create_task(self._probe_loop(owner_id))
        return self.request_sync()

    def stop(self) -> None:
        """Tear down the timer and listener; a running pass finishes on its own."""

        for task in (self._timer_task, self._probe_task):
            if task is not None and not task.done():
                task.cancel()
        self._timer_task = None
        self._probe_task = None
        if self._owner_id is not None:
            logger.info("Sync trigger detached from %s", self._owner_id)
        self._owner_id = None
        self._online = None

    # ------------------------------------------------------------------
    # Events
    def set_online(self, online: bool) -> Optional[asyncio.Task]:
        """Feed a connectivity reading; an offline -> online edge starts a pass."""

        was_online = self._online
        self._online = bool(online)
        if self._online and was_online is False:
            logger.info("Connection restored; syncing")
            return self.request_sync()
        return None

    def request_sync(self) -> Optional[asyncio.Task]:
        owner_id = self._owner_id
        if owner_id is None:
            return None
        previous = self._inflight
        if previous is not None and not previous.done():
            if self._inflight_owner == owner_id:
                return previous
            self._inflight = asyncio.create_task(self._run_after(previous, owner_id))
        else:
            self._inflight = asyncio.create_task(self._run_pass(owner_id))
        self._inflight_owner = owner_id
        return self._inflight

    async def wait_idle(self) -> Optional[SyncReport]:
        task = self._inflight
        if task is None:
            return None
        return await asyncio.shield(task)

    # ------------------------------------------------------------------
    # Loops
    async def _run_pass(self, owner_id: str) -> Optional[SyncReport]:
        self._state = SYNCING
        try:
            report = await asyncio.to_thread(self.reconciler.full_sync, owner_id, blocking=False)
            if report is not None:
                self.last_report = report
            return report
        except Exception:
            logger.exception("Sync pass for %s crashed", owner_id)
            return None
        finally:
            self._state = IDLE

    async def _run_after(self, previous: asyncio.Task, owner_id: str) -> Optional[SyncReport]:
        # the previous owner's pass finishes before this owner's starts
        await asyncio.wait([previous])
        if self._owner_id != owner_id:
            return None
        return await self._run_pass(owner_id)

    async def _timer_loop(self, owner_id: str) -> None:
        while self._owner_id == owner_id:
            await asyncio.sleep(self.interval)
            if self._owner_id != owner_id:
                break
            self.request_sync()

    async def _probe_loop(self, owner_id: str) -> None:
        while self._owner_id == owner_id:
            try:
                online = await asyncio.to_thread(self.probe)
            except Exception as exc:
                logger.debug("Connectivity probe raised: %s", exc)
                online = False
            if self._owner_id != owner_id:
                break
            self.set_online(bool(online))
            await asyncio.sleep(self.probe_interval)

    async def run_forever(self, owner_id: str, stop_event: asyncio.Event | None = None) -> None:
        """Run until ``stop_event`` is set (or forever), then tear down."""

        event = stop_event or asyncio.Event()
        self.start(owner_id)
        try:
            await event.wait()
        finally:
            self.stop()
            await self.wait_idle()


__all__ = ["IDLE", "SYNCING", "SyncTrigger"]
