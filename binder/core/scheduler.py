"""
binder/core/scheduler.py
═══════════════════════════════════════════════════════════════════════════════
Background refresh loops with strict guarantees:

  1. Each job is a PeriodicTask with explicit start() / stop()
  2. ONE run of a job at a time: the loop awaits each run before sleeping
  3. Failed run → logged, loop re-arms; a transient failure never stops it
  4. stop() cancels the sleeping loop; called from the app lifespan on shutdown

Jobs:
  • card_db   (weekly)  : refresh the bulk card database when it is past TTL
  • prices    (daily)   : re-price owned cards older than 24 h
  • profile   (50 min)  : refetch the GitHub profile ahead of its 1 h TTL so
                          the change flag trips before pollers see stale data
═══════════════════════════════════════════════════════════════════════════════
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

log = logging.getLogger("scheduler")


class PeriodicTask:
    def __init__(
        self,
        name:            str,
        interval:        float,
        job:             Callable[[], Awaitable[object]],
        run_immediately: bool = False,
    ):
        self.name            = name
        self.interval        = interval
        self.run_immediately = run_immediately
        self._job            = job
        self._task: Optional[asyncio.Task] = None
        self.runs            = 0
        self.failures        = 0
        self.last_run:  Optional[float] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            log.warning(f"{self.name}: already running — ignoring duplicate start")
            return
        self._task = asyncio.create_task(self._loop(), name=f"periodic:{self.name}")
        log.info(f"{self.name}: started (every {self.interval:.0f}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        log.info(f"{self.name}: stopped")

    async def run_once(self) -> None:
        t0 = time.time()
        try:
            await self._job()
        except Exception as ex:
            self.failures += 1
            log.error(f"{self.name}: run failed (continuing): {ex}")
        else:
            log.debug(f"{self.name}: run complete in {time.time() - t0:.1f}s")
        finally:
            self.runs    += 1
            self.last_run = time.time()

    async def _loop(self) -> None:
        if self.run_immediately:
            await self.run_once()
        while True:
            await asyncio.sleep(self.interval)
            await self.run_once()

    def summary(self) -> dict:
        return {
            "running":  self.running,
            "interval": self.interval,
            "runs":     self.runs,
            "failures": self.failures,
            "last_run_age_s": round(time.time() - self.last_run, 1) if self.last_run else None,
        }


class Scheduler:
    """Owns every PeriodicTask. Started once in the lifespan, stopped on shutdown."""

    def __init__(self, tasks: list[PeriodicTask]):
        self.tasks    = {t.name: t for t in tasks}
        self._running = False

    def start(self) -> None:
        if self._running:
            log.warning("Scheduler already running — ignoring duplicate start")
            return
        self._running = True
        for t in self.tasks.values():
            t.start()
        log.info("Scheduler started")

    async def stop(self) -> None:
        for t in self.tasks.values():
            await t.stop()
        self._running = False

    def summary(self) -> dict:
        return {name: t.summary() for name, t in self.tasks.items()}
