"""Background task that runs the recurring backfill sweep on an interval"""

import asyncio
import logging
import threading
import time
from typing import Optional

from sqlalchemy.orm import sessionmaker

from obligation_engine.domain.date_cursor import GenerationLimits
from obligation_engine.domain.models import SweepReport
from obligation_engine.domain.sweep import RecurringSweep
from obligation_engine.infrastructure.database.repositories import ObligationRepository
from obligation_engine.infrastructure.database.session import SessionLocal, session_scope
from obligation_engine.infrastructure.observability.metrics import record_sweep

logger = logging.getLogger(__name__)


class SweepScheduler:
    """
    Periodic sweep runner tied to the application lifespan.

    Each sweep runs in a worker thread with its own session. Stopping sets a
    flag the sweep checks between roots, so roots already committed keep their
    instances and the remaining roots are skipped until the next start.
    """

    def __init__(
        self,
        interval_seconds: float,
        session_factory: sessionmaker = SessionLocal,
        limits: Optional[GenerationLimits] = None,
    ):
        self.interval_seconds = interval_seconds
        self.session_factory = session_factory
        self.limits = limits
        self._stop_event = threading.Event()
        self._task: Optional[asyncio.Task] = None
        self._current_run: Optional[asyncio.Task] = None

    def run_once(self) -> SweepReport:
        """Run a single sweep synchronously"""
        start_time = time.time()
        with session_scope(self.session_factory) as db:
            sweep = RecurringSweep(ObligationRepository(db), self.limits)
            report = sweep.run(should_stop=self._stop_event.is_set)
        record_sweep(report, time.time() - start_time)
        return report

    async def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self._current_run = asyncio.create_task(asyncio.to_thread(self.run_once))
                await asyncio.shield(self._current_run)
            except Exception as e:
                logger.error(f"Recurring sweep failed: {e}")
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        self._stop_event.clear()
        self._task = asyncio.create_task(self._loop())
        logger.info("Sweep scheduler started", extra={"interval_seconds": self.interval_seconds})

    async def stop(self) -> None:
        self._stop_event.set()
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

        # The worker thread cannot be cancelled; wait for it to reach a root boundary
        if self._current_run is not None:
            try:
                await self._current_run
            except Exception as e:
                logger.error(f"Recurring sweep failed: {e}")
            self._current_run = None
        logger.info("Sweep scheduler stopped")
