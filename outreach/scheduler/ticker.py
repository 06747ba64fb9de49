import logging
from datetime import datetime
from threading import Lock
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)


class IntervalTicker:
    """
    Runs ``callback`` every ``interval_seconds`` on a private APScheduler
    BackgroundScheduler. Ticks never overlap: APScheduler skips a run while
    the previous one is still executing.
    """

    def __init__(
        self,
        callback: Callable[[], object],
        interval_seconds: int,
        name: str = "ticker",
        run_immediately: bool = True,
    ):
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        self.callback = callback
        self.interval_seconds = interval_seconds
        self.name = name
        self.run_immediately = run_immediately
        self.scheduler: Optional[BackgroundScheduler] = None
        self._lock = Lock()

    @property
    def running(self) -> bool:
        return self.scheduler is not None and self.scheduler.running

    def start(self) -> None:
        with self._lock:
            if self.running:
                logger.warning(f"Ticker {self.name} already running")
                return

            job_options = {}
            if self.run_immediately:
                job_options["next_run_time"] = datetime.now()

            self.scheduler = BackgroundScheduler()
            self.scheduler.add_job(
                self.tick,
                trigger=IntervalTrigger(seconds=self.interval_seconds),
                id=self.name,
                name=self.name,
                max_instances=1,
                coalesce=True,
                **job_options,
            )
            self.scheduler.start()

            logger.info(f"Ticker {self.name} started (every {self.interval_seconds}s)")

    def stop(self, wait: bool = False) -> None:
        with self._lock:
            if self.scheduler is not None and self.scheduler.running:
                self.scheduler.shutdown(wait=wait)
                logger.info(f"Ticker {self.name} stopped")
            self.scheduler = None

    def tick(self):
        """One run of the callback. Exceptions are logged, never raised into APScheduler."""
        try:
            return self.callback()
        except Exception as e:
            logger.error(f"Ticker {self.name} callback failed: {e}", exc_info=True)
            return None
