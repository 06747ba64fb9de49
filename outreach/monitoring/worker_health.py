"""Worker Health Monitor - Liveness and error tracking for background workers.

Keeps per-worker counters in memory (reset on restart) and:
1. Degrades a worker on errors, fails it after more than 3
2. Alerts every admin user when a worker crosses into failed
3. Demotes healthy workers that stopped ticking for 30+ minutes

One instance is built at process start and passed to every worker.
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from outreach.models.base_model import utcnow
from outreach.models.worker_health import WorkerHealth, WorkerStatus
from outreach.scheduler.ticker import IntervalTicker

logger = logging.getLogger(__name__)

FAILED_AFTER_ERRORS = 3


class WorkerHealthMonitor:
    def __init__(
        self,
        notifier=None,
        check_interval_seconds: int = 300,
        stale_after_minutes: int = 30,
    ):
        self.notifier = notifier
        self.check_interval_seconds = check_interval_seconds
        self.stale_after = timedelta(minutes=stale_after_minutes)
        self._workers: Dict[str, WorkerHealth] = {}
        self._lock = threading.Lock()
        self._ticker: Optional[IntervalTicker] = None

    # ---- Registration / reporting ----
    def register_worker(self, name: str) -> WorkerHealth:
        with self._lock:
            health = WorkerHealth(name=name)
            self._workers[name] = health
        logger.info(f"Registered worker for health monitoring: {name}")
        return health

    def record_success(self, name: str, now: Optional[datetime] = None) -> None:
        with self._lock:
            worker = self._workers.get(name)
            if worker is None:
                logger.warning(f"record_success for unregistered worker {name}")
                return
            worker.last_run = now or utcnow()
            worker.run_count += 1
            worker.status = WorkerStatus.HEALTHY
            worker.last_error = None

    def record_error(self, name: str, message: str) -> None:
        with self._lock:
            worker = self._workers.get(name)
            if worker is None:
                logger.warning(f"record_error for unregistered worker {name}: {message}")
                return
            was_failed = worker.status == WorkerStatus.FAILED
            worker.error_count += 1
            worker.last_error = message
            if worker.error_count > FAILED_AFTER_ERRORS:
                worker.status = WorkerStatus.FAILED
            else:
                worker.status = WorkerStatus.DEGRADED
            crossed_into_failed = worker.status == WorkerStatus.FAILED and not was_failed

        logger.warning(f"Worker {name} error ({worker.error_count}): {message}")
        if crossed_into_failed:
            self._alert_admin(name, message)

    # ---- Queries ----
    def get_health_status(self) -> List[WorkerHealth]:
        with self._lock:
            return list(self._workers.values())

    def get_worker_health(self, name: str) -> Optional[WorkerHealth]:
        with self._lock:
            return self._workers.get(name)

    def reset(self) -> None:
        """Zero every registered worker's counters."""
        with self._lock:
            for name in list(self._workers):
                self._workers[name] = WorkerHealth(name=name)

    # ---- Liveness ----
    def perform_health_check(self, now: Optional[datetime] = None) -> List[str]:
        """Demote healthy workers that haven't run recently. Returns demoted names."""
        now = now or utcnow()
        demoted = []
        with self._lock:
            for worker in self._workers.values():
                if worker.last_run is None or worker.status != WorkerStatus.HEALTHY:
                    continue
                idle = now - worker.last_run
                if idle > self.stale_after:
                    worker.status = WorkerStatus.DEGRADED
                    demoted.append(worker.name)
                    logger.warning(
                        f"Worker {worker.name} hasn't run in {int(idle.total_seconds() // 60)} minutes"
                    )
        return demoted

    def start(self) -> None:
        if self._ticker and self._ticker.running:
            return
        self._ticker = IntervalTicker(
            self.perform_health_check,
            interval_seconds=self.check_interval_seconds,
            name="worker_health_check",
            run_immediately=False,
        )
        self._ticker.start()
        logger.info("Worker health monitoring started")

    def stop(self) -> None:
        if self._ticker:
            self._ticker.stop()
            self._ticker = None

    @property
    def is_running(self) -> bool:
        return bool(self._ticker and self._ticker.running)

    # ---- Escalation ----
    def _alert_admin(self, worker_name: str, error: str) -> None:
        logger.error(f"WORKER FAILURE: {worker_name} - {error}")
        if self.notifier is None:
            return
        try:
            self.notifier.alert_admins(
                title=f"Worker Failure: {worker_name}",
                message=f"The {worker_name} worker has failed. Error: {error}",
                notification_type="worker_failure",
                metadata={"worker": worker_name},
            )
        except Exception as e:
            logger.error(f"Error creating admin alert: {e}")
