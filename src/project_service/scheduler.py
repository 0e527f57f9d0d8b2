"""Periodic maintenance jobs (pending-event reclaim) on APScheduler."""

import logging
from typing import Any, Callable

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.base import JobLookupError
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)

JOB_DEFAULTS = {
    "coalesce": True,
    "max_instances": 1,
    "misfire_grace_time": 60,
}


class SchedulerService:
    """
    Runs interval jobs on a background thread pool.

    Jobs wrap bound methods of live objects (the event bus), so the job
    store is in memory and jobs are registered again on every start.
    A job that raises is logged and runs again at its next interval.
    """

    def __init__(self, max_workers: int = 2, timezone: str = "UTC") -> None:
        self._scheduler = BackgroundScheduler(
            jobstores={"default": MemoryJobStore()},
            executors={"default": ThreadPoolExecutor(max_workers=max_workers)},
            job_defaults=JOB_DEFAULTS,
            timezone=timezone,
        )

    @property
    def is_running(self) -> bool:
        return self._scheduler.running

    @staticmethod
    def _guarded(job_id: str, func: Callable[[], Any]) -> Callable[[], Any]:
        def run() -> Any:
            try:
                return func()
            except Exception as e:
                logger.error(f"Job '{job_id}' failed: {e}", exc_info=True)
                return None

        return run

    def add_job(self, job_id: str, func: Callable[[], Any], interval_seconds: int) -> None:
        """Run ``func`` every ``interval_seconds``, replacing a job with the same id."""
        self._scheduler.add_job(
            self._guarded(job_id, func),
            trigger=IntervalTrigger(seconds=interval_seconds),
            id=job_id,
            name=job_id,
            replace_existing=True,
        )
        logger.info(f"Job '{job_id}' scheduled every {interval_seconds}s")

    def remove_job(self, job_id: str) -> bool:
        try:
            self._scheduler.remove_job(job_id)
        except JobLookupError:
            return False
        logger.info(f"Job '{job_id}' removed")
        return True

    def list_jobs(self) -> list[dict[str, Any]]:
        # Jobs added before start() have no next_run_time attribute yet
        return [
            {"id": job.id, "next_run_time": getattr(job, "next_run_time", None)}
            for job in self._scheduler.get_jobs()
        ]

    def start(self) -> None:
        if self._scheduler.running:
            logger.warning("Scheduler is already running")
            return
        self._scheduler.start()
        logger.info("Scheduler started")

    def shutdown(self, wait: bool = True) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
            logger.info("Scheduler stopped")
