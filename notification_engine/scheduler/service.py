"""Periodic retry sweeps on APScheduler."""

import threading
from datetime import datetime, timezone
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from notification_engine.logging import get_logger
from notification_engine.notifications.models import RetryRunResult

logger = get_logger(__name__, component="scheduler")

RETRY_JOB_ID = "notification-retry-sweep"


class RetryScheduler:
    """
    Runs the retry sweep at a fixed interval in a background thread.

    Overlapping sweeps within one process are prevented by max_instances=1.
    Sweeps from other processes are safe because rows are claimed atomically.
    """

    def __init__(
        self,
        sweep_callable: Callable[[], RetryRunResult],
        interval_seconds: int,
        shutdown_event: Optional[threading.Event] = None,
    ):
        """
        Initialize the retry scheduler.

        Args:
            sweep_callable: Function to call on each run (e.g. service.process_retries)
            interval_seconds: Interval between sweeps in seconds
            shutdown_event: Optional event set on shutdown for coordination
        """
        self.sweep_callable = sweep_callable
        self.interval_seconds = interval_seconds
        self.shutdown_event = shutdown_event
        self.last_result: Optional[RetryRunResult] = None

        self.scheduler = BackgroundScheduler(
            job_defaults={
                "max_instances": 1,
                "coalesce": True,
                "misfire_grace_time": interval_seconds,
            },
            timezone=timezone.utc,
        )

    def _run_sweep(self) -> None:
        try:
            self.last_result = self.sweep_callable()
        except Exception as e:
            # Keep the schedule alive; the next tick retries the sweep
            logger.error(
                f"Retry sweep failed: {e}",
                exc_info=True,
                extra={"event": "scheduler.sweep_failed", "error_type": type(e).__name__},
            )

    def start(self) -> None:
        """
        Register the sweep job and start the scheduler.

        The first sweep runs immediately; later sweeps follow the interval.
        """
        next_run = datetime.now(timezone.utc)
        self.scheduler.add_job(
            func=self._run_sweep,
            trigger=IntervalTrigger(seconds=self.interval_seconds, timezone=timezone.utc),
            id=RETRY_JOB_ID,
            name="Notification retry sweep",
            replace_existing=True,
            next_run_time=next_run,
        )
        self.scheduler.start()

        logger.info(
            f"Retry scheduler started with interval: {self.interval_seconds} seconds",
            extra={
                "event": "scheduler.started",
                "interval_seconds": self.interval_seconds,
                "next_run_time": next_run.isoformat(),
            },
        )

    def shutdown(self, wait: bool = False) -> None:
        """
        Stop the scheduler.

        Args:
            wait: If True, wait for a running sweep to finish
        """
        logger.info(
            "Shutting down retry scheduler",
            extra={"event": "scheduler.stopping", "wait_for_jobs": wait},
        )

        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)

        if self.shutdown_event:
            self.shutdown_event.set()

        logger.info("Retry scheduler shutdown complete", extra={"event": "scheduler.stopped"})

    def trigger_now(self) -> Optional[RetryRunResult]:
        """Run one sweep synchronously in the current thread."""
        logger.info("Triggering immediate retry sweep", extra={"event": "scheduler.trigger_now"})
        self._run_sweep()
        return self.last_result

    def is_running(self) -> bool:
        return self.scheduler.running

    def get_next_run_time(self) -> Optional[datetime]:
        job = self.scheduler.get_job(RETRY_JOB_ID)
        return job.next_run_time if job else None
