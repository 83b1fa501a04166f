"""Scheduler service for periodic reminder runs."""

import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from hr_notify.logging import get_logger

logger = get_logger(__name__, component="scheduler")

REMINDER_JOB_ID = "time-entry-reminders"


class SchedulerService:
    """
    Wraps APScheduler to run the time-entry reminder job at a fixed interval.

    Uses BackgroundScheduler so reminders run in a worker thread while the
    main thread serves the realtime channel.
    """

    def __init__(
        self,
        job_callable: Callable[[], object],
        interval_seconds: int,
        run_immediately: bool = False,
        shutdown_event: Optional[threading.Event] = None,
    ):
        """
        Initialize the scheduler service.

        Args:
            job_callable: Function to call on each scheduled run (e.g., ReminderJob.run)
            interval_seconds: Interval between runs in seconds
            run_immediately: Run once right after start instead of after one interval
            shutdown_event: Optional event to set on shutdown for coordination
        """
        self.job_callable = job_callable
        self.interval_seconds = interval_seconds
        self.run_immediately = run_immediately
        self.shutdown_event = shutdown_event

        self.scheduler = BackgroundScheduler(
            job_defaults={
                "max_instances": 1,  # Prevent overlapping runs
                "coalesce": True,  # If run is delayed, only execute once
                "misfire_grace_time": interval_seconds,
            },
            timezone=timezone.utc,
        )

    def start(self) -> None:
        """Register the reminder job and start the scheduler."""
        trigger = IntervalTrigger(seconds=self.interval_seconds, timezone=timezone.utc)

        now = datetime.now(timezone.utc)
        next_run = now if self.run_immediately else now + timedelta(seconds=self.interval_seconds)
        self.scheduler.add_job(
            func=self.job_callable,
            trigger=trigger,
            id=REMINDER_JOB_ID,
            name="Time Entry Reminders",
            replace_existing=True,
            next_run_time=next_run,
        )

        self.scheduler.start()

        logger.info(
            f"Scheduler started with interval: {self.interval_seconds} seconds",
            extra={
                "event": "scheduler.started",
                "interval_seconds": self.interval_seconds,
                "next_run_time": next_run.isoformat(),
            },
        )

    def shutdown(self, wait: bool = False) -> None:
        """
        Shutdown the scheduler gracefully.

        Args:
            wait: If True, wait for running jobs to complete before returning
        """
        logger.info(
            "Shutting down scheduler",
            extra={"event": "scheduler.stopping", "wait_for_jobs": wait},
        )

        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)

        if self.shutdown_event:
            self.shutdown_event.set()

        logger.info("Scheduler shutdown complete", extra={"event": "scheduler.stopped"})

    def trigger_now(self) -> None:
        """Run the job synchronously in the current thread."""
        logger.info("Triggering immediate reminder run", extra={"event": "scheduler.trigger_now"})
        self.job_callable()

    def is_running(self) -> bool:
        return self.scheduler.running

    def get_next_run_time(self) -> Optional[datetime]:
        job = self.scheduler.get_job(REMINDER_JOB_ID)
        return job.next_run_time if job else None
