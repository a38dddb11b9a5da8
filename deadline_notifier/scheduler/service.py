"""Scheduler service for the daily notification run."""

import threading
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from ..logging import get_logger

logger = get_logger(__name__, component="scheduler")

JOB_ID = "deadline-notifications"


class SchedulerService:
    """
    Wraps APScheduler to trigger the pipeline once a day at a local time.

    The job runs on a BackgroundScheduler worker thread so the main thread
    can handle signals and coordinate shutdown. ``max_instances=1`` keeps
    scheduled runs from overlapping; a manual trigger that lands during a
    scheduled run is rejected by the pipeline's own run lock.
    """

    def __init__(
        self,
        pipeline_callable: Callable[[], Any],
        hour: int,
        minute: int,
        timezone: str,
        shutdown_event: Optional[threading.Event] = None,
        on_stop: Optional[Callable[[], None]] = None,
    ):
        """
        Initialize the scheduler service.

        Args:
            pipeline_callable: Function to call on each run (e.g., pipeline.run_once)
            hour: Local hour of the daily run
            minute: Local minute of the daily run
            timezone: IANA zone the run time is expressed in
            shutdown_event: Optional event to set on shutdown for coordination
            on_stop: Called at shutdown before waiting for the running job
                (e.g., pipeline.request_stop)
        """
        self.pipeline_callable = pipeline_callable
        self.hour = hour
        self.minute = minute
        self.timezone = timezone
        self.shutdown_event = shutdown_event
        self.on_stop = on_stop

        self.scheduler = BackgroundScheduler(
            job_defaults={
                "max_instances": 1,  # Prevent overlapping runs
                "coalesce": True,  # Missed runs collapse into one
                "misfire_grace_time": 3600,
            },
            timezone=timezone,
        )

    def start(self) -> None:
        """Register the daily job and start the scheduler."""
        trigger = CronTrigger(hour=self.hour, minute=self.minute, timezone=self.timezone)

        self.scheduler.add_job(
            func=self.pipeline_callable,
            trigger=trigger,
            id=JOB_ID,
            name="Daily deadline notifications",
            replace_existing=True,
        )

        self.scheduler.start()

        next_run = self.get_next_run_time()
        logger.info(
            f"Scheduler started; daily run at {self.hour:02d}:{self.minute:02d} {self.timezone}",
            extra={
                "event": "scheduler.started",
                "run_at": f"{self.hour:02d}:{self.minute:02d}",
                "timezone": self.timezone,
                "next_run_time": next_run.isoformat() if next_run else None,
            },
        )

    def shutdown(self, wait: bool = True) -> None:
        """
        Shutdown the scheduler.

        A running job is asked to stop starting new department batches;
        with ``wait`` the call returns once that job has finished.

        Args:
            wait: If True, wait for the running job to complete
        """
        logger.info(
            "Shutting down scheduler",
            extra={"event": "scheduler.stopping", "wait_for_jobs": wait},
        )

        if self.on_stop:
            self.on_stop()

        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)

        if self.shutdown_event:
            self.shutdown_event.set()

        logger.info("Scheduler shutdown complete", extra={"event": "scheduler.stopped"})

    def trigger_now(self) -> Any:
        """
        Run the pipeline immediately in the current thread.

        Returns whatever the pipeline callable returns.
        """
        logger.info(
            "Triggering immediate pipeline run",
            extra={"event": "scheduler.trigger_now"},
        )
        return self.pipeline_callable()

    def is_running(self) -> bool:
        return self.scheduler.running

    def get_next_run_time(self) -> Optional[datetime]:
        """
        Get the next scheduled run time.

        Returns:
            Next run time as an aware datetime, or None if not scheduled
        """
        job = self.scheduler.get_job(JOB_ID)
        return getattr(job, "next_run_time", None) if job else None

    def status(self) -> Dict[str, Any]:
        """Whether the daily job is active and when it fires next."""
        next_run = self.get_next_run_time()
        return {
            "active": self.is_running() and next_run is not None,
            "run_at": f"{self.hour:02d}:{self.minute:02d}",
            "timezone": self.timezone,
            "next_run_time": next_run.isoformat() if next_run else None,
        }
