"""
Hotlist Scheduler
=================

Runs every periodic job on an APScheduler BackgroundScheduler.

Jobs (interval, minutes, from SchedulerConfig):
    discovery          - ingestion run (default 60)
    reconciliation     - drain one queue batch (default 1)
    deadline_sweep     - archive expired entities (default 60)
    queue_sweep        - re-queue active entities with no message (default 30)
    visibility_sweep   - release stale checkouts (default 5)

Each job runs with max_instances=1 and coalesce=True, so a slow run is
never overlapped by the next one.

Usage:
    python -m hotlist.orchestrator.cli schedule

    scheduler = HotlistScheduler(service, settings.scheduler)
    scheduler.start(blocking=True)
"""

import logging
import signal
from dataclasses import dataclass
from datetime import datetime
from threading import Event, Lock
from typing import Any, Callable, Dict, Optional

from apscheduler.events import (
    EVENT_JOB_ERROR,
    EVENT_JOB_EXECUTED,
    EVENT_JOB_MISSED,
    JobExecutionEvent,
)
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..data.config import SchedulerConfig
from ..data.data_models import utc_now
from .service import HotlistService

logger = logging.getLogger(__name__)


@dataclass
class RunHistory:
    """Tracks run history of one job."""
    last_run_at: Optional[datetime] = None
    last_run_status: Optional[str] = None
    last_run_duration: Optional[float] = None
    last_summary: Optional[Dict[str, Any]] = None
    consecutive_failures: int = 0
    total_runs: int = 0
    total_successes: int = 0
    total_failures: int = 0

    def record_run(self, success: bool, duration: float, summary: Optional[Dict[str, Any]] = None):
        self.last_run_at = utc_now()
        self.last_run_status = "completed" if success else "failed"
        self.last_run_duration = duration
        self.last_summary = summary
        self.total_runs += 1

        if success:
            self.total_successes += 1
            self.consecutive_failures = 0
        else:
            self.total_failures += 1
            self.consecutive_failures += 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_run_status": self.last_run_status,
            "last_run_duration": self.last_run_duration,
            "last_summary": self.last_summary,
            "consecutive_failures": self.consecutive_failures,
            "total_runs": self.total_runs,
            "total_successes": self.total_successes,
            "total_failures": self.total_failures,
            "success_rate": (
                self.total_successes / self.total_runs * 100
                if self.total_runs > 0 else 0
            ),
        }


class HotlistScheduler:
    """Interval scheduling of the service triggers."""

    def __init__(self, service: HotlistService, config: SchedulerConfig):
        self.service = service
        self.config = config
        self._scheduler: Optional[BackgroundScheduler] = None
        self._stop_event = Event()
        self._history_lock = Lock()

        self._jobs: Dict[str, Callable[[], Any]] = {
            "discovery": service.run_ingestion,
            "reconciliation": service.run_reconciliation,
            "deadline_sweep": service.run_deadline_sweep,
            "queue_sweep": service.run_queue_sweep,
            "visibility_sweep": service.run_visibility_sweep,
        }
        self._intervals: Dict[str, int] = {
            "discovery": config.discovery_minutes,
            "reconciliation": config.reconciliation_minutes,
            "deadline_sweep": config.deadline_sweep_minutes,
            "queue_sweep": config.queue_sweep_minutes,
            "visibility_sweep": config.visibility_sweep_minutes,
        }
        self._history: Dict[str, RunHistory] = {name: RunHistory() for name in self._jobs}

        logger.info(
            "HotlistScheduler initialized: "
            + ", ".join(f"{name}={minutes}m" for name, minutes in self._intervals.items())
        )

    @property
    def is_running(self) -> bool:
        """Check if scheduler is currently running."""
        if self._scheduler is None:
            return False
        return self._scheduler.running

    def start(self, blocking: bool = False):
        """
        Start the scheduler.

        Args:
            blocking: If True, blocks until scheduler is stopped
        """
        if self._scheduler is not None and self._scheduler.running:
            logger.warning("Scheduler is already running")
            return

        self._stop_event.clear()
        self._scheduler = BackgroundScheduler(timezone=self.config.timezone)

        for name in self._jobs:
            self._scheduler.add_job(
                self.run_job,
                trigger=IntervalTrigger(minutes=self._intervals[name], timezone=self.config.timezone),
                args=[name],
                id=name,
                name=f"Hotlist {name.replace('_', ' ')}",
                max_instances=1,
                coalesce=True,
                misfire_grace_time=self.config.misfire_grace_time,
            )

        self._scheduler.add_listener(self._on_job_executed, EVENT_JOB_EXECUTED)
        self._scheduler.add_listener(self._on_job_error, EVENT_JOB_ERROR)
        self._scheduler.add_listener(self._on_job_missed, EVENT_JOB_MISSED)

        self._scheduler.start()
        logger.info(f"Scheduler started with {len(self._jobs)} jobs")

        if blocking:
            self._run_blocking()

    def stop(self, wait: bool = True):
        """
        Stop the scheduler.

        Args:
            wait: If True, waits for running jobs to complete
        """
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=wait)
            self._scheduler = None
            logger.info("Scheduler stopped")

        self._stop_event.set()

    def _run_blocking(self):
        """Block until stop signal received."""
        def signal_handler(signum, frame):
            logger.info(f"Received signal {signum}, stopping scheduler...")
            self.stop()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

        logger.info("Scheduler running in blocking mode. Press Ctrl+C to stop.")
        self._stop_event.wait()

    def run_job(self, name: str) -> Optional[Dict[str, Any]]:
        """
        Execute one job by name and record it in the run history.

        Returns the job's summary, or None if it failed.
        """
        job = self._jobs[name]
        started = utc_now()
        try:
            result = job()
        except Exception as e:
            logger.exception(f"Job {name} failed: {e}")
            with self._history_lock:
                history = self._history[name]
                history.record_run(False, (utc_now() - started).total_seconds())
                if history.consecutive_failures >= 3:
                    logger.error(f"Job {name} has failed {history.consecutive_failures} consecutive times")
            return None

        summary = result.get_summary()
        with self._history_lock:
            self._history[name].record_run(True, (utc_now() - started).total_seconds(), summary)
        return summary

    def trigger_now(self, name: str) -> Optional[Dict[str, Any]]:
        """Run a job immediately, outside its schedule."""
        if name not in self._jobs:
            raise ValueError(f"Unknown job: {name}")
        logger.info(f"Triggering immediate {name} run")
        return self.run_job(name)

    def _next_run_time(self, name: str) -> Optional[datetime]:
        if self._scheduler is None:
            return None
        job = self._scheduler.get_job(name)
        return job.next_run_time if job else None

    def _on_job_executed(self, event: JobExecutionEvent):
        logger.debug(f"Job {event.job_id} executed")

    def _on_job_error(self, event: JobExecutionEvent):
        logger.error(f"Job {event.job_id} raised an exception: {event.exception}")

    def _on_job_missed(self, event: JobExecutionEvent):
        logger.warning(f"Job {event.job_id} missed its scheduled time")

    def get_status(self) -> Dict[str, Any]:
        """Scheduler state with per-job interval, next run and history."""
        with self._history_lock:
            jobs = {
                name: {
                    "interval_minutes": self._intervals[name],
                    "next_run": (
                        self._next_run_time(name).isoformat()
                        if self._next_run_time(name) else None
                    ),
                    "history": self._history[name].to_dict(),
                }
                for name in self._jobs
            }
        return {
            "is_running": self.is_running,
            "timezone": self.config.timezone,
            "jobs": jobs,
        }

    def get_run_history(self, name: str) -> RunHistory:
        return self._history[name]
