"""Recurring conversion runs on APScheduler.

Jobs are persisted in the `apscheduler_jobs` table and point at the batch
entry point by import path, so schedules survive restarts. Each job runs
in a worker thread; a job never overlaps itself (`max_instances`) and
missed runs collapse into one (`coalesce`).

ERROR LOGGING REQUIREMENTS:
- Job store connection errors are logged with a masked connection string
- Failed, missed and skipped runs are logged at WARNING or ERROR
- Scheduler start/stop and job add/remove are logged at INFO
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from apscheduler.events import (
    EVENT_JOB_ADDED,
    EVENT_JOB_ERROR,
    EVENT_JOB_EXECUTED,
    EVENT_JOB_MAX_INSTANCES,
    EVENT_JOB_MISSED,
    EVENT_JOB_REMOVED,
    EVENT_SCHEDULER_SHUTDOWN,
    EVENT_SCHEDULER_STARTED,
    SchedulerEvent,
)
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.base import BaseJobStore, JobLookupError
from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from content_converter.core.config import Settings, get_settings
from content_converter.core.logging import get_logger, scheduler_logger

logger = get_logger(__name__)

CONVERSION_JOB_FUNC = "content_converter.services.batch:run_scheduled_conversion"
JOB_TABLE = "apscheduler_jobs"

# Notes and attachments schedules can run side by side
MAX_WORKERS = 2


class SchedulerState(Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"


@dataclass
class JobInfo:
    """Read-only view of a scheduled job."""

    id: str
    name: str | None
    trigger: str
    next_run_time: datetime | None
    pending: bool


class SchedulerServiceError(Exception):
    """Base exception for scheduler errors."""


class SchedulerNotRunningError(SchedulerServiceError):
    """The scheduler was never initialized (disabled or failed)."""

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"Scheduler is not available for '{operation}'")


class JobNotFoundError(SchedulerServiceError):
    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


def conversion_job_id(kind: str, cron: str) -> str:
    """Stable id: scheduling the same kind and cron again replaces the job."""
    return f"conversion:{kind}:{cron.replace(' ', '_')}"


def _job_store_url(settings: Settings) -> str:
    """The job store uses the synchronous psycopg2 driver."""
    db_url = str(settings.database_url)
    for prefix in ("postgres://", "postgresql+asyncpg://"):
        if db_url.startswith(prefix):
            return "postgresql://" + db_url[len(prefix) :]
    return db_url


def _job_info(job: Any) -> JobInfo:
    # Pending jobs (scheduler not started) have no next_run_time attribute
    return JobInfo(
        id=job.id,
        name=job.name,
        trigger=str(job.trigger),
        next_run_time=getattr(job, "next_run_time", None),
        pending=job.pending,
    )


class SchedulerManager:
    """Owns the BackgroundScheduler that fires conversion runs."""

    def __init__(self) -> None:
        self._scheduler: BackgroundScheduler | None = None
        self._state = SchedulerState.STOPPED

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == SchedulerState.RUNNING

    def _require_scheduler(self, operation: str) -> BackgroundScheduler:
        if self._scheduler is None:
            scheduler_logger.scheduler_not_available(
                operation=operation,
                reason="Scheduler is not initialized",
            )
            raise SchedulerNotRunningError(operation)
        return self._scheduler

    def _on_event(self, event: SchedulerEvent) -> None:
        """Route APScheduler events to scheduler_logger."""
        code = event.code
        if code == EVENT_SCHEDULER_STARTED:
            scheduler_logger.scheduler_start(len(self.get_jobs()))
            return
        if code == EVENT_SCHEDULER_SHUTDOWN:
            scheduler_logger.scheduler_stop(graceful=True)
            return

        job_id = event.job_id
        job = self._scheduler.get_job(job_id) if self._scheduler else None
        job_name = job.name if job else None

        if code == EVENT_JOB_ADDED:
            next_run = getattr(job, "next_run_time", None)
            scheduler_logger.job_added(
                job_id=job_id,
                job_name=job_name,
                trigger=str(job.trigger) if job else "unknown",
                next_run=next_run.isoformat() if next_run else None,
            )
        elif code == EVENT_JOB_REMOVED:
            scheduler_logger.job_removed(job_id=job_id, job_name=job_name)
        elif code == EVENT_JOB_EXECUTED:
            scheduler_logger.job_execution_success(
                job_id=job_id, job_name=job_name, result=event.retval
            )
        elif code == EVENT_JOB_ERROR:
            scheduler_logger.job_execution_error(
                job_id=job_id,
                job_name=job_name,
                error=str(event.exception),
                error_type=type(event.exception).__name__,
            )
        elif code == EVENT_JOB_MISSED:
            scheduled = event.scheduled_run_time
            scheduler_logger.job_missed(
                job_id=job_id,
                job_name=job_name,
                scheduled_time=scheduled.isoformat() if scheduled else "unknown",
                misfire_grace_time=get_settings().scheduler_misfire_grace_time,
            )
        elif code == EVENT_JOB_MAX_INSTANCES:
            scheduler_logger.job_max_instances_reached(
                job_id=job_id,
                job_name=job_name,
                max_instances=job.max_instances if job else 1,
            )

    def init_scheduler(
        self, jobstores: dict[str, BaseJobStore] | None = None
    ) -> bool:
        """Create the scheduler without starting it.

        Args:
            jobstores: Replaces the database job store; bypasses the
                SCHEDULER_ENABLED switch

        Returns:
            True when a scheduler exists afterwards
        """
        settings = get_settings()

        if jobstores is None and not settings.scheduler_enabled:
            logger.info("Scheduler disabled via SCHEDULER_ENABLED")
            return False
        if self._scheduler is not None:
            return True

        self._state = SchedulerState.STARTING
        try:
            if jobstores is None:
                jobstores = {
                    "default": SQLAlchemyJobStore(
                        url=_job_store_url(settings), tablename=JOB_TABLE
                    )
                }
            scheduler = BackgroundScheduler(
                jobstores=jobstores,
                executors={"default": ThreadPoolExecutor(max_workers=MAX_WORKERS)},
                job_defaults={
                    "coalesce": settings.scheduler_job_coalesce,
                    "max_instances": settings.scheduler_job_default_max_instances,
                    "misfire_grace_time": settings.scheduler_misfire_grace_time,
                },
                timezone="UTC",
            )
        except Exception as e:
            self._state = SchedulerState.STOPPED
            scheduler_logger.jobstore_connection_error(
                store_name="default",
                error=str(e),
                error_type=type(e).__name__,
                connection_string=_job_store_url(settings),
            )
            return False

        scheduler.add_listener(
            self._on_event,
            EVENT_SCHEDULER_STARTED
            | EVENT_SCHEDULER_SHUTDOWN
            | EVENT_JOB_ADDED
            | EVENT_JOB_REMOVED
            | EVENT_JOB_EXECUTED
            | EVENT_JOB_ERROR
            | EVENT_JOB_MISSED
            | EVENT_JOB_MAX_INSTANCES,
        )
        self._scheduler = scheduler
        logger.info("Scheduler initialized", extra={"job_table": JOB_TABLE})
        return True

    def start(self) -> bool:
        """Start firing jobs; initializes first when needed."""
        if self._scheduler is None and not self.init_scheduler():
            return False
        if self.is_running:
            return True

        assert self._scheduler is not None
        try:
            self._scheduler.start()
        except Exception as e:
            self._state = SchedulerState.STOPPED
            logger.error(
                "Scheduler failed to start",
                extra={"error_type": type(e).__name__, "error_message": str(e)},
                exc_info=True,
            )
            return False

        self._state = SchedulerState.RUNNING
        return True

    def stop(self, wait: bool = True) -> None:
        """Shut down and forget the scheduler.

        Args:
            wait: Block until running conversions finish
        """
        scheduler = self._scheduler
        if scheduler is None or self._state == SchedulerState.SHUTTING_DOWN:
            return

        self._state = SchedulerState.SHUTTING_DOWN
        try:
            if scheduler.running:
                scheduler.shutdown(wait=wait)
        finally:
            self._state = SchedulerState.STOPPED
            self._scheduler = None

    def add_conversion_job(self, kind: str, cron: str) -> JobInfo:
        """Run a conversion kind on a five-field crontab schedule (UTC).

        Raises:
            SchedulerNotRunningError: If the scheduler is not initialized
            ValueError: If the cron expression is invalid
        """
        scheduler = self._require_scheduler("add_conversion_job")
        settings = get_settings()
        trigger = CronTrigger.from_crontab(cron, timezone="UTC")
        job_id = conversion_job_id(kind, cron)

        # replace_existing only applies once jobs reach a job store
        if not scheduler.running and scheduler.get_job(job_id) is not None:
            scheduler.remove_job(job_id)

        job = scheduler.add_job(
            CONVERSION_JOB_FUNC,
            trigger=trigger,
            args=[kind],
            id=job_id,
            name=f"Convert {kind}",
            replace_existing=True,
            max_instances=settings.scheduler_job_default_max_instances,
            coalesce=settings.scheduler_job_coalesce,
        )
        return _job_info(job)

    def remove_job(self, job_id: str) -> None:
        """Delete a scheduled job.

        Raises:
            SchedulerNotRunningError: If the scheduler is not initialized
            JobNotFoundError: If no job has the id
        """
        scheduler = self._require_scheduler("remove_job")
        try:
            scheduler.remove_job(job_id)
        except JobLookupError as e:
            raise JobNotFoundError(job_id) from e

    def get_job(self, job_id: str) -> JobInfo | None:
        if self._scheduler is None:
            return None
        job = self._scheduler.get_job(job_id)
        return _job_info(job) if job is not None else None

    def get_jobs(self) -> list[JobInfo]:
        if self._scheduler is None:
            return []
        return [_job_info(job) for job in self._scheduler.get_jobs()]

    def check_health(self) -> dict[str, Any]:
        """Status is not_initialized, ok (running) or degraded (created, not running)."""
        if self._scheduler is None:
            status = "not_initialized"
        elif self.is_running:
            status = "ok"
        else:
            status = "degraded"
        return {
            "status": status,
            "running": self.is_running,
            "state": self._state.value,
            "job_count": len(self.get_jobs()),
        }


scheduler_manager = SchedulerManager()


def get_scheduler() -> SchedulerManager:
    """FastAPI dependency returning the application scheduler."""
    return scheduler_manager
