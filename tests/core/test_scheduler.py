"""Tests for SchedulerManager.

Tests cover:
- Disabled scheduler does not initialize
- Conversion jobs: import path reference, one instance at a time, replacement
- Job removal and listing
- Health reporting across the lifecycle
"""

from collections.abc import Generator

import pytest
from apscheduler.jobstores.memory import MemoryJobStore

from content_converter.core.scheduler import (
    CONVERSION_JOB_FUNC,
    JobNotFoundError,
    SchedulerManager,
    SchedulerNotRunningError,
    SchedulerState,
    conversion_job_id,
)


@pytest.fixture
def manager() -> Generator[SchedulerManager, None, None]:
    """Scheduler backed by an in-memory job store, not started."""
    scheduler = SchedulerManager()
    assert scheduler.init_scheduler(jobstores={"default": MemoryJobStore()})
    yield scheduler
    scheduler.stop(wait=False)


class TestInitialization:
    """Tests for init_scheduler."""

    def test_disabled_by_configuration(self) -> None:
        scheduler = SchedulerManager()

        assert scheduler.init_scheduler() is False
        assert scheduler.state == SchedulerState.STOPPED
        assert scheduler.check_health()["status"] == "not_initialized"

    def test_unavailable_operations_raise(self) -> None:
        scheduler = SchedulerManager()

        with pytest.raises(SchedulerNotRunningError):
            scheduler.add_conversion_job("notes", "0 2 * * *")
        with pytest.raises(SchedulerNotRunningError):
            scheduler.remove_job("anything")
        assert scheduler.get_jobs() == []


class TestConversionJobs:
    """Tests for add_conversion_job / remove_job / get_jobs."""

    def test_add_conversion_job(self, manager: SchedulerManager) -> None:
        job = manager.add_conversion_job("notes", "0 2 * * *")

        assert job.id == conversion_job_id("notes", "0 2 * * *")
        assert job.name == "Convert notes"
        assert "cron" in job.trigger

        raw = manager._scheduler.get_job(job.id)
        assert raw.func_ref == CONVERSION_JOB_FUNC
        assert raw.args == ("notes",)
        assert raw.max_instances == 1
        assert raw.coalesce is True

    def test_same_schedule_replaced(self, manager: SchedulerManager) -> None:
        manager.add_conversion_job("notes", "0 2 * * *")
        manager.add_conversion_job("notes", "0 2 * * *")
        manager.add_conversion_job("attachments", "0 3 * * *")

        assert sorted(job.id for job in manager.get_jobs()) == sorted(
            [
                conversion_job_id("notes", "0 2 * * *"),
                conversion_job_id("attachments", "0 3 * * *"),
            ]
        )

    def test_invalid_cron(self, manager: SchedulerManager) -> None:
        with pytest.raises(ValueError):
            manager.add_conversion_job("notes", "99 2 * * *")

    def test_remove_job(self, manager: SchedulerManager) -> None:
        job = manager.add_conversion_job("notes", "0 2 * * *")

        manager.remove_job(job.id)

        assert manager.get_job(job.id) is None

    def test_remove_unknown_job(self, manager: SchedulerManager) -> None:
        with pytest.raises(JobNotFoundError) as exc_info:
            manager.remove_job("missing")
        assert exc_info.value.job_id == "missing"


class TestLifecycle:
    """Tests for start/stop and health."""

    def test_start_and_stop(self, manager: SchedulerManager) -> None:
        assert manager.start() is True
        job = manager.add_conversion_job("notes", "0 2 * * *")

        health = manager.check_health()
        assert health["status"] == "ok"
        assert health["running"] is True
        assert health["job_count"] == 1
        assert job.next_run_time is not None

        manager.stop(wait=False)
        assert manager.state == SchedulerState.STOPPED
        assert manager.is_running is False

    def test_not_started_is_degraded(self, manager: SchedulerManager) -> None:
        assert manager.check_health()["status"] == "degraded"
