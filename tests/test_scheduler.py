"""
Tests for the APScheduler-based job scheduler.
"""

from unittest.mock import MagicMock

import pytest

from hotlist.data.config import SchedulerConfig
from hotlist.data.data_models import SweepResult
from hotlist.orchestrator.scheduler import HotlistScheduler, RunHistory
from hotlist.orchestrator.service import HotlistService

from factories import T0

JOB_NAMES = ["discovery", "reconciliation", "deadline_sweep", "queue_sweep", "visibility_sweep"]


def _config(**overrides):
    values = dict(
        discovery_minutes=60,
        reconciliation_minutes=1,
        deadline_sweep_minutes=60,
        queue_sweep_minutes=30,
        visibility_sweep_minutes=5,
        timezone="UTC",
        misfire_grace_time=30,
    )
    values.update(overrides)
    return SchedulerConfig(**values)


class TestRunHistory:
    """Tests for per-job bookkeeping."""

    def test_record_runs(self):
        history = RunHistory()
        history.record_run(False, 0.1)
        history.record_run(False, 0.1)
        history.record_run(True, 0.2, {"affected": 1})

        data = history.to_dict()
        assert data["total_runs"] == 3
        assert data["total_failures"] == 2
        assert data["consecutive_failures"] == 0
        assert data["last_run_status"] == "completed"
        assert data["last_summary"] == {"affected": 1}
        assert data["success_rate"] == pytest.approx(100 / 3)


class TestHotlistScheduler:
    """Tests for job execution and status."""

    def setup_method(self):
        self.service = MagicMock(spec=HotlistService)
        self.service.run_deadline_sweep.return_value = SweepResult(sweep="deadline", started_at=T0, affected=2)
        self.scheduler = HotlistScheduler(self.service, _config())

    def teardown_method(self):
        self.scheduler.stop(wait=False)

    def test_run_job_records_summary(self):
        summary = self.scheduler.run_job("deadline_sweep")

        assert summary["sweep"] == "deadline"
        assert summary["affected"] == 2
        history = self.scheduler.get_run_history("deadline_sweep")
        assert history.total_successes == 1
        assert history.last_summary == summary

    def test_failed_job_is_recorded_not_raised(self):
        self.service.run_ingestion.side_effect = RuntimeError("boom")

        assert self.scheduler.run_job("discovery") is None
        assert self.scheduler.run_job("discovery") is None
        assert self.scheduler.get_run_history("discovery").consecutive_failures == 2

    def test_trigger_now(self):
        self.scheduler.trigger_now("deadline_sweep")

        self.service.run_deadline_sweep.assert_called_once_with()

    def test_trigger_unknown(self):
        with pytest.raises(ValueError, match="Unknown job"):
            self.scheduler.trigger_now("nope")

    def test_status_when_stopped(self):
        status = self.scheduler.get_status()

        assert status["is_running"] is False
        assert status["timezone"] == "UTC"
        assert sorted(status["jobs"]) == sorted(JOB_NAMES)
        assert status["jobs"]["queue_sweep"]["interval_minutes"] == 30
        assert status["jobs"]["queue_sweep"]["next_run"] is None

    def test_start_registers_every_job(self):
        self.scheduler.start(blocking=False)

        status = self.scheduler.get_status()
        assert status["is_running"] is True
        assert all(job["next_run"] is not None for job in status["jobs"].values())

        self.scheduler.stop(wait=False)
        assert self.scheduler.is_running is False
