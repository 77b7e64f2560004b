"""Tests for scheduler job definitions and scheduler setup."""

from unittest.mock import MagicMock, patch

import pytest
from docketcc.notifications.delivery import DeliveryResult
from docketcc.pipeline import PipelineResult


class TestMonitoringJob:
    @pytest.mark.asyncio
    async def test_runs_pipeline_in_thread(self):
        from docketcc.scheduler.jobs import monitoring_job

        result = PipelineResult(reason="business_hours", dockets_checked=3)
        with patch("docketcc.scheduler.jobs.asyncio.to_thread", return_value=result) as mock_thread:
            await monitoring_job()
        mock_thread.assert_called_once()

    @pytest.mark.asyncio
    async def test_tolerates_no_result(self):
        from docketcc.scheduler.jobs import monitoring_job

        with patch("docketcc.scheduler.jobs.asyncio.to_thread", return_value=None):
            await monitoring_job()


class TestDeliveryJob:
    @pytest.mark.asyncio
    async def test_logs_errors(self, caplog):
        from docketcc.scheduler.jobs import delivery_job

        result = DeliveryResult(processed=2, sent=1, failed=1, errors=["bounce@example.com: rejected"])
        with patch("docketcc.scheduler.jobs.asyncio.to_thread", return_value=result):
            await delivery_job()
        assert "bounce@example.com: rejected" in caplog.text


class TestMaintenanceJob:
    @pytest.mark.asyncio
    async def test_reports_counts(self, caplog):
        from docketcc.scheduler.jobs import maintenance_job

        caplog.set_level("INFO")
        result = {"trials_expired": 2, "logs_removed": 40, "filings_removed": 0}
        with patch("docketcc.scheduler.jobs.asyncio.to_thread", return_value=result):
            await maintenance_job()
        assert "2 trials expired" in caplog.text


class TestCreateScheduler:
    def test_registers_all_jobs(self, fresh_config):
        from docketcc.scheduler.setup import create_scheduler

        scheduler = create_scheduler(fresh_config)
        assert {job.id for job in scheduler.get_jobs()} == {"monitoring", "delivery", "maintenance"}

    def test_parse_time(self):
        from docketcc.scheduler.setup import _parse_time

        assert _parse_time("03:15") == (3, 15)
        assert _parse_time("7") == (7, 0)


class TestJobErrorListener:
    def test_records_failure_in_system_log(self):
        from docketcc.scheduler.error_handler import job_error_listener

        services = MagicMock()
        event = MagicMock(job_id="delivery", exception=RuntimeError("boom"), traceback="Traceback ...")
        with patch("docketcc.services.get_services", return_value=services):
            job_error_listener(event)

        message, component = services.system_log.error.call_args.args
        assert message == "Scheduled job 'delivery' failed"
        assert component == "scheduler"
