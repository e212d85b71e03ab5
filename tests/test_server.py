"""Tests for server wiring that does not need a live MCP transport."""

import pytest

from library_lending import server
from library_lending.background import FINE_SWEEP_JOB, OVERDUE_SWEEP_JOB, ThreadingScheduler
from library_lending.config import LendingConfig
from library_lending.database import reset_db_manager


@pytest.fixture(autouse=True)
def fresh_db_manager():
    reset_db_manager()
    yield
    reset_db_manager()


class TestBackgroundJobs:
    def test_disabled_scheduler(self):
        assert server.start_background_jobs(LendingConfig(scheduler_enabled=False)) is None

    def test_enabled_scheduler_runs_both_sweeps(self):
        scheduler = server.start_background_jobs(
            LendingConfig(fine_sweep_interval_seconds=600, overdue_sweep_interval_seconds=60)
        )
        try:
            assert isinstance(scheduler, ThreadingScheduler)
            assert set(scheduler.job_names) == {FINE_SWEEP_JOB, OVERDUE_SWEEP_JOB}
        finally:
            scheduler.shutdown()


class TestServer:
    def test_server_named_from_config(self):
        assert server.mcp.name == server.config.server_name
