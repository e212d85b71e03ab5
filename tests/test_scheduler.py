"""Tests for the job schedulers."""

import logging
import threading
from datetime import timedelta

import pytest

from library_lending.background import ManualScheduler, ThreadingScheduler


class TestScheduleRegistration:
    def test_rejects_non_positive_interval(self, manual_scheduler: ManualScheduler):
        with pytest.raises(ValueError, match="positive"):
            manual_scheduler.every(timedelta(0), "never", lambda: None)

    def test_rejects_duplicate_name(self, manual_scheduler):
        manual_scheduler.every(timedelta(minutes=1), "job", lambda: None)

        with pytest.raises(ValueError, match="already scheduled"):
            manual_scheduler.every(timedelta(minutes=5), "job", lambda: None)


class TestManualScheduler:
    def test_run_returns_job_result(self, manual_scheduler):
        manual_scheduler.every(timedelta(minutes=1), "answer", lambda: 42)

        assert manual_scheduler.run("answer") == 42

    def test_unknown_job(self, manual_scheduler):
        with pytest.raises(KeyError):
            manual_scheduler.run("missing")

    def test_failing_job_is_contained(self, manual_scheduler, caplog):
        def explode():
            raise RuntimeError("boom")

        manual_scheduler.every(timedelta(minutes=1), "explode", explode)
        manual_scheduler.every(timedelta(minutes=1), "fine", lambda: "ok")

        with caplog.at_level(logging.ERROR):
            results = manual_scheduler.run_all()

        assert results == {"explode": None, "fine": "ok"}
        assert "Scheduled job 'explode' failed" in caplog.text

    def test_start_and_shutdown(self, manual_scheduler):
        manual_scheduler.start()
        assert manual_scheduler.started

        manual_scheduler.shutdown()
        assert not manual_scheduler.started


class TestThreadingScheduler:
    def test_runs_jobs_until_shutdown(self):
        scheduler = ThreadingScheduler()
        ran = threading.Event()
        scheduler.every(timedelta(milliseconds=20), "tick", ran.set)

        scheduler.start()
        try:
            assert ran.wait(timeout=5)
        finally:
            scheduler.shutdown()

    def test_failing_job_keeps_the_thread_alive(self):
        scheduler = ThreadingScheduler()
        calls = []
        ran_twice = threading.Event()

        def flaky():
            calls.append(1)
            if len(calls) >= 2:
                ran_twice.set()
            raise RuntimeError("boom")

        scheduler.every(timedelta(milliseconds=20), "flaky", flaky)
        scheduler.start()
        try:
            assert ran_twice.wait(timeout=5)
        finally:
            scheduler.shutdown()

    def test_shutdown_without_start(self):
        ThreadingScheduler().shutdown()
