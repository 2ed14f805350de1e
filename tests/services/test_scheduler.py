from datetime import datetime, time
from unittest.mock import MagicMock, patch

import pytest

from dairyledger.errors import NotFound, ValidationError
from dairyledger.models.job_run import JobRunStatus
from dairyledger.services.jobs import JobResult
from dairyledger.services.scheduler import (
    DAILY_REPORT,
    MATERIALIZE_DELIVERIES,
    OVERDUE_BILLS,
    PAYMENT_REMINDERS,
    JobDefinition,
    Scheduler,
    default_jobs,
    parse_time_of_day,
)

MORNING = datetime(2025, 4, 8, 9, 30)


def _handler(result=None, error=None):
    handler = MagicMock(return_value=result or JobResult(processed=1))
    if error is not None:
        handler.side_effect = error
    return handler


def _scheduler(repos, handler, at=time(9, 0), now=MORNING):
    job = JobDefinition(name="reminders", at=at, handler=handler)
    return Scheduler(repos.job_runs, [job], clock=lambda: now)


class TestParseTimeOfDay:
    def test_valid(self):
        assert parse_time_of_day("09:05") == time(9, 5)

    @pytest.mark.parametrize("value", ["9", "25:00", "ab:cd", "1:2:3"])
    def test_invalid(self, value):
        with pytest.raises(ValidationError):
            parse_time_of_day(value)


class TestRunJob:
    def test_runs_once_per_day(self, repos):
        handler = _handler()
        scheduler = _scheduler(repos, handler)

        first = scheduler.run_job("reminders")
        second = scheduler.run_job("reminders", now=datetime(2025, 4, 8, 18, 0))

        assert first.status == JobRunStatus.SUCCEEDED
        assert first.run_key == "2025-04-08"
        assert first.processed == 1
        assert second is None
        handler.assert_called_once_with(MORNING)

    def test_next_day_runs_again(self, repos):
        handler = _handler()
        scheduler = _scheduler(repos, handler)

        scheduler.run_job("reminders")
        assert scheduler.run_job("reminders", now=datetime(2025, 4, 9, 9, 30)) is not None
        assert handler.call_count == 2

    def test_partial_result(self, repos):
        result = JobResult(processed=2, failed=1, errors=[{"itemId": 3, "error": "boom"}])
        job_run = _scheduler(repos, _handler(result)).run_job("reminders")

        assert job_run.status == JobRunStatus.PARTIAL
        stored = repos.job_runs.last_run("reminders")
        assert stored.failed == 1
        assert stored.errors == [{"itemId": 3, "error": "boom"}]

    def test_failed_run_can_be_reclaimed(self, repos):
        handler = _handler(error=[RuntimeError("db down"), JobResult(processed=4)])
        scheduler = _scheduler(repos, handler)

        failed = scheduler.run_job("reminders")
        assert failed.status == JobRunStatus.FAILED
        assert failed.errors == [{"itemId": None, "error": "db down"}]

        retried = scheduler.run_job("reminders")
        assert retried.status == JobRunStatus.SUCCEEDED
        assert retried.processed == 4

    def test_force_uses_one_off_key(self, repos):
        handler = _handler()
        scheduler = _scheduler(repos, handler)

        scheduler.run_job("reminders")
        forced = scheduler.run_job("reminders", force=True)

        assert forced.run_key == "manual-20250408T093000000000"
        assert handler.call_count == 2

    def test_unknown_job(self, repos):
        with pytest.raises(NotFound):
            _scheduler(repos, _handler()).run_job("nope")

    def test_records_last_run_at(self, repos):
        scheduler = _scheduler(repos, _handler())
        scheduler.run_job("reminders")
        assert scheduler.last_run_at == {"reminders": MORNING}


class TestRunPending:
    def test_waits_for_time_of_day(self, repos):
        handler = _handler()
        scheduler = _scheduler(repos, handler)

        assert scheduler.run_pending(datetime(2025, 4, 8, 8, 59)) == []
        handler.assert_not_called()

    def test_runs_due_jobs_once(self, repos):
        handler = _handler()
        scheduler = _scheduler(repos, handler)

        assert len(scheduler.run_pending()) == 1
        assert scheduler.run_pending(datetime(2025, 4, 8, 10, 0)) == []
        handler.assert_called_once()

    def test_retries_failed_job(self, repos):
        handler = _handler(error=[RuntimeError("db down"), JobResult()])
        scheduler = _scheduler(repos, handler)

        [failed] = scheduler.run_pending()
        [retried] = scheduler.run_pending(datetime(2025, 4, 8, 9, 31))

        assert failed.status == JobRunStatus.FAILED
        assert retried.status == JobRunStatus.SUCCEEDED

    def test_runs_jobs_in_time_order(self, repos):
        calls = []
        early = JobDefinition(name="early", at=time(6, 0), handler=lambda now: calls.append("early") or JobResult())
        late = JobDefinition(name="late", at=time(9, 0), handler=lambda now: calls.append("late") or JobResult())
        scheduler = Scheduler(repos.job_runs, [late, early], clock=lambda: MORNING)

        scheduler.run_pending()

        assert calls == ["early", "late"]


class TestRunForever:
    @patch("dairyledger.services.scheduler.time.sleep")
    def test_polls_until_stopped(self, mock_sleep, repos):
        scheduler = _scheduler(repos, _handler())
        should_stop = MagicMock(side_effect=[False, False, True])

        with patch.object(scheduler, "run_pending", side_effect=[RuntimeError("tick"), []]) as run_pending:
            scheduler.run_forever(poll_seconds=5, should_stop=should_stop)

        assert run_pending.call_count == 2
        mock_sleep.assert_called_with(5)


def test_default_jobs():
    jobs = default_jobs(MagicMock())
    assert [job.name for job in jobs] == [MATERIALIZE_DELIVERIES, PAYMENT_REMINDERS, OVERDUE_BILLS, DAILY_REPORT]
    assert jobs[0].at == time(6, 0)
    assert jobs[3].at == time(22, 0)
