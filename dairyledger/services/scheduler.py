from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import datetime
from datetime import time as clock_time

from pydantic import BaseModel

from dairyledger.constants import local_now
from dairyledger.errors import NotFound, ValidationError
from dairyledger.models.job_run import JobRun, JobRunStatus
from dairyledger.repositories.base import JobRunRepository
from dairyledger.services.jobs import BillingJobs, JobResult
from dairyledger.settings import settings

logger = logging.getLogger(__name__)

MATERIALIZE_DELIVERIES = "materialize_deliveries"
PAYMENT_REMINDERS = "payment_reminders"
OVERDUE_BILLS = "overdue_bills"
DAILY_REPORT = "daily_report"


def parse_time_of_day(value: str) -> clock_time:
    try:
        hour, minute = (int(part) for part in value.split(":"))
        return clock_time(hour, minute)
    except ValueError as exc:
        raise ValidationError(f"Invalid time of day {value!r}, expected HH:MM") from exc


class JobDefinition(BaseModel):
    name: str
    at: clock_time
    handler: Callable[[datetime], JobResult]


class Scheduler:
    """Runs each job at most once per local day.

    A job's identity is its name; the idempotency key of a run is the local
    date. Claims live in ``job_runs`` so that a restart, or a second
    scheduler process, does not repeat a day's work. The clock is injected.
    """

    def __init__(
        self,
        job_run_repo: JobRunRepository,
        jobs: list[JobDefinition],
        clock: Callable[[], datetime] = local_now,
    ) -> None:
        self.job_run_repo = job_run_repo
        self.jobs = {job.name: job for job in jobs}
        self.clock = clock
        self.last_run_at: dict[str, datetime] = {}

    @staticmethod
    def run_key(now: datetime) -> str:
        return now.date().isoformat()

    def get_job(self, name: str) -> JobDefinition:
        job = self.jobs.get(name)
        if job is None:
            raise NotFound(f"Unknown job: {name}")
        return job

    def run_job(self, name: str, now: datetime | None = None, force: bool = False) -> JobRun | None:
        """Claim today's key for ``name`` and run it. Returns None if the day was already claimed.

        ``force`` uses a one-off key so an operator can rerun a job the same day.
        """
        job = self.get_job(name)
        now = now or self.clock()
        run_key = f"manual-{now:%Y%m%dT%H%M%S%f}" if force else self.run_key(now)

        job_run = self.job_run_repo.start(name, run_key, now)
        if job_run is None:
            logger.info("Job %s already ran for %s, skipping", name, run_key)
            return None

        logger.info("Job %s started (key=%s)", name, run_key)
        try:
            result = job.handler(now)
        except Exception as exc:
            logger.exception("Job %s failed", name)
            job_run.status = JobRunStatus.FAILED
            job_run.errors = [{"itemId": None, "error": str(exc)}]
        else:
            job_run.status = JobRunStatus.SUCCEEDED if result.failed == 0 else JobRunStatus.PARTIAL
            job_run.processed = result.processed
            job_run.failed = result.failed
            job_run.errors = result.errors
        job_run.finished_at = self.clock()
        self.job_run_repo.finish(job_run)
        self.last_run_at[name] = now
        logger.info(
            "Job %s finished: status=%s processed=%d failed=%d",
            name,
            job_run.status.value,
            job_run.processed,
            job_run.failed,
        )
        return job_run

    def _is_due(self, job: JobDefinition, now: datetime) -> bool:
        if now.time() < job.at:
            return False
        last = self.job_run_repo.last_run(job.name)
        if last is None or last.run_key != self.run_key(now):
            return True
        return last.status == JobRunStatus.FAILED

    def run_pending(self, now: datetime | None = None) -> list[JobRun]:
        now = now or self.clock()
        runs = []
        for job in sorted(self.jobs.values(), key=lambda j: j.at):
            if not self._is_due(job, now):
                continue
            job_run = self.run_job(job.name, now)
            if job_run is not None:
                runs.append(job_run)
        return runs

    def run_forever(self, poll_seconds: int | None = None, should_stop: Callable[[], bool] | None = None) -> None:
        interval = poll_seconds or settings.scheduler_poll_seconds
        logger.info("Scheduler running %d jobs, polling every %ds", len(self.jobs), interval)
        while should_stop is None or not should_stop():
            try:
                self.run_pending()
            except Exception:
                logger.exception("Scheduler tick failed")
            time.sleep(interval)


def default_jobs(jobs: BillingJobs) -> list[JobDefinition]:
    return [
        JobDefinition(
            name=MATERIALIZE_DELIVERIES,
            at=parse_time_of_day(settings.materialize_at),
            handler=jobs.materialize_deliveries,
        ),
        JobDefinition(
            name=PAYMENT_REMINDERS,
            at=parse_time_of_day(settings.reminders_at),
            handler=jobs.send_payment_reminders,
        ),
        JobDefinition(
            name=OVERDUE_BILLS,
            at=parse_time_of_day(settings.overdue_at),
            handler=jobs.mark_overdue_bills,
        ),
        JobDefinition(
            name=DAILY_REPORT,
            at=parse_time_of_day(settings.daily_report_at),
            handler=jobs.send_daily_report,
        ),
    ]
