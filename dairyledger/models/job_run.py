from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel


class JobRunStatus(str, Enum):
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    PARTIAL = "partial"
    FAILED = "failed"


class JobRun(BaseModel):
    id: int | None = None
    job_name: str
    run_key: str  # idempotency key, one run per job per local day
    status: JobRunStatus = JobRunStatus.RUNNING
    processed: int = 0
    failed: int = 0
    errors: list[dict] = []
    started_at: datetime | None = None
    finished_at: datetime | None = None
