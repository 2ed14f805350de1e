from __future__ import annotations

import logging

from fastapi import APIRouter, Request

from web.deps import get_scheduler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/jobs")


@router.post("/{job_name}/run")
async def job_run(request: Request, job_name: str, force: bool = False):
    logger.info("POST /api/jobs/%s/run: force=%s", job_name, force)
    job_run = get_scheduler(request).run_job(job_name, force=force)
    if job_run is None:
        return {"success": True, "ran": False, "message": f"{job_name} already ran today"}
    return {"success": True, "ran": True, "run": job_run.model_dump(mode="json")}
