"""Worker-facing routes.

``POST /run-job`` is called by the submission service's trigger, not by end
users.  It answers only after the pipeline finishes.  The pipeline runs in
its own task shielded from the request: if the trigger hangs up early the
job still runs to a terminal state.

``POST /reconcile`` runs one reconciliation sweep on demand.
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from profrater.api.dependencies import AppServices, get_reconciler, get_services
from profrater.core.exceptions import (
    JobAlreadyClaimedError,
    JobNotFoundError,
    StoreUnavailableError,
)
from profrater.core.schemas.jobs import RunJobRequest, RunJobResponse
from profrater.workers.reconciler import JobReconciler

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["worker"])


def _reply(status_code: int, body: RunJobResponse) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(by_alias=True, exclude_none=True),
    )


@router.post("/run-job")
async def run_job(
    body: RunJobRequest,
    services: AppServices = Depends(get_services),
) -> JSONResponse:
    """Execute one queued job and report the outcome."""
    job_id = (body.job_id or "").strip()
    if not job_id:
        return _reply(
            status.HTTP_400_BAD_REQUEST,
            RunJobResponse(success=False, message="Missing jobId in request body"),
        )

    task = asyncio.create_task(services.executor.run_job(job_id), name=f"run-{job_id}")
    services.running.add(task)
    task.add_done_callback(services.running.discard)

    try:
        outcome = await asyncio.shield(task)
    except JobNotFoundError as exc:
        return _reply(
            status.HTTP_404_NOT_FOUND,
            RunJobResponse(success=False, message=str(exc), job_id=job_id),
        )
    except JobAlreadyClaimedError as exc:
        logger.info("run_job_rejected", job_id=job_id, status=exc.status)
        return _reply(
            status.HTTP_409_CONFLICT,
            RunJobResponse(success=False, message=str(exc), job_id=job_id),
        )
    except StoreUnavailableError as exc:
        return _reply(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            RunJobResponse(success=False, message=str(exc), job_id=job_id),
        )

    duration = f"{outcome.duration_seconds:.2f}"
    if outcome.success:
        return _reply(
            status.HTTP_200_OK,
            RunJobResponse(
                success=True,
                message=outcome.message,
                job_id=job_id,
                duration=duration,
                review_count=outcome.review_count,
            ),
        )
    return _reply(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        RunJobResponse(success=False, message=outcome.message, job_id=job_id, duration=duration),
    )


@router.post("/reconcile")
async def reconcile(
    reconciler: JobReconciler = Depends(get_reconciler),
) -> dict[str, Any]:
    """Re-trigger stale queued jobs and expire abandoned running jobs."""
    report = await reconciler.sweep()
    return report.as_dict()
