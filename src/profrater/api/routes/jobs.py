"""Client-facing job routes: submit a job and poll its state.

``POST /start-scrape``
    Validate input, persist a ``queued`` job, trigger the worker without
    waiting.  ``201 {jobId, message}``.

``GET /check-job?id=<jobId>``
    Return the stored record with its ``jobId``.

Validation, not-found and store errors are raised as domain exceptions and
rendered by the handlers registered in ``api/main.py``.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, status

from profrater.api.dependencies import get_submission_service
from profrater.core.exceptions import JobValidationError
from profrater.core.schemas.jobs import StartScrapeRequest, StartScrapeResponse
from profrater.core.submission import JobSubmissionService

router = APIRouter(tags=["jobs"])


@router.post(
    "/start-scrape",
    status_code=status.HTTP_201_CREATED,
    response_model=StartScrapeResponse,
)
async def start_scrape(
    body: StartScrapeRequest,
    submission: JobSubmissionService = Depends(get_submission_service),
) -> StartScrapeResponse:
    job = await submission.submit(
        body.professor_name, body.university, body.user_question, body.course
    )
    return StartScrapeResponse(job_id=job.id)


@router.get("/check-job")
async def check_job(
    job_id: Optional[str] = Query(default=None, alias="id"),
    submission: JobSubmissionService = Depends(get_submission_service),
) -> dict[str, Any]:
    """Return the job record (including ``jobId``) for the given ``id``."""
    if not job_id or not job_id.strip():
        raise JobValidationError("Job ID is required (query param: id)", field="id")
    job = await submission.get_job(job_id.strip())
    return job.to_response()
