"""Job submission service and worker trigger.

``JobSubmissionService.submit`` validates the request, writes a ``queued``
job, and notifies the worker without waiting for it.  The notification is a
single ``POST {worker_url}/run-job`` made from a detached asyncio task.
Delivery is at most once and unacknowledged: a failed trigger is logged and
the submission still succeeds.  Jobs whose trigger was lost are picked up
again by :class:`~profrater.workers.reconciler.JobReconciler`.
"""

from __future__ import annotations

import asyncio
from typing import Optional, Protocol

import httpx
import structlog

from profrater.core.exceptions import JobNotFoundError
from profrater.core.job_store import JobStore
from profrater.core.schemas.jobs import Job

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Worker trigger
# ---------------------------------------------------------------------------


class WorkerTrigger(Protocol):
    """Anything that can ask the worker to run a job."""

    async def trigger(self, job_id: str) -> bool:
        """Send the run request.  Returns ``True`` if it was delivered."""
        ...


class HttpWorkerTrigger:
    """Trigger the worker over HTTP via ``POST /run-job``.

    The worker answers only after the pipeline finishes, which usually
    outlasts ``timeout``.  A read timeout after the request was sent counts
    as delivered; the worker keeps running the job after the trigger hangs up.

    Args:
        worker_url: Base URL of the worker service.
        timeout: Request timeout in seconds.
        client: Optional shared ``httpx.AsyncClient``.  When omitted a
            short-lived client is created per trigger.
    """

    def __init__(
        self,
        worker_url: str,
        *,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.url = f"{worker_url.rstrip('/')}/run-job"
        self.timeout = timeout
        self._client = client

    async def trigger(self, job_id: str) -> bool:
        if self._client is not None:
            return await self._post(self._client, job_id)
        async with httpx.AsyncClient(trust_env=False) as client:
            return await self._post(client, job_id)

    async def _post(self, client: httpx.AsyncClient, job_id: str) -> bool:
        try:
            response = await client.post(
                self.url, json={"jobId": job_id}, timeout=self.timeout
            )
        except httpx.ReadTimeout:
            logger.info("worker_trigger_timeout", job_id=job_id, url=self.url)
            return True
        except httpx.RequestError as exc:
            logger.error("worker_trigger_failed", job_id=job_id, url=self.url, error=str(exc))
            return False

        if response.is_success:
            logger.info("worker_triggered", job_id=job_id, status_code=response.status_code)
        else:
            # The worker received the request; the job record carries the outcome.
            logger.error(
                "worker_returned_error",
                job_id=job_id,
                status_code=response.status_code,
                body=response.text[:300],
            )
        return True


# ---------------------------------------------------------------------------
# Submission service
# ---------------------------------------------------------------------------


class JobSubmissionService:
    """Create jobs and dispatch them to the worker.

    Args:
        store: Job store handle shared with the rest of the application.
        trigger: Worker trigger used for fire-and-forget dispatch.
        job_ttl_seconds: When set, new records expire after this many seconds.
    """

    def __init__(
        self,
        store: JobStore,
        trigger: WorkerTrigger,
        *,
        job_ttl_seconds: Optional[int] = None,
    ) -> None:
        self.store = store
        self.trigger = trigger
        self.job_ttl_seconds = job_ttl_seconds
        self._pending: set[asyncio.Task[bool]] = set()

    async def submit(
        self,
        professor_name: Optional[str],
        university: Optional[str],
        user_question: Optional[str] = None,
        course: Optional[str] = None,
    ) -> Job:
        """Create a ``queued`` job and trigger the worker without waiting.

        Raises:
            JobValidationError: If a required field is missing or blank.
                Nothing is written.
            StoreUnavailableError: If the job cannot be persisted.  The
                worker is not triggered.
        """
        job = Job.create(professor_name, university, user_question, course)
        if self.job_ttl_seconds:
            await self.store.put_with_expiry(job, self.job_ttl_seconds)
        else:
            await self.store.put(job)

        logger.info(
            "job_created",
            job_id=job.id,
            professor_name=job.professor_name,
            university=job.university,
            has_question=job.user_question is not None,
            course=job.course,
        )
        self.dispatch(job.id)
        return job

    async def get_job(self, job_id: str) -> Job:
        """Return the current job record.

        Raises:
            JobNotFoundError: If no such job exists.
            StoreUnavailableError: If the store cannot be reached.
        """
        job = await self.store.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def dispatch(self, job_id: str) -> None:
        """Schedule the worker trigger as a detached task."""
        task = asyncio.create_task(self._trigger(job_id), name=f"trigger-{job_id}")
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _trigger(self, job_id: str) -> bool:
        try:
            return await self.trigger.trigger(job_id)
        except Exception:  # noqa: BLE001
            logger.exception("worker_trigger_crashed", job_id=job_id)
            return False

    async def drain(self) -> None:
        """Wait for in-flight triggers (shutdown and tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
