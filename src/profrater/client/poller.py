"""Polling client for the job API.

:class:`JobPoller` submits a job and then checks it on a fixed interval
until it reaches ``complete`` or ``error``.  Polling can be stopped three
ways:

- setting ``cancel_event``: scheduled polls stop and an in-flight request is
  discarded (:class:`PollCancelledError`);
- cancelling the awaiting task;
- an optional bound, ``max_wait`` seconds or ``max_attempts`` checks
  (:class:`PollTimeoutError`).

Stopping the poller never affects the job on the server.

Usage::

    async with JobPoller("http://localhost:8000") as poller:
        job_id = await poller.submit("Jane Doe", "Test University")
        job = await poller.wait(job_id, on_update=print)
"""

from __future__ import annotations

import asyncio
import enum
import inspect
import logging
import time
from contextlib import suppress
from typing import Any, Awaitable, Callable, Optional, TypeVar, Union

import httpx

from profrater.core.exceptions import (
    JobNotFoundError,
    JobValidationError,
    PollCancelledError,
    PollTimeoutError,
    StoreUnavailableError,
    UpstreamError,
)
from profrater.core.schemas.jobs import JobStatus, JobStatusResponse

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PollState(str, enum.Enum):
    """Progress states shown to the user while a job is polled."""

    QUEUED = "queued"
    SCRAPING = "scraping"
    COMPLETE = "complete"
    ERROR = "error"


_STATE_FOR_STATUS: dict[JobStatus, PollState] = {
    JobStatus.QUEUED: PollState.QUEUED,
    JobStatus.RUNNING: PollState.SCRAPING,
    JobStatus.COMPLETE: PollState.COMPLETE,
    JobStatus.ERROR: PollState.ERROR,
}

UpdateCallback = Callable[[PollState, JobStatusResponse], Union[None, Awaitable[None]]]


def poll_state(status: JobStatus) -> PollState:
    return _STATE_FOR_STATUS[status]


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("error") or body.get("message") or body)
    return str(body)


class JobPoller:
    """Async HTTP client for ``/start-scrape`` and ``/check-job``.

    Args:
        base_url: Root URL of the job API.
        interval: Seconds between status checks.
        max_wait: Give up after this many seconds.  ``None`` waits forever.
        max_attempts: Give up after this many checks.  ``None`` is unbounded.
        timeout: Per-request timeout in seconds.
        client: Optional pre-configured ``httpx.AsyncClient``.  It must
            target ``base_url`` and is not closed by the poller.
    """

    def __init__(
        self,
        base_url: str,
        *,
        interval: float = 1.5,
        max_wait: Optional[float] = None,
        max_attempts: Optional[int] = None,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.interval = interval
        self.max_wait = max_wait
        self.max_attempts = max_attempts
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def __aenter__(self) -> "JobPoller":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Single requests
    # ------------------------------------------------------------------

    async def submit(
        self,
        professor_name: str,
        university: str,
        user_question: Optional[str] = None,
        course: Optional[str] = None,
    ) -> str:
        """Create a job and return its id.

        Raises:
            JobValidationError: On HTTP 400.
            StoreUnavailableError: On HTTP 503.
            UpstreamError: On any other non-2xx response, or if the server
                cannot be reached.
        """
        payload: dict[str, Any] = {"professorName": professor_name, "university": university}
        if user_question:
            payload["userQuestion"] = user_question
        if course:
            payload["course"] = course
        response = await self._request("POST", "/start-scrape", json=payload)
        if response.status_code == 400:
            raise JobValidationError(_error_message(response))
        self._raise_for_status(response)
        job_id = response.json()["jobId"]
        logger.debug("poller: submitted job %s", job_id)
        return str(job_id)

    async def check(self, job_id: str) -> JobStatusResponse:
        """Fetch the current state of ``job_id``.

        Raises:
            JobNotFoundError: On HTTP 404.
            JobValidationError: On HTTP 400.
            StoreUnavailableError: On HTTP 503.
            UpstreamError: On any other non-2xx response, or if the server
                cannot be reached.
        """
        response = await self._request("GET", "/check-job", params={"id": job_id})
        if response.status_code == 404:
            raise JobNotFoundError(job_id)
        if response.status_code == 400:
            raise JobValidationError(_error_message(response), field="id")
        self._raise_for_status(response)
        return JobStatusResponse.model_validate(response.json())

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._client.request(method, url, **kwargs)
        except httpx.RequestError as exc:
            raise UpstreamError(f"{method} {url} failed: {exc!r}") from exc

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.status_code == 503:
            raise StoreUnavailableError(_error_message(response), operation="http")
        if response.is_error:
            raise UpstreamError(f"HTTP {response.status_code}: {_error_message(response)}")

    # ------------------------------------------------------------------
    # Polling loop
    # ------------------------------------------------------------------

    async def wait(
        self,
        job_id: str,
        on_update: Optional[UpdateCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> JobStatusResponse:
        """Poll ``job_id`` until it is ``complete`` or ``error``.

        The first check happens immediately.  ``on_update`` is called after
        every check, terminal ones included.

        Returns:
            The job in its terminal state.

        Raises:
            PollCancelledError: If ``cancel_event`` is set.
            PollTimeoutError: If ``max_wait`` or ``max_attempts`` is exceeded.
            JobNotFoundError: If the job disappears.
        """
        started = time.monotonic()
        attempts = 0

        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise PollCancelledError(job_id)
            if self.max_attempts is not None and attempts >= self.max_attempts:
                raise PollTimeoutError(job_id, attempts, time.monotonic() - started)

            job = await self._until_cancelled(self.check(job_id), job_id, cancel_event)
            attempts += 1
            state = poll_state(job.status)
            logger.debug("poller: job %s is %s (check %d)", job_id, job.status.value, attempts)

            if on_update is not None:
                result = on_update(state, job)
                if inspect.isawaitable(result):
                    await result

            if job.status.is_terminal:
                return job

            elapsed = time.monotonic() - started
            if self.max_wait is not None:
                if elapsed >= self.max_wait:
                    raise PollTimeoutError(job_id, attempts, elapsed)
                delay = min(self.interval, self.max_wait - elapsed)
            else:
                delay = self.interval
            await self._sleep(delay, job_id, cancel_event)

    async def run(
        self,
        professor_name: str,
        university: str,
        user_question: Optional[str] = None,
        course: Optional[str] = None,
        *,
        on_update: Optional[UpdateCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> JobStatusResponse:
        """Submit a job and wait for its terminal state."""
        job_id = await self.submit(professor_name, university, user_question, course)
        return await self.wait(job_id, on_update=on_update, cancel_event=cancel_event)

    @staticmethod
    async def _sleep(
        delay: float, job_id: str, cancel_event: Optional[asyncio.Event]
    ) -> None:
        if cancel_event is None:
            await asyncio.sleep(delay)
            return
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=delay)
        except TimeoutError:
            return
        raise PollCancelledError(job_id)

    @staticmethod
    async def _until_cancelled(
        coro: Awaitable[T], job_id: str, cancel_event: Optional[asyncio.Event]
    ) -> T:
        """Await ``coro`` unless ``cancel_event`` fires first; then drop it."""
        if cancel_event is None:
            return await coro
        request = asyncio.ensure_future(coro)
        cancelled = asyncio.ensure_future(cancel_event.wait())
        try:
            done, _ = await asyncio.wait(
                {request, cancelled}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for future in (request, cancelled):
                if not future.done():
                    future.cancel()
        if request in done:
            return request.result()
        with suppress(asyncio.CancelledError):
            await request
        raise PollCancelledError(job_id)
