"""Application-wide exception hierarchy for ProfRater.

All custom exceptions subclass ``ProfRaterError``, enabling consistent error
handling in the API exception handlers and structured logging in the
worker pipeline.

Hierarchy::

    ProfRaterError
    ├── JobValidationError           (400, nothing persisted)
    ├── JobNotFoundError             (404)
    ├── InvalidTransitionError       (forward-only status rule broken)
    ├── JobConflictError             (versioned write rejected)
    │   └── JobAlreadyClaimedError   (409 on /run-job)
    ├── StoreUnavailableError        (503, job state indeterminate)
    ├── UpstreamError                (persisted as job ``error``)
    │   ├── ScrapeError
    │   │   └── NoReviewsFoundError
    │   └── AnalysisError
    ├── PipelineTimeoutError         (persisted as job ``error``)
    ├── PollTimeoutError             (client side)
    └── PollCancelledError           (client side)
"""

from __future__ import annotations


class ProfRaterError(Exception):
    """Base class for all ProfRater exceptions."""


# ---------------------------------------------------------------------------
# Request / lookup errors
# ---------------------------------------------------------------------------


class JobValidationError(ProfRaterError):
    """Raised when a job request is missing required input.

    Raised before any state is created.

    Args:
        message: Human-readable description of the invalid input.
        field: Name of the offending field, when known.
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class JobNotFoundError(ProfRaterError):
    """Raised when a job id is unknown to the job store.

    Args:
        job_id: The id that was looked up.
    """

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id


class InvalidTransitionError(ProfRaterError):
    """Raised when a status change would move a job backwards or skip a state.

    Args:
        job_id: The job being mutated.
        current: Current status value.
        target: Requested status value.
    """

    def __init__(self, job_id: str, current: str, target: str) -> None:
        super().__init__(f"Job {job_id}: illegal transition {current} -> {target}")
        self.job_id = job_id
        self.current = current
        self.target = target


# ---------------------------------------------------------------------------
# Store errors
# ---------------------------------------------------------------------------


class JobConflictError(ProfRaterError):
    """Raised when a versioned write finds a different version in the store.

    Args:
        job_id: The job whose write was rejected.
        expected_version: Version the writer based its update on.
        current_version: Version actually stored, or ``None`` if the record
            no longer exists.
    """

    def __init__(
        self,
        job_id: str,
        expected_version: int | None,
        current_version: int | None,
        message: str | None = None,
    ) -> None:
        super().__init__(
            message
            or f"Job {job_id}: expected version {expected_version}, found {current_version}"
        )
        self.job_id = job_id
        self.expected_version = expected_version
        self.current_version = current_version


class JobAlreadyClaimedError(JobConflictError):
    """Raised by the worker when another invocation already owns the job.

    Args:
        job_id: The job that could not be claimed.
        status: Status observed when the claim failed.
        current_version: Version observed when the claim failed.
    """

    def __init__(
        self,
        job_id: str,
        status: str,
        current_version: int | None = None,
    ) -> None:
        super().__init__(
            job_id,
            expected_version=None,
            current_version=current_version,
            message=f"Job {job_id} already claimed (status: {status})",
        )
        self.status = status


class StoreUnavailableError(ProfRaterError):
    """Raised when the job store cannot be reached.

    Callers must treat job state as indeterminate; no automatic retry is
    performed.

    Args:
        message: Description of the connectivity failure.
        operation: Store operation that failed (e.g. ``"get"``).
    """

    def __init__(self, message: str, operation: str | None = None) -> None:
        super().__init__(message)
        self.operation = operation


# ---------------------------------------------------------------------------
# Pipeline errors
# ---------------------------------------------------------------------------


class UpstreamError(ProfRaterError):
    """Raised when an external collaborator fails.

    The worker converts these into a persisted ``error`` job state.
    """


class ScrapeError(UpstreamError):
    """Raised when the scraping collaborator cannot produce review data.

    Args:
        message: Human-readable description of the failure.
        subject: Professor name being scraped.
        organization: University name being scraped.
    """

    def __init__(
        self,
        message: str,
        subject: str | None = None,
        organization: str | None = None,
    ) -> None:
        super().__init__(message)
        self.subject = subject
        self.organization = organization


class NoReviewsFoundError(ScrapeError):
    """Raised when scraping succeeded but produced zero reviews."""

    def __init__(self, subject: str, organization: str) -> None:
        super().__init__(
            f"No reviews found for {subject} at {organization}. "
            "Please check the name and university.",
            subject=subject,
            organization=organization,
        )


class NoCourseReviewsError(ScrapeError):
    """Raised when a course filter leaves none of the scraped reviews.

    Args:
        course: The requested course filter.
        total: Number of reviews scraped before filtering.
    """

    def __init__(self, course: str, total: int) -> None:
        super().__init__(
            f'No reviews found for course "{course}". Total reviews available: {total}'
        )
        self.course = course
        self.total = total


class AnalysisError(UpstreamError):
    """Raised when the summarisation collaborator fails.

    Args:
        message: Human-readable description of the failure.
        status_code: Upstream HTTP status, when the failure was an HTTP error.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PipelineTimeoutError(ProfRaterError):
    """Raised when a job exceeds the configured execution deadline.

    Args:
        timeout: The deadline in seconds that was exceeded.
    """

    def __init__(self, timeout: float) -> None:
        super().__init__(f"Job timed out after {timeout:g} seconds")
        self.timeout = timeout


# ---------------------------------------------------------------------------
# Polling client errors
# ---------------------------------------------------------------------------


class PollTimeoutError(ProfRaterError):
    """Raised when polling exceeds its wait budget before a terminal state.

    Args:
        job_id: The job being polled.
        attempts: Number of status checks performed.
        elapsed: Seconds spent polling.
    """

    def __init__(self, job_id: str, attempts: int, elapsed: float) -> None:
        super().__init__(
            f"Job {job_id} not finished after {attempts} checks ({elapsed:.1f}s)"
        )
        self.job_id = job_id
        self.attempts = attempts
        self.elapsed = elapsed


class PollCancelledError(ProfRaterError):
    """Raised when polling is stopped through its cancel signal.

    Args:
        job_id: The job being polled.
    """

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Polling for job {job_id} was cancelled")
        self.job_id = job_id
