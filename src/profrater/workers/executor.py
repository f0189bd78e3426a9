"""Worker pipeline: claim a queued job, scrape, analyse, persist the outcome.

One :meth:`WorkerExecutor.run_job` call is one attempt.  The job is claimed
with a conditional write against the version that was loaded, so when two
invocations race for the same job exactly one of them runs the
collaborators; the other gets :class:`JobAlreadyClaimedError` and writes
nothing.

After a successful claim every failure, including a failed final write, is
turned into a single best-effort ``error`` write.  The exception is a
version conflict on the final write: another writer owns the record then
and nothing more is written.  Steps are never retried.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Optional, Protocol

import structlog

from profrater.core.exceptions import (
    JobAlreadyClaimedError,
    JobConflictError,
    JobNotFoundError,
    NoCourseReviewsError,
    NoReviewsFoundError,
    PipelineTimeoutError,
)
from profrater.core.job_store import JobStore
from profrater.core.logging_config import bound_job
from profrater.core.schemas.jobs import (
    Job,
    JobResult,
    JobStatus,
    ReviewRecord,
    ReviewStats,
    ScrapeResult,
    SubjectAggregate,
)

logger = structlog.get_logger(__name__)


def filter_by_course(
    reviews: list[ReviewRecord], course: Optional[str]
) -> list[ReviewRecord]:
    """Keep reviews whose course label contains ``course``, case-insensitively."""
    if not course:
        return reviews
    needle = course.casefold()
    return [r for r in reviews if needle in r.course.casefold()]


# ---------------------------------------------------------------------------
# Collaborator contracts
# ---------------------------------------------------------------------------


class Scraper(Protocol):
    async def scrape(self, subject_name: str, organization_name: str) -> ScrapeResult:
        ...


class Analyzer(Protocol):
    async def analyze(
        self,
        reviews: list[ReviewRecord],
        aggregate: SubjectAggregate,
        question: Optional[str] = None,
    ) -> str:
        ...


@dataclass(frozen=True)
class RunOutcome:
    """Result of one ``run_job`` attempt."""

    job_id: str
    status: JobStatus
    duration_seconds: float
    review_count: int = 0
    message: str = ""

    @property
    def success(self) -> bool:
        return self.status == JobStatus.COMPLETE


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------


class WorkerExecutor:
    """Run the scrape-then-analyse pipeline for a single job.

    Args:
        store: Job store used for the claim and the terminal write.
        scraper: Scraping collaborator.
        analyzer: Analysis collaborator.
        pipeline_timeout: Deadline in seconds for scrape plus analysis.
            ``None`` disables the deadline.
    """

    def __init__(
        self,
        store: JobStore,
        scraper: Scraper,
        analyzer: Analyzer,
        *,
        pipeline_timeout: Optional[float] = 600.0,
    ) -> None:
        self.store = store
        self.scraper = scraper
        self.analyzer = analyzer
        self.pipeline_timeout = pipeline_timeout

    async def run_job(self, job_id: str) -> RunOutcome:
        """Execute the job identified by ``job_id``.

        Returns:
            A :class:`RunOutcome` with status ``complete`` or ``error``.

        Raises:
            JobNotFoundError: If the job does not exist.  Nothing is written.
            JobAlreadyClaimedError: If the job is no longer ``queued`` or
                another invocation claimed it first.  Nothing is written.
            StoreUnavailableError: If the store fails before the claim.
        """
        with bound_job(job_id):
            return await self._run(job_id)

    async def _run(self, job_id: str) -> RunOutcome:
        started = time.monotonic()
        job = await self.store.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)

        running = await self._claim(job)
        logger.info(
            "job_claimed",
            professor_name=running.professor_name,
            university=running.university,
            version=running.version,
        )

        try:
            result = await self._execute(running)
            await self.store.compare_and_set(
                running.transition(JobStatus.COMPLETE, result=result),
                running.version,
            )
        except JobConflictError as exc:
            # Another writer moved the record on; it is no longer ours to touch.
            duration = time.monotonic() - started
            logger.error("job_commit_failed", error=str(exc), duration_seconds=round(duration, 2))
            return RunOutcome(
                job_id=job_id,
                status=JobStatus.ERROR,
                duration_seconds=duration,
                message=f"Failed to save result: {exc}",
            )
        except Exception as exc:  # noqa: BLE001
            message = str(exc) or type(exc).__name__
            duration = time.monotonic() - started
            logger.error(
                "job_failed",
                error=message,
                error_type=type(exc).__name__,
                duration_seconds=round(duration, 2),
            )
            await self._persist_error(running, message)
            return RunOutcome(
                job_id=job_id,
                status=JobStatus.ERROR,
                duration_seconds=duration,
                message=message,
            )

        duration = time.monotonic() - started
        logger.info(
            "job_completed",
            review_count=len(result.reviews),
            duration_seconds=round(duration, 2),
        )
        return RunOutcome(
            job_id=job_id,
            status=JobStatus.COMPLETE,
            duration_seconds=duration,
            review_count=len(result.reviews),
            message=f"Job {job_id} completed successfully",
        )

    async def _claim(self, job: Job) -> Job:
        if job.status != JobStatus.QUEUED:
            raise JobAlreadyClaimedError(job.id, job.status.value, job.version)
        try:
            return await self.store.compare_and_set(
                job.transition(JobStatus.RUNNING), job.version
            )
        except JobConflictError as exc:
            current = await self.store.get(job.id)
            status = current.status.value if current else "missing"
            raise JobAlreadyClaimedError(job.id, status, exc.current_version) from exc

    async def _execute(self, job: Job) -> JobResult:
        deadline = asyncio.timeout(self.pipeline_timeout)
        try:
            async with deadline:
                scraped = await self.scraper.scrape(job.professor_name, job.university)
                if not scraped.reviews:
                    raise NoReviewsFoundError(job.professor_name, job.university)
                reviews = filter_by_course(scraped.reviews, job.course)
                if not reviews:
                    raise NoCourseReviewsError(job.course or "", len(scraped.reviews))
                logger.info(
                    "scrape_complete",
                    review_count=len(scraped.reviews),
                    kept=len(reviews),
                    course=job.course,
                    overall_rating=scraped.subject_aggregate.overall_rating,
                )

                summary = await self.analyzer.analyze(
                    reviews, scraped.subject_aggregate, job.user_question
                )
        except TimeoutError as exc:
            if not deadline.expired():
                raise
            raise PipelineTimeoutError(self.pipeline_timeout or 0) from exc

        return JobResult(
            reviews=reviews,
            subject_aggregate=scraped.subject_aggregate,
            summary=summary,
            stats=ReviewStats.compute(reviews, scraped.subject_aggregate),
        )

    async def _persist_error(self, job: Job, message: str) -> None:
        try:
            await self.store.compare_and_set(
                job.transition(JobStatus.ERROR, error=message), job.version
            )
        except Exception as exc:  # noqa: BLE001
            # Left ``running``; the reconciliation sweep expires it.
            logger.error("job_error_write_failed", error=str(exc))
