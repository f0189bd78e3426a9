"""Shared pytest fixtures for ProfRater tests.

Fixture summary
---------------
store           InMemoryJobStore: JSON records plus versioned compare-and-set.
trigger         RecordingTrigger: remembers every job id it was asked to run.
scraper         FakeScraper returning three reviews (overallRating 4.2).
analyzer        FakeAnalyzer returning a fixed Markdown summary.
executor        WorkerExecutor wired to the fakes above.
services        AppServices bundle used by the API tests.
client          httpx.AsyncClient against the FastAPI app via ASGITransport.

No test needs a live Redis, a browser, or the Anthropic API.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import AsyncGenerator, AsyncIterator
from typing import Any, Optional

import pytest
from httpx import ASGITransport, AsyncClient

# ---------------------------------------------------------------------------
# Test environment bootstrap
# ---------------------------------------------------------------------------
# Set env vars before any application module builds Settings.

_TEST_ENV_DEFAULTS: dict[str, str] = {
    "REDIS_URL": "redis://localhost:6379/0",
    "WORKER_URL": "http://worker.test",
    "ANTHROPIC_API_KEY": "test-anthropic-key",
    "CELERY_BROKER_URL": "memory://",
    "CELERY_RESULT_BACKEND": "cache+memory://",
    "LOG_LEVEL": "WARNING",
}

for _key, _default in _TEST_ENV_DEFAULTS.items():
    os.environ.setdefault(_key, _default)

# ---------------------------------------------------------------------------
# Application imports (after env bootstrap)
# ---------------------------------------------------------------------------

from profrater.api.dependencies import AppServices  # noqa: E402
from profrater.api.main import create_app  # noqa: E402
from profrater.config.settings import get_settings  # noqa: E402
from profrater.core.exceptions import JobConflictError, StoreUnavailableError  # noqa: E402
from profrater.core.schemas.jobs import (  # noqa: E402
    Job,
    ReviewRecord,
    ScrapeResult,
    SubjectAggregate,
)
from profrater.core.submission import JobSubmissionService  # noqa: E402
from profrater.workers.executor import WorkerExecutor  # noqa: E402
from profrater.workers.reconciler import JobReconciler  # noqa: E402

# Clear the lru_cache so Settings() re-reads from the patched environment.
get_settings.cache_clear()

SUMMARY = "## Summary\nGood professor."


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class InMemoryJobStore:
    """JobStore double with the same record format and CAS rules as Redis.

    Set ``unavailable`` to make every operation raise
    ``StoreUnavailableError``.  ``get`` yields to the event loop once so that
    concurrent callers interleave the way they would over the network.
    """

    def __init__(self) -> None:
        self.records: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.unavailable = False
        self.writes = 0

    def _check(self, operation: str) -> None:
        if self.unavailable:
            raise StoreUnavailableError(f"store down during {operation}", operation=operation)

    async def get(self, job_id: str) -> Optional[Job]:
        self._check("get")
        await asyncio.sleep(0)
        raw = self.records.get(job_id)
        return Job.from_record(raw) if raw is not None else None

    async def put(self, job: Job) -> None:
        self._check("put")
        self.records[job.id] = job.to_record()
        self.writes += 1

    async def put_with_expiry(self, job: Job, ttl_seconds: int) -> None:
        await self.put(job)
        self.ttls[job.id] = ttl_seconds

    async def delete(self, job_id: str) -> None:
        self._check("delete")
        self.records.pop(job_id, None)

    async def compare_and_set(self, job: Job, expected_version: int) -> Job:
        self._check("compare_and_set")
        raw = self.records.get(job.id)
        if raw is None:
            raise JobConflictError(job.id, expected_version, None)
        current = Job.from_record(raw)
        if current.version != expected_version:
            raise JobConflictError(job.id, expected_version, current.version)
        stored = job.model_copy(update={"version": expected_version + 1})
        self.records[job.id] = stored.to_record()
        self.writes += 1
        return stored

    async def iter_jobs(self) -> AsyncIterator[Job]:
        self._check("scan")
        for raw in list(self.records.values()):
            yield Job.from_record(raw)

    async def ping(self) -> bool:
        return not self.unavailable


class RecordingTrigger:
    def __init__(self, delivered: bool = True) -> None:
        self.calls: list[str] = []
        self.delivered = delivered

    async def trigger(self, job_id: str) -> bool:
        self.calls.append(job_id)
        return self.delivered


class FakeScraper:
    def __init__(self, result: Optional[ScrapeResult] = None, error: Optional[Exception] = None):
        self.result = result if result is not None else make_scrape_result()
        self.error = error
        self.calls: list[tuple[str, str]] = []
        self.delay = 0.0

    async def scrape(self, subject_name: str, organization_name: str) -> ScrapeResult:
        self.calls.append((subject_name, organization_name))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


class FakeAnalyzer:
    def __init__(self, summary: str = SUMMARY, error: Optional[Exception] = None) -> None:
        self.summary = summary
        self.error = error
        self.calls: list[tuple[list[ReviewRecord], SubjectAggregate, Optional[str]]] = []

    async def analyze(
        self,
        reviews: list[ReviewRecord],
        aggregate: SubjectAggregate,
        question: Optional[str] = None,
    ) -> str:
        self.calls.append((list(reviews), aggregate, question))
        if self.error is not None:
            raise self.error
        return self.summary


def make_scrape_result(count: int = 3, overall_rating: float = 4.2) -> ScrapeResult:
    reviews = [
        ReviewRecord(
            rating=5 - (i % 3),
            difficulty=3,
            course=f"CS10{i}",
            date="Jan 1st, 2024",
            comment=f"Review number {i}",
            tags=["Clear grading criteria"],
        )
        for i in range(count)
    ]
    return ScrapeResult(
        reviews=reviews,
        subject_aggregate=SubjectAggregate(
            overall_rating=overall_rating,
            total_ratings=count,
            would_take_again_percent=87,
            difficulty_rating=3.1,
            department="Computer Science",
        ),
    )


async def seed_job(store: InMemoryJobStore, **overrides: Any) -> Job:
    """Persist a fresh queued job and return it."""
    job = Job.create(
        overrides.pop("professor_name", "Jane Doe"),
        overrides.pop("university", "Test University"),
        overrides.pop("user_question", None),
        overrides.pop("course", None),
    )
    if overrides:
        job = job.model_copy(update=overrides)
    await store.put(job)
    return job


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> InMemoryJobStore:
    return InMemoryJobStore()


@pytest.fixture
def trigger() -> RecordingTrigger:
    return RecordingTrigger()


@pytest.fixture
def scraper() -> FakeScraper:
    return FakeScraper()


@pytest.fixture
def analyzer() -> FakeAnalyzer:
    return FakeAnalyzer()


@pytest.fixture
def executor(
    store: InMemoryJobStore, scraper: FakeScraper, analyzer: FakeAnalyzer
) -> WorkerExecutor:
    return WorkerExecutor(store, scraper, analyzer, pipeline_timeout=5.0)


@pytest.fixture
def submission(store: InMemoryJobStore, trigger: RecordingTrigger) -> JobSubmissionService:
    return JobSubmissionService(store, trigger)


@pytest.fixture
def services(
    store: InMemoryJobStore,
    trigger: RecordingTrigger,
    submission: JobSubmissionService,
    executor: WorkerExecutor,
) -> AppServices:
    return AppServices(
        store=store,
        submission=submission,
        executor=executor,
        reconciler=JobReconciler(store, trigger, stale_queued_seconds=60, running_timeout_seconds=120),
    )


@pytest.fixture
async def client(services: AppServices) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to an app that uses the in-memory services."""
    app = create_app(services)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    await services.submission.drain()
