"""Pydantic schemas for the job record and its nested scrape/analysis payload.

The ``Job`` model is the single persisted entity.  It is serialised to
camelCase JSON (``professorName``, ``createdAt``, ...) both in the job store
and on the wire, and it enforces the lifecycle invariants itself:

- status only moves forward along ``queued -> running -> complete | error``
  (:meth:`Job.transition`);
- ``result`` is present iff ``status == complete`` and ``error`` is present
  iff ``status == error`` (model validator);
- a ``complete`` result never carries an empty review list.

``ReviewRecord`` and ``SubjectAggregate`` coerce missing or unparseable
optional fields to deterministic defaults so that an incomplete scrape never
fails validation on its own.
"""

from __future__ import annotations

import enum
import re
import uuid
from datetime import UTC, datetime, timedelta
from typing import Any, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from profrater.core.exceptions import InvalidTransitionError, JobValidationError

#: Placeholder for free-text fields the scraper could not observe.
NOT_SPECIFIED = "Not specified"

_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")


def utcnow() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


def coerce_float(value: Any, default: float = 0.0) -> float:
    """Best-effort conversion of scraped numeric text to ``float``.

    Accepts numbers, numeric strings, and strings with surrounding noise
    (``"85%"``, ``"4.2 / 5"``).  Anything else yields ``default``.
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        match = _NUMBER_RE.search(value.replace(",", ""))
        if match:
            return float(match.group(0))
    return default


def _coerce_int(value: Any, default: int = 0) -> int:
    return int(coerce_float(value, float(default)))


def _coerce_text(value: Any) -> str:
    if value is None:
        return NOT_SPECIFIED
    text = str(value).strip()
    return text or NOT_SPECIFIED


class _CamelModel(BaseModel):
    """Base model serialising snake_case attributes as camelCase JSON keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Job status
# ---------------------------------------------------------------------------


class JobStatus(str, enum.Enum):
    """Lifecycle states of a job."""

    QUEUED = "queued"
    RUNNING = "running"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETE, JobStatus.ERROR)


_ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.QUEUED: frozenset({JobStatus.RUNNING}),
    JobStatus.RUNNING: frozenset({JobStatus.COMPLETE, JobStatus.ERROR}),
    JobStatus.COMPLETE: frozenset(),
    JobStatus.ERROR: frozenset(),
}


# ---------------------------------------------------------------------------
# Scrape payload
# ---------------------------------------------------------------------------


class ReviewRecord(_CamelModel):
    """A single student review.

    Attributes:
        rating: Quality rating (1-5).
        difficulty: Difficulty rating (1-5), ``0`` when not shown.
        course: Course label, ``"Not specified"`` when not shown.
        date: Review date as displayed by the source.
        comment: Free-text review body.
        tags: Tag strings attached to the review.
        thumbs_up: Helpful votes, ``0`` when not shown.
        thumbs_down: Not-helpful votes, ``0`` when not shown.
    """

    rating: float
    difficulty: float = 0.0
    course: str = NOT_SPECIFIED
    date: str
    comment: str
    tags: list[str] = Field(default_factory=list)
    thumbs_up: int = 0
    thumbs_down: int = 0

    @field_validator("rating", "difficulty", mode="before")
    @classmethod
    def _number(cls, v: Any) -> float:
        return coerce_float(v)

    @field_validator("thumbs_up", "thumbs_down", mode="before")
    @classmethod
    def _count(cls, v: Any) -> int:
        return _coerce_int(v)

    @field_validator("course", mode="before")
    @classmethod
    def _course(cls, v: Any) -> str:
        return _coerce_text(v)

    @field_validator("date", "comment", mode="before")
    @classmethod
    def _strip(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, v: Any) -> list[str]:
        if not v:
            return []
        if isinstance(v, str):
            v = [v]
        return [str(t).strip() for t in v if t is not None and str(t).strip()]


class SubjectAggregate(_CamelModel):
    """Aggregate statistics shown on the professor's page.

    Attributes:
        overall_rating: Average quality rating (1-5).
        total_ratings: Number of ratings the site reports.
        would_take_again_percent: Percentage of students who would take the
            professor again (0-100).
        difficulty_rating: Average difficulty rating (1-5).
        department: Department or subject area.
        professor_name: Name as displayed on the page, when observed.
    """

    overall_rating: float = 0.0
    total_ratings: int = 0
    would_take_again_percent: float = 0.0
    difficulty_rating: float = 0.0
    department: str = NOT_SPECIFIED
    professor_name: Optional[str] = None

    @field_validator(
        "overall_rating", "would_take_again_percent", "difficulty_rating", mode="before"
    )
    @classmethod
    def _number(cls, v: Any) -> float:
        return coerce_float(v)

    @field_validator("total_ratings", mode="before")
    @classmethod
    def _count(cls, v: Any) -> int:
        return _coerce_int(v)

    @field_validator("department", mode="before")
    @classmethod
    def _department(cls, v: Any) -> str:
        return _coerce_text(v)


class ScrapeResult(_CamelModel):
    """Output contract of the scraping collaborator."""

    reviews: list[ReviewRecord] = Field(default_factory=list)
    subject_aggregate: SubjectAggregate = Field(default_factory=SubjectAggregate)


class ReviewStats(_CamelModel):
    """Averages over the reviews that were analysed.

    ``would_take_again`` is copied from the aggregate; the reviews themselves
    do not carry it.
    """

    average_rating: float
    average_difficulty: float
    total_reviews: int
    would_take_again: float

    @classmethod
    def compute(
        cls, reviews: list[ReviewRecord], aggregate: SubjectAggregate
    ) -> "ReviewStats":
        count = len(reviews)
        if not count:
            raise ValueError("stats need at least one review")
        return cls(
            average_rating=sum(r.rating for r in reviews) / count,
            average_difficulty=sum(r.difficulty for r in reviews) / count,
            total_reviews=count,
            would_take_again=aggregate.would_take_again_percent,
        )


class JobResult(_CamelModel):
    """Payload stored on a ``complete`` job."""

    reviews: list[ReviewRecord]
    subject_aggregate: SubjectAggregate
    summary: str
    stats: Optional[ReviewStats] = None

    @field_validator("reviews")
    @classmethod
    def _non_empty(cls, v: list[ReviewRecord]) -> list[ReviewRecord]:
        if not v:
            raise ValueError("a complete result must contain at least one review")
        return v


# ---------------------------------------------------------------------------
# Job
# ---------------------------------------------------------------------------


class Job(_CamelModel):
    """The persisted job record.

    ``version`` is incremented by the store on every conditional write and is
    the token used for optimistic concurrency between worker invocations.
    """

    id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        validation_alias=AliasChoices("id", "jobId"),
        serialization_alias="id",
    )
    status: JobStatus = JobStatus.QUEUED
    professor_name: str
    university: str
    user_question: Optional[str] = None
    course: Optional[str] = None
    result: Optional[JobResult] = None
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    version: int = 1

    @model_validator(mode="after")
    def _outcome_matches_status(self) -> "Job":
        if self.status == JobStatus.COMPLETE:
            if self.result is None or self.error is not None:
                raise ValueError("a complete job carries a result and no error")
        elif self.status == JobStatus.ERROR:
            if self.error is None or self.result is not None:
                raise ValueError("an errored job carries an error and no result")
        elif self.result is not None or self.error is not None:
            raise ValueError(f"a {self.status.value} job carries neither result nor error")
        return self

    @classmethod
    def create(
        cls,
        professor_name: Any,
        university: Any,
        user_question: Any = None,
        course: Any = None,
    ) -> "Job":
        """Validate submission input and build a fresh ``queued`` job.

        Raises:
            JobValidationError: If ``professor_name`` or ``university`` is
                missing or blank after trimming.
        """
        name = professor_name.strip() if isinstance(professor_name, str) else ""
        org = university.strip() if isinstance(university, str) else ""
        if not name or not org:
            missing = "professorName" if not name else "university"
            raise JobValidationError(
                "professorName and university are required", field=missing
            )
        question = user_question.strip() if isinstance(user_question, str) else None
        course_filter = course.strip() if isinstance(course, str) else None
        now = utcnow()
        return cls(
            professor_name=name,
            university=org,
            user_question=question or None,
            course=course_filter or None,
            created_at=now,
            updated_at=now,
        )

    def transition(
        self,
        status: JobStatus,
        *,
        result: JobResult | None = None,
        error: str | None = None,
        now: datetime | None = None,
    ) -> "Job":
        """Return a copy of this job moved to ``status``.

        ``updated_at`` always advances, even if the clock did not.

        Raises:
            InvalidTransitionError: If ``status`` is not a legal successor of
                the current status.
        """
        if status not in _ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(self.id, self.status.value, status.value)
        stamp = now or utcnow()
        if stamp <= self.updated_at:
            stamp = self.updated_at + timedelta(microseconds=1)
        data = self.model_dump()
        data.update(status=status, result=result, error=error, updated_at=stamp)
        return type(self).model_validate(data)

    def to_record(self) -> str:
        """Serialise to the JSON string stored under the job's key."""
        return self.model_dump_json(by_alias=True, exclude_none=True)

    @classmethod
    def from_record(cls, raw: str | bytes) -> "Job":
        return cls.model_validate_json(raw)

    def to_response(self) -> dict[str, Any]:
        """Return the ``GET /check-job`` body: the record with ``jobId``."""
        body = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        body.pop("id", None)
        return {"jobId": self.id, **body}


# ---------------------------------------------------------------------------
# HTTP bodies
# ---------------------------------------------------------------------------


class StartScrapeRequest(_CamelModel):
    """``POST /start-scrape`` body.  Presence is checked by the service so
    that missing fields produce the documented 400 rather than a 422."""

    professor_name: Optional[str] = None
    university: Optional[str] = None
    user_question: Optional[str] = None
    course: Optional[str] = None


class StartScrapeResponse(_CamelModel):
    job_id: str
    message: str = "Job created successfully"


class RunJobRequest(_CamelModel):
    job_id: Optional[str] = None


class RunJobResponse(_CamelModel):
    """``POST /run-job`` response body."""

    success: bool
    message: str
    job_id: Optional[str] = None
    duration: Optional[str] = None
    review_count: Optional[int] = None


class JobStatusResponse(Job):
    """``GET /check-job`` body as parsed by the polling client.

    Same shape as :class:`Job`; the identifier arrives as ``jobId``.
    """
