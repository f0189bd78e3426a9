"""Pydantic schemas for the job record and HTTP request/response bodies.

Sub-modules:
    jobs: Job, JobStatus, ReviewRecord, SubjectAggregate, ReviewStats, JobResult,
           StartScrapeRequest/Response, RunJobRequest/Response
"""

from __future__ import annotations
