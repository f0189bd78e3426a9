"""Periodic sweep that repairs jobs the fire-and-forget trigger left behind.

Two gaps are closed here:

- a ``queued`` job whose trigger was lost is re-triggered once it has been
  waiting longer than ``stale_queued_seconds``;
- a ``running`` job whose worker died is marked ``error`` once it has not
  been updated for longer than the pipeline deadline plus a grace period.

Both repairs are safe to race with a live worker.  A duplicate trigger is
rejected by the worker's conditional claim, and the expiry write is itself a
conditional write that loses to a worker commit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

import structlog

from profrater.core.exceptions import JobConflictError
from profrater.core.job_store import JobStore
from profrater.core.schemas.jobs import Job, JobStatus, utcnow
from profrater.core.submission import WorkerTrigger

logger = structlog.get_logger(__name__)

EXPIRED_MESSAGE = "Job exceeded maximum execution time"


@dataclass
class SweepReport:
    scanned: int = 0
    requeued: list[str] = field(default_factory=list)
    expired: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, int]:
        return {
            "scanned": self.scanned,
            "requeued": len(self.requeued),
            "expired": len(self.expired),
            "failed": len(self.failed),
        }


class JobReconciler:
    """Scan the job store and repair stale jobs.

    Args:
        store: Job store to scan.
        trigger: Worker trigger used to re-dispatch stale ``queued`` jobs.
        stale_queued_seconds: Age after which a ``queued`` job is re-triggered.
        running_timeout_seconds: Time since the last update after which a
            ``running`` job is declared dead.
    """

    def __init__(
        self,
        store: JobStore,
        trigger: WorkerTrigger,
        *,
        stale_queued_seconds: float = 120.0,
        running_timeout_seconds: float = 660.0,
    ) -> None:
        self.store = store
        self.trigger = trigger
        self.stale_queued = timedelta(seconds=stale_queued_seconds)
        self.running_timeout = timedelta(seconds=running_timeout_seconds)

    async def sweep(self, now: Optional[datetime] = None) -> SweepReport:
        """Run one pass over every stored job.

        A failure repairing one job is logged and recorded in
        ``SweepReport.failed``; the pass carries on with the next job.
        """
        now = now or utcnow()
        report = SweepReport()

        async for job in self.store.iter_jobs():
            report.scanned += 1
            try:
                await self._repair(job, now, report)
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "job_repair_failed",
                    job_id=job.id,
                    status=job.status.value,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                report.failed.append(job.id)

        logger.info("reconcile_complete", **report.as_dict())
        return report

    async def _repair(self, job: Job, now: datetime, report: SweepReport) -> None:
        if job.status == JobStatus.QUEUED and now - job.created_at > self.stale_queued:
            logger.info("job_requeued", job_id=job.id, created_at=job.created_at.isoformat())
            await self.trigger.trigger(job.id)
            report.requeued.append(job.id)

        elif job.status == JobStatus.RUNNING and now - job.updated_at > self.running_timeout:
            try:
                await self.store.compare_and_set(
                    job.transition(JobStatus.ERROR, error=EXPIRED_MESSAGE, now=now),
                    job.version,
                )
            except JobConflictError:
                # The worker committed between our read and write.
                return
            logger.warning("job_expired", job_id=job.id, updated_at=job.updated_at.isoformat())
            report.expired.append(job.id)
