"""Celery tasks for job-store maintenance.

- ``reconcile_jobs``: one pass of :class:`~profrater.workers.reconciler.JobReconciler`.

Celery workers are synchronous processes, so the async sweep runs inside
``asyncio.run()`` with its own Redis connection per invocation.
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog

from profrater.config.settings import Settings, get_settings
from profrater.core.job_store import RedisJobStore
from profrater.core.submission import HttpWorkerTrigger
from profrater.workers.celery_app import celery_app
from profrater.workers.reconciler import JobReconciler

logger = structlog.get_logger(__name__)


async def _run_sweep(settings: Settings) -> dict[str, int]:
    store = RedisJobStore.from_url(
        settings.redis_url,
        key_prefix=settings.job_key_prefix,
        socket_timeout=settings.redis_socket_timeout,
    )
    try:
        reconciler = JobReconciler(
            store,
            HttpWorkerTrigger(settings.worker_url, timeout=settings.trigger_timeout_seconds),
            stale_queued_seconds=settings.stale_queued_seconds,
            running_timeout_seconds=(
                settings.pipeline_timeout_seconds + settings.stale_running_grace_seconds
            ),
        )
        report = await reconciler.sweep()
    finally:
        await store.close()
    return report.as_dict()


@celery_app.task(name="reconcile_jobs", bind=True)  # type: ignore[misc]
def reconcile_jobs_task(self: Any) -> dict[str, int]:  # noqa: ANN401
    """Re-trigger stale queued jobs and expire abandoned running jobs.

    Returns:
        Dict with ``scanned``, ``requeued`` and ``expired`` counts.
    """
    log = logger.bind(task_id=self.request.id)
    log.info("reconcile_jobs: starting sweep")
    summary = asyncio.run(_run_sweep(get_settings()))
    log.info("reconcile_jobs: sweep finished", **summary)
    return summary
