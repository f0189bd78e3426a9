"""FastAPI dependency injection providers.

The application owns exactly one :class:`AppServices` bundle, stored on
``app.state.services``.  It is built by the startup hook from ``Settings``,
or passed to :func:`~profrater.api.main.create_app` directly (tests).  Route
handlers resolve the pieces they need through the ``get_*`` providers below
and never construct store connections themselves.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from fastapi import Depends, Request

from profrater.analysis.client import AnthropicAnalyzer
from profrater.config.settings import Settings
from profrater.core.job_store import JobStore, RedisJobStore
from profrater.core.submission import HttpWorkerTrigger, JobSubmissionService
from profrater.scraper.browser_scraper import PlaywrightScraper
from profrater.workers.executor import WorkerExecutor
from profrater.workers.reconciler import JobReconciler


@dataclass
class AppServices:
    """Everything the route handlers share for the lifetime of the process."""

    store: JobStore
    submission: JobSubmissionService
    executor: WorkerExecutor
    reconciler: JobReconciler
    running: set[asyncio.Task] = field(default_factory=set)  # type: ignore[type-arg]


def build_services(settings: Settings) -> AppServices:
    """Wire the production collaborators from ``settings``."""
    store = RedisJobStore.from_url(
        settings.redis_url,
        key_prefix=settings.job_key_prefix,
        socket_timeout=settings.redis_socket_timeout,
    )
    trigger = HttpWorkerTrigger(settings.worker_url, timeout=settings.trigger_timeout_seconds)
    return AppServices(
        store=store,
        submission=JobSubmissionService(
            store, trigger, job_ttl_seconds=settings.job_ttl_seconds
        ),
        executor=WorkerExecutor(
            store,
            PlaywrightScraper.from_settings(settings),
            AnthropicAnalyzer.from_settings(settings),
            pipeline_timeout=settings.pipeline_timeout_seconds,
        ),
        reconciler=JobReconciler(
            store,
            trigger,
            stale_queued_seconds=settings.stale_queued_seconds,
            running_timeout_seconds=(
                settings.pipeline_timeout_seconds + settings.stale_running_grace_seconds
            ),
        ),
    )


def get_services(request: Request) -> AppServices:
    return request.app.state.services  # type: ignore[no-any-return]


def get_submission_service(
    services: AppServices = Depends(get_services),
) -> JobSubmissionService:
    return services.submission


def get_executor(services: AppServices = Depends(get_services)) -> WorkerExecutor:
    return services.executor


def get_reconciler(services: AppServices = Depends(get_services)) -> JobReconciler:
    return services.reconciler
