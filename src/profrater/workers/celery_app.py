"""Celery application for ProfRater maintenance tasks.

Job execution itself is triggered over HTTP (``POST /run-job``); Celery only
runs the periodic reconciliation sweep.  Configuration comes from
``Settings`` so that broker URLs are never hard-coded here.

Usage (starting a worker)::

    celery -A profrater.workers.celery_app worker --loglevel=info

Usage (starting the Beat scheduler)::

    celery -A profrater.workers.celery_app beat --loglevel=info
"""

from __future__ import annotations

from celery import Celery
from celery.signals import setup_logging
from dotenv import load_dotenv

# Load .env into os.environ before Settings is first built.
load_dotenv()

from profrater.config.settings import get_settings  # noqa: E402
from profrater.core.logging_config import configure_logging  # noqa: E402

settings = get_settings()

#: The global Celery application instance.
celery_app = Celery(
    "profrater",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["profrater.workers.maintenance_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # One sweep at a time per worker; sweeps are short but scan every key.
    worker_prefetch_multiplier=1,
    result_expires=3_600,
    task_soft_time_limit=300,
    task_time_limit=600,
    beat_schedule_filename="celerybeat-schedule",
)

from profrater.workers.beat_schedule import beat_schedule  # noqa: E402

celery_app.conf.beat_schedule = beat_schedule


@setup_logging.connect
def _configure_worker_logging(**kwargs: object) -> None:  # noqa: ARG001
    """Route Celery's own logging through the structlog formatter."""
    configure_logging(settings.log_level)
