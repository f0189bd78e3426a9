"""Celery Beat periodic task schedule for ProfRater.

+---------------------+-------------------------------+-------------------------------+
| Task name           | Schedule                      | Purpose                       |
+=====================+===============================+===============================+
| reconcile_jobs      | Every RECONCILE_INTERVAL_     | Re-trigger stale ``queued``   |
|                     | SECONDS (default 60 s)        | jobs and expire dead          |
|                     |                               | ``running`` jobs.             |
+---------------------+-------------------------------+-------------------------------+
"""

from __future__ import annotations

from datetime import timedelta

from profrater.config.settings import get_settings

_interval = get_settings().reconcile_interval_seconds

#: Celery Beat schedule dict.  Applied to ``celery_app.conf.beat_schedule``
#: in ``celery_app.py``.
beat_schedule: dict[str, dict] = {  # type: ignore[type-arg]
    "reconcile_jobs": {
        "task": "reconcile_jobs",
        "schedule": timedelta(seconds=_interval),
        "options": {
            # A sweep that could not start before the next one is pointless.
            "expires": _interval,
        },
    },
}
