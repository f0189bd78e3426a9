"""Application settings loaded from environment variables.

Uses Pydantic Settings v2 for validated, type-safe configuration.
All credentials and secrets are accessed exclusively through this module;
never call ``os.getenv`` directly elsewhere in the codebase.

Usage::

    from profrater.config.settings import get_settings

    settings = get_settings()
    redis_url = settings.redis_url
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service-wide configuration backed by environment variables and an optional .env file.

    Every field has a default so that the submission API, the worker, and
    the polling CLI can each start with only the settings they need.  The
    ``/health`` endpoint reports which of the external credentials are
    actually present.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Job store (Redis)
    # ------------------------------------------------------------------

    redis_url: str = "redis://localhost:6379/0"
    """Redis connection URL for the job store.  ``rediss://`` enables TLS."""

    job_key_prefix: str = "job:"
    """Prefix prepended to every job id to form its Redis key.

    Keeping jobs under a dedicated prefix lets the reconciliation sweep use
    ``SCAN MATCH job:*`` without touching unrelated keys.
    """

    job_ttl_seconds: Optional[int] = None
    """Optional expiry applied to newly created job records.  ``None`` keeps
    records until an external hygiene process deletes them."""

    redis_socket_timeout: float = 5.0
    """Socket connect / read timeout in seconds for job store operations."""

    # ------------------------------------------------------------------
    # Worker dispatch
    # ------------------------------------------------------------------

    worker_url: str = "http://localhost:8000"
    """Base URL of the service hosting ``POST /run-job``."""

    trigger_timeout_seconds: float = 10.0
    """Timeout for the fire-and-forget trigger request.  The worker answers
    only after the whole pipeline finishes, so a read timeout on the trigger
    is expected and is not an error."""

    pipeline_timeout_seconds: float = 600.0
    """Maximum wall-clock time for the scrape + analysis phases of one job."""

    stale_queued_seconds: float = 120.0
    """Age after which a still-``queued`` job is re-triggered by the sweep."""

    stale_running_grace_seconds: float = 60.0
    """Extra time beyond ``pipeline_timeout_seconds`` before a ``running``
    job is considered abandoned and force-marked ``error``."""

    reconcile_interval_seconds: float = 60.0
    """How often Celery Beat runs the reconciliation sweep."""

    # ------------------------------------------------------------------
    # Analysis collaborator (Anthropic Messages API)
    # ------------------------------------------------------------------

    anthropic_api_key: Optional[str] = None
    """API key for the summarisation model.  Required by the worker."""

    anthropic_api_url: str = "https://api.anthropic.com/v1/messages"

    anthropic_model: str = "claude-sonnet-4-5-20250929"

    anthropic_max_tokens: int = 2048

    analysis_timeout_seconds: float = 120.0

    # ------------------------------------------------------------------
    # Scraping collaborator (Playwright)
    # ------------------------------------------------------------------

    browser_ws_endpoint: Optional[str] = None
    """CDP websocket endpoint of a managed remote browser.  When ``None`` a
    local headless Chromium is launched for every scrape."""

    browser_headless: bool = True

    scrape_timeout_seconds: int = 45
    """Per-navigation timeout used by the browser session."""

    max_load_more_clicks: int = 5
    """Upper bound on "load more ratings" interactions per scrape."""

    review_site_base_url: str = "https://www.ratemyprofessors.com"

    # ------------------------------------------------------------------
    # Polling client
    # ------------------------------------------------------------------

    poll_interval_seconds: float = 1.5
    """Default delay between ``GET /check-job`` calls."""

    # ------------------------------------------------------------------
    # Celery (reconciliation sweep scheduling)
    # ------------------------------------------------------------------

    celery_broker_url: str = "redis://localhost:6379/1"
    """Redis URL used as Celery's message broker (database 1 to isolate from jobs)."""

    celery_result_backend: str = "redis://localhost:6379/2"

    # ------------------------------------------------------------------
    # Application behaviour
    # ------------------------------------------------------------------

    app_name: str = "ProfRater"

    debug: bool = False
    """Enable FastAPI debug mode.  Never True in production."""

    log_level: str = "INFO"
    """Logging verbosity.  One of: DEBUG, INFO, WARNING, ERROR, CRITICAL."""

    allowed_origins: list[str] = ["http://localhost:3000"]
    """Origins permitted by the CORS middleware."""


@lru_cache
def get_settings() -> Settings:
    """Return the cached application settings singleton.

    Call ``get_settings.cache_clear()`` in tests after patching the
    environment.
    """
    return Settings()
