"""FastAPI application factory and entry point.

Creates the application instance, registers middleware and exception
handlers, and mounts the job, worker and health routers.

Usage::

    # Development server (from project root)
    uvicorn profrater.api.main:app --reload

    # Production
    gunicorn profrater.api.main:app -k uvicorn.workers.UvicornWorker
"""

from __future__ import annotations

import asyncio
import time
import uuid
from typing import Callable, Optional

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from profrater import __version__
from profrater.api.dependencies import AppServices, build_services
from profrater.config.settings import get_settings
from profrater.core.exceptions import (
    JobNotFoundError,
    JobValidationError,
    StoreUnavailableError,
)
from profrater.core.logging_config import configure_logging, request_id_var

# ---------------------------------------------------------------------------
# Logging configuration, applied at import time so that records emitted
# during app construction are captured.  The level is re-applied inside
# create_app() once settings are loaded.
# ---------------------------------------------------------------------------

configure_logging("INFO")

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def _validation_handler(request: Request, exc: JobValidationError) -> JSONResponse:
    return _error(status.HTTP_400_BAD_REQUEST, str(exc))


async def _request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    # Malformed or missing JSON bodies get the same 400 shape as domain validation.
    first = exc.errors()[0] if exc.errors() else {}
    return _error(status.HTTP_400_BAD_REQUEST, first.get("msg", "Invalid request"))


async def _not_found_handler(request: Request, exc: JobNotFoundError) -> JSONResponse:
    return _error(status.HTTP_404_NOT_FOUND, str(exc))


async def _store_unavailable_handler(
    request: Request, exc: StoreUnavailableError
) -> JSONResponse:
    logger.error("store_unavailable", operation=exc.operation, error=str(exc))
    return _error(status.HTTP_503_SERVICE_UNAVAILABLE, "Job store unavailable, try again later")


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(services: Optional[AppServices] = None) -> FastAPI:
    """Build and configure the FastAPI application.

    Args:
        services: Pre-built collaborators.  When omitted they are built from
            ``Settings`` in the startup hook and torn down on shutdown.
            Tests pass in-memory doubles here.

    Returns:
        A fully configured ``FastAPI`` instance.
    """
    settings = get_settings()
    configure_logging(settings.log_level)

    application = FastAPI(
        title=settings.app_name,
        description=(
            "Submit a professor-review scrape, let the worker summarise it, "
            "and poll the job until it finishes."
        ),
        version=__version__,
        debug=settings.debug,
        redirect_slashes=False,
    )
    application.state.started_at = time.monotonic()
    owns_services = services is None
    if services is not None:
        application.state.services = services

    # ---- Middleware --------------------------------------------------------

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    @application.middleware("http")
    async def request_logging_middleware(
        request: Request, call_next: Callable
    ) -> Response:
        """Log every request with its status and duration under a request id."""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request_id_var.set(request_id)
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        start = time.perf_counter()
        response: Response | None = None
        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error("unhandled_exception", exc_info=exc)
            raise
        finally:
            elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
            status_code = getattr(response, "status_code", 500)
            log_fn = logger.warning if status_code >= 400 else logger.info
            log_fn("request_complete", status_code=status_code, elapsed_ms=elapsed_ms)

        response.headers["X-Request-ID"] = request_id
        return response

    # ---- Exception handlers ------------------------------------------------

    application.add_exception_handler(JobValidationError, _validation_handler)  # type: ignore[arg-type]
    application.add_exception_handler(RequestValidationError, _request_validation_handler)  # type: ignore[arg-type]
    application.add_exception_handler(JobNotFoundError, _not_found_handler)  # type: ignore[arg-type]
    application.add_exception_handler(StoreUnavailableError, _store_unavailable_handler)  # type: ignore[arg-type]

    # ---- Routers -------------------------------------------------------------

    from profrater.api.routes import health as health_routes  # noqa: PLC0415
    from profrater.api.routes import jobs, worker  # noqa: PLC0415

    application.include_router(jobs.router)
    application.include_router(worker.router)
    application.include_router(health_routes.router)

    # ---- Lifecycle events -------------------------------------------------

    @application.on_event("startup")
    async def on_startup() -> None:
        if owns_services:
            application.state.services = build_services(settings)
        logger.info(
            "application_startup",
            app_name=settings.app_name,
            worker_url=settings.worker_url,
            log_level=settings.log_level,
        )

    @application.on_event("shutdown")
    async def on_shutdown() -> None:
        """Let in-flight triggers and jobs finish, then close the store."""
        current: AppServices | None = getattr(application.state, "services", None)
        if current is not None:
            await current.submission.drain()
            if current.running:
                await asyncio.gather(*list(current.running), return_exceptions=True)
            if owns_services:
                close = getattr(current.store, "close", None)
                if close is not None:
                    await close()
        logger.info("application_shutdown")

    # ---- Service info -------------------------------------------------------

    @application.get("/", tags=["system"])
    async def root() -> dict[str, object]:
        """Describe the service and its endpoints."""
        return {
            "name": f"{settings.app_name} Service",
            "version": __version__,
            "description": "Asynchronous professor-review scrape and analysis jobs",
            "endpoints": {
                "POST /start-scrape": "Create a job and trigger the worker",
                "GET /check-job?id=<jobId>": "Poll the state of a job",
                "POST /run-job": "Process a queued job (called by the trigger)",
                "POST /reconcile": "Re-trigger stale jobs and expire dead ones",
                "GET /health": "Health check endpoint",
            },
        }

    return application


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

app = create_app()
"""The FastAPI application instance.

This is the ASGI callable passed to Uvicorn / Gunicorn.
"""
