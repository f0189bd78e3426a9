"""Health check route.

``GET /health``
    Process liveness plus job store reachability and which required settings
    are present.  Always returns HTTP 200; the ``status`` field distinguishes
    ``"ok"`` from ``"degraded"``.  Secret values are never echoed, only their
    presence.

This endpoint is diagnostic and must never raise HTTP 5xx errors.
"""

from __future__ import annotations

import logging
import platform
import time
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from profrater.api.dependencies import AppServices, get_services
from profrater.config.settings import get_settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["system"])


async def _check_store(services: AppServices) -> str:
    """Return ``"ok"`` if the job store answers ``PING``, ``"error"`` otherwise."""
    try:
        return "ok" if await services.store.ping() else "error"
    except Exception:
        logger.exception("Health check: job store unreachable")
        return "error"


@router.get("/health", include_in_schema=True)
async def health(
    request: Request,
    services: AppServices = Depends(get_services),
) -> JSONResponse:
    settings = get_settings()
    store = await _check_store(services)
    return JSONResponse(
        {
            "status": "ok" if store == "ok" else "degraded",
            "timestamp": datetime.now(UTC).isoformat(),
            "uptime": round(time.monotonic() - request.app.state.started_at, 3),
            "store": store,
            "env": {
                "pythonVersion": platform.python_version(),
                "hasRedisUrl": bool(settings.redis_url),
                "hasWorkerUrl": bool(settings.worker_url),
                "hasAnthropicKey": bool(settings.anthropic_api_key),
                "hasBrowserEndpoint": bool(settings.browser_ws_endpoint),
            },
        }
    )
