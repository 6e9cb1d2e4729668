"""Health check routes"""

from datetime import datetime, timezone
import logging
import time

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from trackyr.schemas.response import DatabaseHealthResponse, HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=HealthResponse)
def health_check(request: Request):
    """API health: uptime and environment"""
    started_at = getattr(request.app.state, "started_at", None) or time.monotonic()
    settings = request.app.state.settings
    return HealthResponse(
        status="ok",
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime=round(time.monotonic() - started_at, 3),
        environment=settings.ENVIRONMENT,
        version=settings.APP_VERSION,
    )


@router.get("/db", response_model=DatabaseHealthResponse)
def database_health(request: Request):
    """Database connectivity; 503 when the database cannot be reached"""
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        request.app.state.database.ping()
    except Exception as exc:
        logger.error("Database health check failed: %s", exc)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=DatabaseHealthResponse(
                status="error", database="disconnected", timestamp=timestamp
            ).model_dump(),
        )

    return DatabaseHealthResponse(status="ok", database="connected", timestamp=timestamp)
