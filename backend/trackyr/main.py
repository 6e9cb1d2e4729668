"""Main FastAPI application"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional
import logging
import time
import traceback
import uuid

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from trackyr.api.v1 import auth, health, users
from trackyr.config import Settings, get_settings
from trackyr.core.database import Database
from trackyr.core.exceptions import BaseAPIException, ValidationError
from trackyr.core.security import PasswordHasher, TokenCodec
from trackyr.services.rate_limiter import InMemoryRateLimiter

logger = logging.getLogger(__name__)

REQUEST_COUNT = Counter(
    "trackyr_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "trackyr_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

_UNLOGGED_PATHS = {"/health", "/api/v1/health", "/metrics"}


def configure_logging(settings: Settings) -> None:
    """Configure root logging once; adds a file handler when LOG_FILE is set"""
    handlers: list = [logging.StreamHandler()]
    if settings.LOG_FILE:
        log_file = settings.get_log_file()
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
    )


def _error_response(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    details: Optional[Any] = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": {"code": code, "message": message},
            "details": details,
            "path": request.url.path,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )


def _register_exception_handlers(app: FastAPI, settings: Settings) -> None:

    @app.exception_handler(BaseAPIException)
    async def api_exception_handler(request: Request, exc: BaseAPIException):
        """Handle operational API exceptions"""
        log = logger.warning if exc.is_operational else logger.error
        log(
            "API Exception: %s",
            exc.message,
            extra={
                "status_code": exc.status_code,
                "code": exc.code,
                "path": request.url.path,
                "method": request.method,
            },
        )
        return _error_response(request, exc.status_code, exc.code, exc.message, exc.details or None)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle Pydantic validation errors"""
        errors = []
        for error in exc.errors():
            errors.append({
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            })

        logger.warning(
            f"Validation error: {errors}",
            extra={"path": request.url.path, "method": request.method}
        )
        error = ValidationError(details=errors)
        return _error_response(request, error.status_code, error.code, error.message, error.details)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Framework-level HTTP errors such as unknown routes"""
        if exc.status_code == status.HTTP_404_NOT_FOUND:
            return _error_response(request, 404, "NOT_FOUND", f"Route {request.url.path} not found")
        return _error_response(request, exc.status_code, "HTTP_ERROR", str(exc.detail))

    @app.exception_handler(SQLAlchemyError)
    async def database_exception_handler(request: Request, exc: SQLAlchemyError):
        """Handle database errors"""
        logger.error(
            f"Database error: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "traceback": traceback.format_exc()
            }
        )
        return _error_response(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "DATABASE_ERROR",
            "A database error occurred. Please try again later.",
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle all other exceptions"""
        logger.critical(
            f"Unhandled exception: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "traceback": traceback.format_exc()
            }
        )
        message = str(exc) if settings.DEBUG else "Internal server error"
        return _error_response(
            request, status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_SERVER_ERROR", message
        )


def _register_middleware(app: FastAPI, settings: Settings) -> None:

    @app.middleware("http")
    async def rate_limit(request: Request, call_next):
        """Per-ip fixed-window limit on /api/ routes"""
        if not request.url.path.startswith("/api/"):
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        decision = app.state.rate_limiter.hit(
            f"api:{client_ip}",
            settings.RATE_LIMIT_MAX_REQUESTS,
            settings.RATE_LIMIT_WINDOW_SECONDS,
        )
        if not decision.allowed:
            logger.warning("Rate limit exceeded for %s on %s", client_ip, request.url.path)
            response = _error_response(
                request,
                status.HTTP_429_TOO_MANY_REQUESTS,
                "RATE_LIMIT_EXCEEDED",
                "Too many requests from this IP, please try again later.",
            )
            response.headers["Retry-After"] = str(decision.reset_after)
        else:
            response = await call_next(request)

        response.headers["RateLimit-Limit"] = str(decision.limit)
        response.headers["RateLimit-Remaining"] = str(decision.remaining)
        response.headers["RateLimit-Reset"] = str(decision.reset_after)
        return response

    # Security headers + request timing middleware
    @app.middleware("http")
    async def add_headers_and_timing(request: Request, call_next):
        """Add security headers, record metrics and log completed requests"""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        start = time.time()
        response = await call_next(request)
        duration = time.time() - start

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "0"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Cross-Origin-Opener-Policy"] = "same-origin"
        if settings.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=15552000; includeSubDomains"
        response.headers["X-Request-ID"] = request_id

        path = request.url.path
        # Labels use the route template, never the raw path.
        route = request.scope.get("route")
        route_path = getattr(route, "path", None) or "unmatched"
        REQUEST_COUNT.labels(request.method, route_path, str(response.status_code)).inc()
        REQUEST_LATENCY.labels(request.method, route_path).observe(duration)

        if path not in _UNLOGGED_PATHS and not path.startswith("/api/v1/health"):
            if response.status_code >= 500:
                log = logger.error
            elif response.status_code >= 400:
                log = logger.warning
            else:
                log = logger.info
            log(
                "Request completed: %s %s %s %.0fms ip=%s request_id=%s",
                request.method,
                path,
                response.status_code,
                duration * 1000,
                request.client.host if request.client else "unknown",
                request_id,
            )

        return response

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def create_app(settings: Optional[Settings] = None, database: Optional[Database] = None) -> FastAPI:
    """
    Build the application.

    The database handle, token codec, password hasher and rate limiter are
    created once here and shared through ``app.state``.
    """
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        debug=settings.DEBUG,
        docs_url="/api-docs",
        redoc_url=None,
        openapi_url="/api-docs.json",
    )

    app.state.settings = settings
    app.state.database = database or Database.from_settings(settings)
    app.state.token_codec = TokenCodec.from_settings(settings)
    app.state.password_hasher = PasswordHasher(rounds=settings.BCRYPT_ROUNDS)
    app.state.rate_limiter = InMemoryRateLimiter()
    app.state.started_at = time.monotonic()

    _register_middleware(app, settings)
    _register_exception_handlers(app, settings)

    # Startup event
    @app.on_event("startup")
    async def startup_event():
        """Validate configuration and connect the database"""
        settings.validate_security_settings()
        logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
        logger.info(f"Environment: {settings.ENVIRONMENT}")

        try:
            app.state.database.connect()
        except Exception as e:
            logger.error(f"Failed to connect database: {e}")
            raise

    # Shutdown event
    @app.on_event("shutdown")
    async def shutdown_event():
        """Release the database"""
        app.state.database.disconnect()
        logger.info(f"Shutting down {settings.APP_NAME}")

    @app.get("/health", include_in_schema=False)
    async def liveness():
        return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}

    @app.get("/metrics", include_in_schema=False)
    async def metrics():
        """Prometheus metrics endpoint."""
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Include routers
    app.include_router(auth.router, prefix="/api/v1/auth", tags=["Authentication"])
    app.include_router(users.router, prefix="/api/v1/users", tags=["Users"])
    app.include_router(health.router, prefix="/api/v1/health", tags=["Health"])

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    _settings = get_settings()
    uvicorn.run(
        "trackyr.main:app",
        host=_settings.HOST,
        port=_settings.PORT,
        reload=_settings.DEBUG,
        workers=1 if _settings.DEBUG else _settings.WORKERS
    )
