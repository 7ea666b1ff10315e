"""
FastAPI Application Entry Point

This module sets up the FastAPI application with all middleware,
routing, and configuration for the Civic Reports service.
"""

import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import structlog
import uvicorn
from fastapi import FastAPI, Request, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from app.api.v1.api import api_router
from app.core.cache import close_redis_connections, redis_health_check
from app.core.config import settings, setup_logging
from app.core.exceptions import (
    APIException,
    CivicReportsException,
    FileSizeExceededError,
    FileUploadError,
    PersistenceError,
    UnsupportedFileTypeError,
)
from app.core.metrics import REQUEST_COUNT, REQUEST_DURATION
from app.models.database import check_database_health, create_tables, engine, wait_for_database
from app.workers.jobs import dispatcher

# =============================================================================
# Application Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events for proper resource management.
    """
    setup_logging()
    structlog.contextvars.bind_contextvars(
        app=settings.APP_NAME,
        environment=settings.ENVIRONMENT,
        version=settings.APP_VERSION,
    )
    logger = structlog.get_logger(__name__)

    logger.info("Starting Civic Reports application", version=settings.APP_VERSION)
    logger.info("Logging configured", log_level=settings.LOG_LEVEL, log_format=settings.LOG_FORMAT)

    try:
        if not settings.is_testing:
            await wait_for_database()
        await create_tables()
        logger.info("Database tables initialized")
    except Exception as e:
        logger.error("Database initialization failed", error=str(e))
        raise

    if settings.ENABLE_WORKERS:
        redis_health = await redis_health_check()
        if redis_health["status"] != "healthy":
            # Alerts run in-process until the next restart
            logger.error("Redis unavailable, falling back to inline dispatch", **redis_health)
            dispatcher.use_queue = False

    logger.info("Application startup completed", debug=settings.DEBUG)

    yield

    logger.info("Shutting down Civic Reports application", pending_tasks=dispatcher.pending)

    try:
        await dispatcher.drain()
        await engine.dispose()
        logger.info("Database engine disposed")
        await close_redis_connections()
    except Exception as e:
        logger.error("Error during shutdown", error=str(e))

    logger.info("Application shutdown completed")


# =============================================================================
# FastAPI Application Setup
# =============================================================================

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=settings.APP_DESCRIPTION,
    openapi_url=f"{settings.API_V1_PREFIX}/openapi.json" if settings.SHOW_DOCS else None,
    docs_url="/docs" if settings.SHOW_DOCS else None,
    redoc_url="/redoc" if settings.SHOW_DOCS else None,
    lifespan=lifespan,
)

# =============================================================================
# Middleware Configuration
# =============================================================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)

app.add_middleware(GZipMiddleware, minimum_size=1000)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    """
    Log all requests and add request ID for tracing.
    """
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8]
    request.state.request_id = request_id

    logger = structlog.get_logger(__name__).bind(
        request_id=request_id,
        method=request.method,
        path=request.url.path,
        client_ip=request.client.host if request.client else None,
    )

    start_time = time.time()
    logger.debug("Incoming request")

    try:
        response = await call_next(request)
    except Exception as exc:
        duration = time.time() - start_time
        logger.error(
            "Request failed",
            error=str(exc),
            duration=f"{duration:.3f}s",
            exc_info=True
        )
        REQUEST_COUNT.labels(
            method=request.method,
            endpoint=request.url.path,
            status_code=500
        ).inc()
        raise

    duration = time.time() - start_time

    REQUEST_COUNT.labels(
        method=request.method,
        endpoint=request.url.path,
        status_code=response.status_code
    ).inc()
    REQUEST_DURATION.labels(
        method=request.method,
        endpoint=request.url.path
    ).observe(duration)

    response.headers["X-Request-ID"] = request_id
    response.headers["X-Response-Time"] = f"{duration:.3f}s"

    logger.info(
        "Request completed",
        status_code=response.status_code,
        duration=f"{duration:.3f}s"
    )
    return response


# =============================================================================
# Exception Handlers
# =============================================================================

def _status_code_for(exc: CivicReportsException) -> int:
    if isinstance(exc, APIException):
        return exc.status_code
    if isinstance(exc, PersistenceError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    if isinstance(exc, FileSizeExceededError):
        return status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
    if isinstance(exc, UnsupportedFileTypeError):
        return status.HTTP_415_UNSUPPORTED_MEDIA_TYPE
    if isinstance(exc, FileUploadError):
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _error_body(request: Request, error_code: str, message: str, details=None) -> dict:
    return {
        "error": True,
        "error_code": error_code,
        "message": message,
        "details": details or {},
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "request_id": getattr(request.state, "request_id", None),
    }


@app.exception_handler(CivicReportsException)
async def civic_reports_exception_handler(request: Request, exc: CivicReportsException):
    """Handle custom application exceptions."""
    status_code = _status_code_for(exc)
    logger = structlog.get_logger(__name__).bind(
        request_id=getattr(request.state, "request_id", "unknown"),
        error_code=exc.error_code,
        error_type=type(exc).__name__,
        status_code=status_code,
    )

    if status_code >= 500:
        logger.error("Application error", error=str(exc))
    else:
        logger.info("Request rejected", error=str(exc))

    headers = getattr(exc, "headers", None) if isinstance(exc, APIException) else None
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(_error_body(request, exc.error_code, exc.message, exc.details)),
        headers=headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic validation errors."""
    logger = structlog.get_logger(__name__).bind(
        request_id=getattr(request.state, "request_id", "unknown"),
    )
    logger.info("Validation error", errors=len(exc.errors()))

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=jsonable_encoder(
            _error_body(request, "VALIDATION_ERROR", "Input validation failed", exc.errors())
        ),
    )


@app.exception_handler(Exception)
async def internal_server_error_handler(request: Request, exc: Exception):
    """Handle internal server errors."""
    logger = structlog.get_logger(__name__).bind(
        request_id=getattr(request.state, "request_id", "unknown"),
    )
    logger.error("Internal server error", error=str(exc), exc_info=True)

    # In production, don't expose internal error details
    message = "An internal server error occurred" if settings.is_production else str(exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body(request, "INTERNAL_ERROR", message),
    )


# =============================================================================
# Health Check and Monitoring Endpoints
# =============================================================================

@app.get("/health", tags=["system"])
async def health_check():
    """
    Application health check endpoint.

    The database is required; Redis only matters when workers are enabled
    and otherwise only degrades the status.
    """
    health_data = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "services": {},
    }

    health_data["services"]["database"] = await check_database_health()
    health_data["services"]["redis"] = await redis_health_check()

    if health_data["services"]["database"].get("status") != "healthy":
        health_data["status"] = "unhealthy"
    elif health_data["services"]["redis"].get("status") != "healthy":
        health_data["status"] = "unhealthy" if settings.ENABLE_WORKERS else "degraded"

    status_code = 503 if health_data["status"] == "unhealthy" else 200
    return JSONResponse(content=health_data, status_code=status_code)


if settings.METRICS_ENABLED:

    @app.get("/metrics", tags=["system"])
    async def metrics():
        """Prometheus metrics endpoint."""
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/", tags=["system"])
async def root():
    """API root endpoint with basic information."""
    return {
        "message": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs_url": "/docs" if settings.SHOW_DOCS else None,
        "health_url": "/health",
        "api_prefix": settings.API_V1_PREFIX,
        "environment": settings.ENVIRONMENT,
    }


# =============================================================================
# API Routes and Static Files
# =============================================================================

app.include_router(api_router, prefix=settings.API_V1_PREFIX)

if settings.STORAGE_BACKEND == "local":
    app.mount(
        "/uploads",
        StaticFiles(directory=settings.UPLOAD_DIR, check_dir=False),
        name="uploads",
    )


def create_app() -> FastAPI:
    """Application factory (used by ``uvicorn --factory``)."""
    return app


def run() -> None:
    """
    Run the application with uvicorn.

    For production, use: uvicorn app.main:app --host 0.0.0.0 --port 8000
    """
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
        access_log=not settings.is_production,
        server_header=False,
    )


if __name__ == "__main__":
    run()
