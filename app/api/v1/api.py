"""
API Router v1

This module aggregates all API v1 routes and provides the main API router
that gets mounted to the FastAPI application in main.py.
"""

from fastapi import APIRouter

from app.api.v1.auth import router as auth_router
from app.api.v1.notifications import router as notifications_router
from app.api.v1.reports import router as reports_router
from app.core.config import settings

# =============================================================================
# Main API Router
# =============================================================================

api_router = APIRouter()

# =============================================================================
# Include Sub-Routers
# =============================================================================

api_router.include_router(
    auth_router,
    prefix="/auth",
    tags=["auth"],
    responses={
        401: {"description": "Invalid credentials"},
        409: {"description": "User already exists"},
    },
)

api_router.include_router(
    reports_router,
    prefix="/reports",
    tags=["reports"],
    responses={
        404: {"description": "Report not found"},
        422: {"description": "Validation error"},
        429: {"description": "Rate limit exceeded"},
        500: {"description": "Internal server error"},
    },
)

api_router.include_router(
    notifications_router,
    prefix="/notifications",
    tags=["notifications"],
    responses={
        404: {"description": "Notification not found"},
    },
)


@api_router.get("/health", tags=["system"])
async def api_health():
    """API health check endpoint."""
    return {
        "status": "healthy",
        "api_version": "v1",
        "service": settings.APP_NAME,
    }


@api_router.get("/info", tags=["system"])
async def api_info():
    """API information endpoint."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "description": settings.APP_DESCRIPTION,
        "api_version": "v1",
        "environment": settings.ENVIRONMENT,
        "docs_url": "/docs" if settings.SHOW_DOCS else None,
    }
