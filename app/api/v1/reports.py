"""
Reports API Endpoints

REST endpoints for submitting reports, listing them, dashboard statistics and
admin status transitions.
"""

from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Depends, Query, status
from pydantic import Field, field_validator

from app.api.deps import get_current_user, get_file_storage, get_report_service, require_admin
from app.api.v1.schemas import CamelModel, LocationModel, ReportResponse
from app.core.cache import check_rate_limit
from app.core.config import settings
from app.core.exceptions import PermissionDeniedError
from app.models.domain import NewReport, ReportCategory, ReportStatus, User
from app.services.file_storage import FileStorageService
from app.services.reports import ReportService

# =============================================================================
# Logger and Router
# =============================================================================

logger = structlog.get_logger(__name__)
router = APIRouter()

# =============================================================================
# Request/Response Models
# =============================================================================

class ReportCreateRequest(CamelModel):
    """Request model for creating a new report."""
    category: ReportCategory
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1, max_length=5000)
    location: LocationModel
    image_data_url: Optional[str] = None

    @field_validator("title", "description")
    @classmethod
    def strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class ReportStatusUpdateRequest(CamelModel):
    status: ReportStatus


class ReportStatisticsResponse(CamelModel):
    total: int
    by_status: Dict[str, int]
    by_category: List[Dict[str, Any]]


# =============================================================================
# Endpoints
# =============================================================================

@router.post("", response_model=ReportResponse, status_code=status.HTTP_201_CREATED)
async def create_report(
    request: ReportCreateRequest,
    current_user: User = Depends(get_current_user),
    report_service: ReportService = Depends(get_report_service),
    file_storage: FileStorageService = Depends(get_file_storage),
) -> ReportResponse:
    """
    Submit a new report.

    The submitter is always the authenticated user. Reports in critical
    categories alert every administrator in the background.
    """
    await check_rate_limit(
        f"user:{current_user.id}",
        "create_report",
        limit=settings.MAX_REPORTS_PER_USER_PER_DAY,
        window=86400,
    )

    image_url = None
    if request.image_data_url:
        image_url = await file_storage.upload_data_url(request.image_data_url, current_user.id)

    report = await report_service.create_report(
        NewReport(
            user_id=current_user.id,
            user_name=current_user.name,
            category=request.category,
            title=request.title,
            description=request.description,
            location=request.location.to_domain(),
            image_url=image_url,
        )
    )
    return ReportResponse.from_domain(report)


@router.get("", response_model=List[ReportResponse])
async def list_reports(
    category: Optional[ReportCategory] = Query(None),
    status_filter: Optional[ReportStatus] = Query(None, alias="status"),
    current_user: User = Depends(get_current_user),
    report_service: ReportService = Depends(get_report_service),
) -> List[ReportResponse]:
    """List reports. Admins see every report, citizens only their own."""
    reports = await report_service.list_reports(
        category=category,
        status=status_filter,
        user_id=None if current_user.is_admin else current_user.id,
    )
    return [ReportResponse.from_domain(report) for report in reports]


@router.get("/stats", response_model=ReportStatisticsResponse)
async def get_report_statistics(
    current_user: User = Depends(require_admin),
    report_service: ReportService = Depends(get_report_service),
) -> ReportStatisticsResponse:
    stats = await report_service.get_statistics()
    return ReportStatisticsResponse(
        total=stats.total,
        by_status=stats.by_status,
        by_category=stats.by_category,
    )


@router.get("/{report_id}", response_model=ReportResponse)
async def get_report(
    report_id: str,
    current_user: User = Depends(get_current_user),
    report_service: ReportService = Depends(get_report_service),
) -> ReportResponse:
    report = await report_service.get_report(report_id)
    if not current_user.is_admin and report.user_id != current_user.id:
        raise PermissionDeniedError("You can only access your own reports", resource="report")
    return ReportResponse.from_domain(report)


@router.patch("/{report_id}/status", response_model=ReportResponse)
async def update_report_status(
    report_id: str,
    request: ReportStatusUpdateRequest,
    current_user: User = Depends(require_admin),
    report_service: ReportService = Depends(get_report_service),
) -> ReportResponse:
    """Move a report to a new status and notify its submitter (admins only)."""
    logger.info(
        "Updating report status",
        report_id=report_id,
        status=request.status.value,
        admin_id=current_user.id,
    )
    report = await report_service.update_status(report_id, request.status)
    return ReportResponse.from_domain(report)
