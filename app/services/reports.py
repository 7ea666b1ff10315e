"""
Report Service

Report creation (with the critical-category admin alert), listing, dashboard
statistics and status transitions (with the submitter notification).
"""

from collections import Counter
from typing import List, Optional

import structlog

from app.core.config import settings
from app.core.metrics import REPORTS_CREATED
from app.models.domain import (
    NewNotification,
    NewReport,
    Report,
    ReportCategory,
    ReportStatistics,
    ReportStatus,
)
from app.repositories.base import ReportRepository
from app.services.notifications import NotificationService
from app.workers.jobs import TaskDispatcher, dispatcher as default_dispatcher

logger = structlog.get_logger(__name__)

URGENT_ALERT_TITLE = "Urgent: public-safety report"
STATUS_UPDATE_TITLE = "Report Update"
UNKNOWN_LOCATION = "unknown location"


def build_urgent_alert_message(report: Report) -> str:
    address = (report.location.address or "").strip() or UNKNOWN_LOCATION
    return (
        f"A {report.category.value} report was filed at {address}: "
        f"\"{report.title}\". Immediate review is required."
    )


def build_status_update_message(report: Report, status: ReportStatus) -> str:
    return f"The status of your report \"{report.title}\" has changed to: {status.label}"


class ReportService:

    def __init__(
        self,
        report_repository: ReportRepository,
        notification_service: NotificationService,
        dispatcher: Optional[TaskDispatcher] = None,
        notify_on_status_change: Optional[bool] = None,
    ):
        self.report_repository = report_repository
        self.notification_service = notification_service
        self.dispatcher = dispatcher or default_dispatcher
        if notify_on_status_change is None:
            notify_on_status_change = settings.NOTIFY_ON_STATUS_CHANGE
        self.notify_on_status_change = notify_on_status_change

    # =========================================================================
    # Creation
    # =========================================================================

    async def create_report(self, new_report: NewReport) -> Report:
        """
        Persist a report and, for critical categories, alert every admin.

        The alert is dispatched without waiting for it; its failures are
        logged by the dispatcher and never surface here. Persistence errors
        propagate unchanged.
        """
        if new_report.status is None:
            new_report.status = ReportStatus.RECEIVED

        report = await self.report_repository.save(new_report)
        REPORTS_CREATED.labels(category=report.category.value).inc()

        logger.info(
            "Report created",
            report_id=report.id,
            user_id=report.user_id,
            category=report.category.value,
            has_image=report.image_url is not None,
        )

        if report.is_critical:
            self.dispatcher.dispatch_admin_alert(
                self.notification_service,
                URGENT_ALERT_TITLE,
                build_urgent_alert_message(report),
                report.id,
            )

        return report

    # =========================================================================
    # Queries
    # =========================================================================

    async def list_reports(
        self,
        category: Optional[ReportCategory] = None,
        status: Optional[ReportStatus] = None,
        user_id: Optional[str] = None,
    ) -> List[Report]:
        return await self.report_repository.find_all(
            category=category, status=status, user_id=user_id
        )

    async def get_report(self, report_id: str) -> Report:
        return await self.report_repository.find_by_id(report_id)

    async def get_statistics(self) -> ReportStatistics:
        """Totals per status and per category (most frequent first)."""
        reports = await self.report_repository.find_all()

        status_counts = Counter(report.status for report in reports)
        category_counts = Counter(report.category for report in reports)

        by_category = [
            {"category": category.value, "count": category_counts.get(category, 0)}
            for category in ReportCategory
        ]
        # sorted() is stable, so ties keep enum order
        by_category = sorted(by_category, key=lambda item: item["count"], reverse=True)

        return ReportStatistics(
            total=len(reports),
            by_status={status.value: status_counts.get(status, 0) for status in ReportStatus},
            by_category=by_category,
        )

    # =========================================================================
    # Status transitions
    # =========================================================================

    async def update_status(self, report_id: str, status: ReportStatus) -> Report:
        """
        Move a report to ``status`` and, if enabled, tell its submitter.

        The submitter notification is awaited: if creating it fails the error
        propagates, although the status change itself is already stored.
        """
        updated = await self.report_repository.update_status(report_id, status)

        logger.info(
            "Report status changed",
            report_id=updated.id,
            status=updated.status.value,
        )

        if self.notify_on_status_change:
            await self.notification_service.create_notification(
                NewNotification(
                    user_id=updated.user_id,
                    report_id=updated.id,
                    title=STATUS_UPDATE_TITLE,
                    message=build_status_update_message(updated, status),
                    read=False,
                )
            )

        return updated
