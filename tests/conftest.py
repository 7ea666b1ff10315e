"""
Shared fixtures: in-memory repositories and a configured test app.
"""

import os
import tempfile

# Environment must be set BEFORE importing the app
os.environ["ENVIRONMENT"] = "testing"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key-for-testing"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="civic-uploads-")
os.environ["PUBLIC_BASE_URL"] = "http://testserver"
os.environ["STORAGE_BACKEND"] = "local"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["ENABLE_WORKERS"] = "false"
os.environ["NOTIFY_ON_STATUS_CHANGE"] = "true"

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.models.database import Base
from app.models.domain import Location, NewReport, ReportCategory
from app.services.notifications import NotificationService
from app.services.reports import ReportService
from app.workers.jobs import TaskDispatcher
from tests.fakes import InMemoryAuthRepository, InMemoryNotificationRepository, InMemoryReportRepository


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def report_repository():
    return InMemoryReportRepository()


@pytest.fixture
def notification_repository():
    return InMemoryNotificationRepository(admin_ids=["admin-1", "admin-2"])


@pytest.fixture
def notification_service(notification_repository):
    return NotificationService(notification_repository)


@pytest.fixture
def dispatcher():
    return TaskDispatcher(use_queue=False)


@pytest.fixture
def report_service(report_repository, notification_service, dispatcher):
    return ReportService(
        report_repository,
        notification_service,
        dispatcher=dispatcher,
        notify_on_status_change=True,
    )


@pytest.fixture
def make_new_report():
    def _make(
        category: ReportCategory = ReportCategory.POTHOLE,
        title: str = "Deep pothole",
        address: str = "Main St",
        user_id: str = "citizen-1",
    ) -> NewReport:
        return NewReport(
            user_id=user_id,
            user_name="Dana Citizen",
            category=category,
            title=title,
            description="Reported from the corner",
            location=Location(lat=32.08, lng=34.78, address=address),
        )

    return _make


@pytest.fixture
def auth_repository():
    return InMemoryAuthRepository()


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    # File database: concurrent sessions need their own connections
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'reports.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()
