"""
Background Jobs

Fire-and-forget side effects of the report workflow. Work is either queued on
RQ (Redis Queue) when workers are enabled or scheduled as an in-process
asyncio task. In both modes failures are logged and discarded; they never
reach the request that triggered them and are never retried.
"""

import asyncio
from typing import Any, Dict, Optional, Set

import structlog
from rq import get_current_job
from rq.decorators import job

from app.core.cache import redis_queue_sync
from app.core.config import settings
from app.core.exceptions import NotificationDeliveryError, format_exception_for_logging
from app.services.notifications import NotificationService

# =============================================================================
# Logger Setup
# =============================================================================

logger = structlog.get_logger(__name__)

NOTIFICATIONS_QUEUE = "notifications"

# =============================================================================
# Queue Jobs
# =============================================================================

@job(NOTIFICATIONS_QUEUE, timeout=settings.WORKER_TIMEOUT, connection=redis_queue_sync)
def notify_admins_job(title: str, message: str, report_id: str) -> Dict[str, Any]:
    """
    Fan a critical-report alert out to every administrator.

    Runs inside an RQ worker process with its own database sessions.
    """
    current = get_current_job()
    logger.info(
        "Running admin notification job",
        report_id=report_id,
        job_id=getattr(current, "id", None),
    )
    return asyncio.run(_notify_admins_async(title, message, report_id))


async def _notify_admins_async(
    title: str,
    message: str,
    report_id: str,
    session_factory=None,
) -> Dict[str, Any]:
    """
    Run the fan-out and summarize it.

    Failures are logged and reported in the result instead of failing the
    job. With no ``session_factory`` the application engine is used and
    disposed afterwards.
    """
    from app.models.database import engine
    from app.repositories.sql import SqlNotificationRepository

    if session_factory is None:
        repository = SqlNotificationRepository()
    else:
        repository = SqlNotificationRepository(session_factory)
    service = NotificationService(repository)

    result: Dict[str, Any] = {"report_id": report_id, "notifications_created": 0, "failed": 0}
    try:
        created = await service.notify_admins(title, message, report_id)
        result["notifications_created"] = len(created)
    except NotificationDeliveryError as e:
        result["notifications_created"] = e.attempted - e.failed
        result["failed"] = e.failed
        result["error"] = e.error_code
        logger.error(
            "Admin notification job failed",
            report_id=report_id,
            **format_exception_for_logging(e),
        )
    except Exception as e:
        result["error"] = getattr(e, "error_code", type(e).__name__)
        logger.error(
            "Admin notification job failed",
            report_id=report_id,
            **format_exception_for_logging(e),
        )
    finally:
        if session_factory is None:
            # Pooled connections are bound to this job's event loop
            await engine.dispose()
    return result


# =============================================================================
# Dispatcher
# =============================================================================

class TaskDispatcher:
    """
    Dispatches best-effort work away from the caller.

    Inline tasks are kept in ``_tasks`` until they finish so the event loop
    does not drop them, and so shutdown can wait for them with ``drain()``.
    """

    def __init__(self, use_queue: Optional[bool] = None):
        self.use_queue = settings.ENABLE_WORKERS if use_queue is None else use_queue
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def dispatch_admin_alert(
        self,
        service: NotificationService,
        title: str,
        message: str,
        report_id: str,
    ) -> None:
        """Request an admin fan-out without waiting for it."""
        if self.use_queue:
            try:
                queued = notify_admins_job.delay(title, message, report_id)
                logger.info("Admin notification queued", report_id=report_id, job_id=queued.id)
            except Exception as e:
                logger.error(
                    "Failed to queue admin notification",
                    report_id=report_id,
                    **format_exception_for_logging(e),
                )
            return

        task = asyncio.create_task(self._run_admin_alert(service, title, message, report_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_admin_alert(
        self,
        service: NotificationService,
        title: str,
        message: str,
        report_id: str,
    ) -> None:
        try:
            await service.notify_admins(title, message, report_id)
        except Exception as e:
            logger.error(
                "Admin notification fan-out failed",
                report_id=report_id,
                **format_exception_for_logging(e),
            )

    async def drain(self) -> None:
        """Wait for every inline task dispatched so far."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


dispatcher = TaskDispatcher()


__all__ = [
    "notify_admins_job",
    "TaskDispatcher",
    "dispatcher",
]
