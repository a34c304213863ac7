"""
Celery tasks for notifications.

run_scheduled_job is the single entry point Celery beat calls for every
periodic job; send_notification_task delivers a one-off notification at a
later time.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional
from uuid import UUID
from celery import shared_task
from sqlalchemy.orm import Session

from app.core.celery_utils import queue_task_safely
from app.core.clock import ensure_utc, resolve_now
from app.core.database import SessionLocal
from app.models.notification import NotificationPriority, NotificationType
from app.services.notification_service import send_notification
from app.services.scheduler import JobRegistry

logger = logging.getLogger(__name__)


def execute_scheduled_job(
    name: str,
    registry: JobRegistry,
    session_factory: Callable[[], Session] = SessionLocal
) -> Dict[str, Any]:
    """
    Run one registered job in its own session.

    Disabled jobs are skipped. Failures are logged and re-raised so Celery
    records the task as failed.
    """
    if registry.get(name) is None:
        logger.warning(f"Unknown scheduled job: {name}")
        return {"status": "unknown", "job": name}

    if not registry.is_enabled(name):
        logger.info(f"Scheduled job {name} is stopped, skipping run")
        return {"status": "skipped", "job": name}

    db = session_factory()
    try:
        count = registry.run(name, db)
        return {"status": "success", "job": name, "count": count}
    except Exception as e:
        logger.error(f"Scheduled job {name} failed: {str(e)}")
        raise
    finally:
        db.close()


@shared_task(name="run_scheduled_job")
def run_scheduled_job(name: str):
    """Celery beat entry point for every periodic notification job."""
    from app.core.celery_app import job_registry

    return execute_scheduled_job(name, job_registry)


@shared_task(
    bind=True,
    name="send_notification_task",
    max_retries=3,
    default_retry_delay=60,
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True
)
def send_notification_task(
    self,
    user_id: str,
    notification_type: str,
    title: str,
    message: str,
    data: Optional[Dict[str, Any]] = None,
    priority: str = NotificationPriority.NORMAL.value,
    action_url: Optional[str] = None
):
    """
    Deliver a notification that was scheduled for later.

    Arguments arrive JSON-serialized, so ids and enums come in as strings.
    """
    logger.info(f"Running scheduled notification '{title}' for user {user_id}")

    db = SessionLocal()
    try:
        result = send_notification(
            db,
            user_id=UUID(user_id),
            notification_type=NotificationType(notification_type),
            title=title,
            message=message,
            data=data,
            priority=NotificationPriority(priority),
            action_url=action_url
        )
        return result.model_dump()
    except Exception as e:
        logger.error(f"Scheduled notification for user {user_id} failed: {str(e)}")
        raise self.retry(exc=e)
    finally:
        db.close()


def schedule_one_time_notification(
    db: Session,
    user_id: UUID,
    notification_type: NotificationType,
    title: str,
    message: str,
    execute_at: datetime,
    data: Optional[Dict[str, Any]] = None,
    priority: NotificationPriority = NotificationPriority.NORMAL,
    action_url: Optional[str] = None,
    now: Optional[datetime] = None
) -> bool:
    """
    Send a notification at execute_at.

    Times in the past are dispatched right away on the caller's session;
    future times are queued on Celery with an ETA.

    Returns:
        bool: True if dispatched or queued
    """
    now = resolve_now(now)
    execute_at = ensure_utc(execute_at)

    if execute_at <= now:
        send_notification(
            db,
            user_id=user_id,
            notification_type=notification_type,
            title=title,
            message=message,
            data=data,
            priority=priority,
            action_url=action_url
        )
        return True

    minutes = round((execute_at - now).total_seconds() / 60)
    logger.info(f"Notification scheduled for {execute_at.isoformat()} (in {minutes} minutes)")

    return queue_task_safely(
        send_notification_task,
        eta=execute_at,
        user_id=str(user_id),
        notification_type=notification_type.value,
        title=title,
        message=message,
        data=data,
        priority=priority.value,
        action_url=action_url
    )
