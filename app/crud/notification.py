"""
CRUD operations for notifications and notification settings.

Every read and write is scoped by user_id so one user can never touch
another user's inbox.
"""

import math
from datetime import datetime, timedelta
from typing import Any, Dict, Optional
from uuid import UUID
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.clock import resolve_now
from app.models.notification import Notification, NotificationPriority, NotificationSetting, NotificationType

DEFAULT_CLEANUP_DAYS = 30


def create_notification(
    db: Session,
    user_id: UUID,
    notification_type: NotificationType,
    title: str,
    message: str,
    data: Optional[Dict[str, Any]] = None,
    priority: NotificationPriority = NotificationPriority.NORMAL,
    action_url: Optional[str] = None,
    now: Optional[datetime] = None
) -> Notification:
    """
    Create an in-app notification.

    Returns:
        Notification: The persisted row
    """
    notification = Notification(
        user_id=user_id,
        notification_type=notification_type,
        title=title,
        message=message,
        data=data,
        priority=priority,
        action_url=action_url,
        created_at=resolve_now(now)
    )

    db.add(notification)
    db.commit()
    db.refresh(notification)
    return notification


def get_user_notifications(
    db: Session,
    user_id: UUID,
    page: int = 1,
    limit: int = 20,
    unread_only: bool = False
) -> Dict[str, Any]:
    """
    Retrieve a page of notifications, newest first.

    Returns:
        dict with "notifications" and "pagination" keys
    """
    query = db.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        query = query.filter(Notification.is_read == False)  # noqa: E712

    total = query.count()
    notifications = query.order_by(Notification.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    total_pages = math.ceil(total / limit) if limit else 0

    return {
        "notifications": notifications,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def get_by_id(db: Session, user_id: UUID, notification_id: UUID) -> Optional[Notification]:
    return db.query(Notification).filter(
        Notification.id == notification_id,
        Notification.user_id == user_id
    ).first()


def mark_as_read(db: Session, user_id: UUID, notification_id: UUID, now: Optional[datetime] = None) -> bool:
    """
    Mark one notification as read.

    Returns:
        bool: False if the notification does not exist for this user
    """
    notification = get_by_id(db, user_id, notification_id)
    if not notification:
        return False

    notification.is_read = True
    notification.read_at = resolve_now(now)
    db.commit()
    return True


def mark_all_as_read(db: Session, user_id: UUID, now: Optional[datetime] = None) -> int:
    """Mark every unread notification as read. Returns the number updated."""
    updated = db.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.is_read == False  # noqa: E712
    ).update({"is_read": True, "read_at": resolve_now(now)}, synchronize_session=False)

    db.commit()
    return updated


def delete_notification(db: Session, user_id: UUID, notification_id: UUID) -> bool:
    deleted = db.query(Notification).filter(
        Notification.id == notification_id,
        Notification.user_id == user_id
    ).delete(synchronize_session=False)

    db.commit()
    return deleted > 0


def cleanup_old_notifications(
    db: Session,
    user_id: Optional[UUID] = None,
    older_than_days: int = DEFAULT_CLEANUP_DAYS,
    now: Optional[datetime] = None
) -> int:
    """
    Delete notifications that are read AND older than the threshold.

    Args:
        db: Database session
        user_id: Limit to one user; None cleans every user
        older_than_days: Age threshold in days
        now: Injected clock

    Returns:
        int: Number of notifications deleted
    """
    cutoff = resolve_now(now) - timedelta(days=older_than_days)

    query = db.query(Notification).filter(
        Notification.is_read == True,  # noqa: E712
        Notification.created_at < cutoff
    )
    if user_id is not None:
        query = query.filter(Notification.user_id == user_id)

    deleted = query.delete(synchronize_session=False)
    db.commit()
    return deleted


def get_notification_stats(db: Session, user_id: UUID, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Totals for a user's inbox.

    this_week counts notifications since the start of the current week
    (Sunday 00:00 UTC).
    """
    now = resolve_now(now)
    days_since_sunday = (now.weekday() + 1) % 7
    start_of_week = (now - timedelta(days=days_since_sunday)).replace(hour=0, minute=0, second=0, microsecond=0)

    base = db.query(Notification).filter(Notification.user_id == user_id)
    total = base.count()
    unread = base.filter(Notification.is_read == False).count()  # noqa: E712
    this_week = base.filter(Notification.created_at >= start_of_week).count()

    by_type = {t.value: 0 for t in NotificationType}
    type_rows = db.query(Notification.notification_type, func.count(Notification.id)).filter(
        Notification.user_id == user_id
    ).group_by(Notification.notification_type).all()
    for notification_type, count in type_rows:
        by_type[notification_type.value] = count

    by_priority = {p.value: 0 for p in NotificationPriority}
    priority_rows = db.query(Notification.priority, func.count(Notification.id)).filter(
        Notification.user_id == user_id
    ).group_by(Notification.priority).all()
    for priority, count in priority_rows:
        by_priority[priority.value] = count

    return {
        "total": total,
        "unread": unread,
        "by_type": by_type,
        "by_priority": by_priority,
        "this_week": this_week,
    }


def get_settings(db: Session, user_id: UUID) -> Optional[NotificationSetting]:
    return db.query(NotificationSetting).filter(NotificationSetting.user_id == user_id).first()


def create_default_settings(db: Session, user_id: UUID) -> NotificationSetting:
    """Create settings with column defaults (done on registration)."""
    settings = NotificationSetting(user_id=user_id)
    db.add(settings)
    db.commit()
    db.refresh(settings)
    return settings


def update_settings(db: Session, user_id: UUID, changes: Dict[str, Any]) -> NotificationSetting:
    """
    Create or update a user's notification settings.

    Args:
        changes: Column name -> new value; unknown keys are ignored

    Returns:
        NotificationSetting: The upserted row
    """
    settings = get_settings(db, user_id)
    if not settings:
        settings = NotificationSetting(user_id=user_id)
        db.add(settings)

    editable = set(NotificationSetting.__table__.columns.keys()) - {"id", "user_id", "created_at", "updated_at"}
    for field, value in changes.items():
        if field in editable:
            setattr(settings, field, value)

    db.commit()
    db.refresh(settings)
    return settings
