"""
Notification dispatch.

Decides, per notification type and the user's preferences, which channels
fire (in-app, email, SMS) and renders content for each. Dispatch is
best-effort: every channel is attempted independently and failures are
logged, never raised.
"""

import logging
from typing import Any, Dict, NamedTuple, Optional
from uuid import UUID
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.crud import notification as notification_crud
from app.models.notification import NotificationPriority, NotificationSetting, NotificationType
from app.models.user import User
from app.services import notification_templates
from app.services.email_service import email_service
from app.services.sms_service import sms_service

logger = logging.getLogger(__name__)


class ChannelPolicy(NamedTuple):
    allow_email: bool
    allow_sms: bool


# Which external channels a category may use. In-app is governed by push_enabled only.
CHANNEL_POLICY: Dict[NotificationType, ChannelPolicy] = {
    NotificationType.INTERVIEW_REMINDER: ChannelPolicy(allow_email=True, allow_sms=True),
    NotificationType.APPLICATION_FOLLOW_UP: ChannelPolicy(allow_email=True, allow_sms=False),
    NotificationType.DEADLINE_ALERT: ChannelPolicy(allow_email=True, allow_sms=True),
    NotificationType.STATUS_UPDATE: ChannelPolicy(allow_email=True, allow_sms=False),
    NotificationType.WEEKLY_REPORT: ChannelPolicy(allow_email=True, allow_sms=False),
    NotificationType.SYSTEM_NOTIFICATION: ChannelPolicy(allow_email=True, allow_sms=False),
    NotificationType.ACHIEVEMENT: ChannelPolicy(allow_email=False, allow_sms=False),
}

NO_CHANNELS = ChannelPolicy(allow_email=False, allow_sms=False)

# Email default for users that have no settings row yet (matches the column default)
DEFAULT_EMAIL_ENABLED = True

# Category toggle on NotificationSetting for each gated type; other types are always on
CATEGORY_SETTING: Dict[NotificationType, str] = {
    NotificationType.INTERVIEW_REMINDER: "interview_reminders",
    NotificationType.APPLICATION_FOLLOW_UP: "application_follow_ups",
    NotificationType.WEEKLY_REPORT: "weekly_reports",
    NotificationType.DEADLINE_ALERT: "deadline_alerts",
    NotificationType.STATUS_UPDATE: "status_updates",
}


class DispatchResult(BaseModel):
    """Which channels actually delivered for one dispatch"""
    in_app: bool = False
    email: bool = False
    sms: bool = False
    skipped_reason: Optional[str] = None


def get_channel_policy(notification_type: NotificationType) -> ChannelPolicy:
    return CHANNEL_POLICY.get(notification_type, NO_CHANNELS)


def is_type_enabled(notification_type: NotificationType, settings: Optional[NotificationSetting]) -> bool:
    """Category gate. Users without settings get every category."""
    if settings is None:
        return True
    field = CATEGORY_SETTING.get(notification_type)
    if field is None:
        return True
    return bool(getattr(settings, field))


def should_send_in_app(settings: Optional[NotificationSetting]) -> bool:
    return settings is None or bool(settings.push_enabled)


def should_send_email(notification_type: NotificationType, settings: Optional[NotificationSetting]) -> bool:
    enabled = DEFAULT_EMAIL_ENABLED if settings is None else settings.email_enabled
    if not enabled:
        return False
    return get_channel_policy(notification_type).allow_email


def should_send_sms(notification_type: NotificationType, settings: Optional[NotificationSetting]) -> bool:
    """SMS needs the channel on, a phone number on file and an SMS-eligible type."""
    if settings is None or not settings.sms_enabled or not settings.phone_number:
        return False
    return get_channel_policy(notification_type).allow_sms


def send_notification(
    db: Session,
    user_id: UUID,
    notification_type: NotificationType,
    title: str,
    message: str,
    data: Optional[Dict[str, Any]] = None,
    priority: NotificationPriority = NotificationPriority.NORMAL,
    action_url: Optional[str] = None
) -> DispatchResult:
    """
    Deliver a notification on every channel the user and policy allow.

    Args:
        db: Database session
        user_id: Recipient
        notification_type: Category, drives gating and routing
        title: Short title (also the email subject)
        message: Body text
        data: Template values, stored on the in-app row
        priority: In-app priority
        action_url: Optional deep link for the in-app row

    Returns:
        DispatchResult: per-channel delivery flags
    """
    result = DispatchResult()

    try:
        user = db.query(User).filter(User.id == user_id).first()
    except Exception as e:
        logger.error(f"Failed to load user {user_id} for notification: {str(e)}")
        result.skipped_reason = "user_lookup_failed"
        return result

    if not user:
        logger.error(f"Notification target user not found: {user_id}")
        result.skipped_reason = "user_not_found"
        return result

    settings = user.notification_settings

    if not is_type_enabled(notification_type, settings):
        logger.info(f"Notification {notification_type.value} disabled for user {user_id}")
        result.skipped_reason = "category_disabled"
        return result

    payload = {"title": title, "message": message, **(data or {})}

    if should_send_in_app(settings):
        try:
            notification_crud.create_notification(
                db,
                user_id=user_id,
                notification_type=notification_type,
                title=title,
                message=message,
                data=data,
                priority=priority,
                action_url=action_url
            )
            result.in_app = True
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to create in-app notification for user {user_id}: {str(e)}")

    if should_send_email(notification_type, settings):
        try:
            html_body = notification_templates.render_email(notification_type, payload)
            result.email = email_service.send_email(user.email, title, html_body, message)
        except Exception as e:
            logger.error(f"Failed to email notification to user {user_id}: {str(e)}")

    if should_send_sms(notification_type, settings):
        try:
            sms_text = notification_templates.render_sms(notification_type, payload)
            result.sms = sms_service.send_sms(settings.phone_number, sms_text)
        except Exception as e:
            logger.error(f"Failed to SMS notification to user {user_id}: {str(e)}")

    logger.info(
        f"Notification {notification_type.value} dispatched to user {user_id}: "
        f"in_app={result.in_app} email={result.email} sms={result.sms}"
    )
    return result
