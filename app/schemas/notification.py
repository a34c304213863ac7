"""
Pydantic schemas for notifications and notification settings.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID
from pydantic import BaseModel, Field

from app.models.notification import NotificationPriority, NotificationType
from app.services.notification_service import DispatchResult

# E.164: the format stored in settings and accepted as an SMS target
PHONE_NUMBER_PATTERN = r"^\+[1-9]\d{1,14}$"


class NotificationResponse(BaseModel):
    id: UUID
    notification_type: NotificationType
    title: str
    message: str
    data: Optional[Dict[str, Any]] = None
    priority: NotificationPriority
    action_url: Optional[str] = None
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class NotificationListResponse(BaseModel):
    notifications: List[NotificationResponse]
    pagination: Pagination


class NotificationStatsResponse(BaseModel):
    total: int
    unread: int
    by_type: Dict[str, int]
    by_priority: Dict[str, int]
    this_week: int


class NotificationCreateRequest(BaseModel):
    """Send a notification to the current user, now or at send_at"""
    notification_type: NotificationType
    title: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1, max_length=1000)
    priority: NotificationPriority = NotificationPriority.NORMAL
    action_url: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    send_at: Optional[datetime] = None


class NotificationCreateResponse(BaseModel):
    success: bool
    message: str
    scheduled: bool = False
    dispatch: Optional[DispatchResult] = None


class CountResponse(BaseModel):
    success: bool = True
    count: int


class NotificationSettingsResponse(BaseModel):
    email_enabled: bool
    sms_enabled: bool
    push_enabled: bool
    interview_reminders: bool
    application_follow_ups: bool
    weekly_reports: bool
    deadline_alerts: bool
    status_updates: bool
    reminder_timing_1: int
    reminder_timing_2: int
    reminder_timing_3: int
    phone_number: Optional[str] = None

    class Config:
        from_attributes = True


class NotificationSettingsUpdate(BaseModel):
    """Partial settings update; reminder timings are minutes before the interview"""
    email_enabled: Optional[bool] = None
    sms_enabled: Optional[bool] = None
    push_enabled: Optional[bool] = None
    interview_reminders: Optional[bool] = None
    application_follow_ups: Optional[bool] = None
    weekly_reports: Optional[bool] = None
    deadline_alerts: Optional[bool] = None
    status_updates: Optional[bool] = None
    reminder_timing_1: Optional[int] = Field(None, ge=5, le=10080)
    reminder_timing_2: Optional[int] = Field(None, ge=5, le=1440)
    reminder_timing_3: Optional[int] = Field(None, ge=5, le=240)
    phone_number: Optional[str] = Field(None, pattern=PHONE_NUMBER_PATTERN)
