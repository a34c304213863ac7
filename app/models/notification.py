"""
In-app notifications and per-user notification preferences.
"""

import enum
import uuid
from sqlalchemy import Column, String, Boolean, DateTime, Integer, ForeignKey, Index, Enum, JSON, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from app.core.clock import utcnow
from app.core.database import Base


class NotificationType(str, enum.Enum):
    """Notification categories. Channel routing is keyed on these."""
    INTERVIEW_REMINDER = "INTERVIEW_REMINDER"
    APPLICATION_FOLLOW_UP = "APPLICATION_FOLLOW_UP"
    DEADLINE_ALERT = "DEADLINE_ALERT"
    STATUS_UPDATE = "STATUS_UPDATE"
    WEEKLY_REPORT = "WEEKLY_REPORT"
    SYSTEM_NOTIFICATION = "SYSTEM_NOTIFICATION"
    ACHIEVEMENT = "ACHIEVEMENT"


class NotificationPriority(str, enum.Enum):
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    URGENT = "URGENT"


class Notification(Base):
    """In-app notification shown in the user's inbox."""
    __tablename__ = "notifications"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    notification_type = Column(Enum(NotificationType), nullable=False)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    data = Column(JSON, nullable=True)
    priority = Column(Enum(NotificationPriority), nullable=False, default=NotificationPriority.NORMAL)
    action_url = Column(String, nullable=True)

    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User", back_populates="notifications")

    __table_args__ = (
        Index('ix_notifications_user_read_created', 'user_id', 'is_read', 'created_at'),
    )

    def __repr__(self):
        return f"<Notification(user_id={self.user_id}, type={self.notification_type}, is_read={self.is_read})>"


class NotificationSetting(Base):
    """
    Channel and category preferences for one user.

    A disabled category silences every channel for that category.
    The three reminder timings are minutes before an interview.
    """
    __tablename__ = "notification_settings"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)

    # Channels
    email_enabled = Column(Boolean, nullable=False, default=True)
    sms_enabled = Column(Boolean, nullable=False, default=False)
    push_enabled = Column(Boolean, nullable=False, default=True)

    # Categories
    interview_reminders = Column(Boolean, nullable=False, default=True)
    application_follow_ups = Column(Boolean, nullable=False, default=True)
    weekly_reports = Column(Boolean, nullable=False, default=True)
    deadline_alerts = Column(Boolean, nullable=False, default=True)
    status_updates = Column(Boolean, nullable=False, default=True)

    reminder_timing_1 = Column(Integer, nullable=False, default=1440)  # 24h before
    reminder_timing_2 = Column(Integer, nullable=False, default=60)
    reminder_timing_3 = Column(Integer, nullable=False, default=15)

    phone_number = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User", back_populates="notification_settings")

    @property
    def reminder_timings(self):
        return [self.reminder_timing_1, self.reminder_timing_2, self.reminder_timing_3]

    def __repr__(self):
        return f"<NotificationSetting(user_id={self.user_id}, email={self.email_enabled}, sms={self.sms_enabled})>"
