"""
Database models package.
"""

from app.models.user import User
from app.models.application import Application, ApplicationStatus, Interview, InterviewType
from app.models.notification import Notification, NotificationPriority, NotificationSetting, NotificationType
from app.models.verification import (
    VerificationAttempt,
    VerificationCode,
    VerificationCodeType,
    VerificationMethod,
)

__all__ = [
    "User",
    "Application",
    "ApplicationStatus",
    "Interview",
    "InterviewType",
    "Notification",
    "NotificationPriority",
    "NotificationSetting",
    "NotificationType",
    "VerificationAttempt",
    "VerificationCode",
    "VerificationCodeType",
    "VerificationMethod",
]
