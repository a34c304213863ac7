"""
Verification code models.

VerificationCode holds one issued 6-digit code. VerificationAttempt is an
append-only send log used to throttle resend requests with progressive
delays per (user, type, method, target).
"""

import enum
import uuid
from sqlalchemy import Column, String, Boolean, DateTime, Integer, ForeignKey, Index, Enum, JSON
from sqlalchemy.dialects.postgresql import UUID
from app.core.clock import utcnow
from app.core.database import Base


class VerificationCodeType(str, enum.Enum):
    """What a code authorises. Each type has its own lifetime."""
    EMAIL_VERIFICATION = "EMAIL_VERIFICATION"
    PASSWORD_RESET = "PASSWORD_RESET"
    TWO_FACTOR_AUTH = "TWO_FACTOR_AUTH"
    PHONE_VERIFICATION = "PHONE_VERIFICATION"
    ACCOUNT_DELETION = "ACCOUNT_DELETION"
    SENSITIVE_ACTION = "SENSITIVE_ACTION"


class VerificationMethod(str, enum.Enum):
    """Channel a code is delivered over."""
    EMAIL = "EMAIL"
    SMS = "SMS"


class VerificationCode(Base):
    """
    One-time verification code.

    Features:
    - 6-digit numeric codes
    - Per-type expiration
    - Single-use enforcement
    - Attempt tracking (max 5) for brute force protection
    - Cascade delete with user
    """
    __tablename__ = "verification_codes"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    code = Column(String(6), nullable=False)
    code_type = Column(Enum(VerificationCodeType), nullable=False)
    method = Column(Enum(VerificationMethod), nullable=False)
    target = Column(String, nullable=False)  # Email address or phone number

    expires_at = Column(DateTime(timezone=True), nullable=False)
    used_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    attempts = Column(Integer, nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False, default=5)
    is_used = Column(Boolean, nullable=False, default=False)

    # "metadata" is reserved on declarative classes
    metadata_ = Column("metadata", JSON, nullable=True)

    __table_args__ = (
        Index('ix_verification_codes_user_type_used', 'user_id', 'code_type', 'is_used'),
        Index('ix_verification_codes_code_expires', 'code', 'expires_at'),
    )

    def __repr__(self):
        return f"<VerificationCode(user_id={self.user_id}, type={self.code_type}, expires_at={self.expires_at})>"


class VerificationAttempt(Base):
    """
    Record of one authorised send, used only for throttling.
    """
    __tablename__ = "verification_attempts"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    code_type = Column(Enum(VerificationCodeType), nullable=False)
    method = Column(Enum(VerificationMethod), nullable=False)
    target = Column(String, nullable=False)

    sent_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    next_allowed_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index('ix_verification_attempts_user_type_next', 'user_id', 'code_type', 'next_allowed_at'),
    )

    def __repr__(self):
        return f"<VerificationAttempt(user_id={self.user_id}, type={self.code_type}, next_allowed_at={self.next_allowed_at})>"
