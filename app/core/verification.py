"""
Core verification code logic.

Handles generation, delivery, validation and lifecycle of 6-digit one-time
codes for every sensitive flow (email verification, password reset,
two-factor login, phone verification, account deletion, sensitive actions).

Resends are throttled per (user, type, method, target) with progressive
delays taken from RESEND_DELAYS_MINUTES.
"""

import logging
import secrets
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, Optional
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.clock import ensure_utc, resolve_now
from app.models.user import User
from app.models.verification import (
    VerificationAttempt,
    VerificationCode,
    VerificationCodeType,
    VerificationMethod,
)
from app.schemas.verification import RateLimitStatus, VerificationResult
from app.services.email_service import email_service
from app.services.sms_service import sms_service

logger = logging.getLogger(__name__)


# Security constants
CODE_LENGTH = 6
MAX_VERIFICATION_ATTEMPTS = 5
RESEND_DELAYS_MINUTES = [1, 2, 5, 10, 15, 30, 60]
ATTEMPT_WINDOW_HOURS = 24
USED_CODE_RETENTION_DAYS = 7

EXPIRATION_MINUTES = {
    VerificationCodeType.EMAIL_VERIFICATION: 60 * 24,
    VerificationCodeType.PASSWORD_RESET: 15,
    VerificationCodeType.TWO_FACTOR_AUTH: 5,
    VerificationCodeType.PHONE_VERIFICATION: 10,
    VerificationCodeType.ACCOUNT_DELETION: 30,
    VerificationCodeType.SENSITIVE_ACTION: 10,
}

# Wrong and expired codes share one message so the response is not a guessing oracle
INVALID_CODE_MESSAGE = "Invalid or expired code"
TOO_MANY_ATTEMPTS_MESSAGE = "Too many attempts. Please request a new code."
VERIFIED_MESSAGE = "Code verified successfully"
SEND_FAILED_MESSAGE = "Failed to send the verification code"


def generate_verification_code() -> str:
    """
    Generate a secure 6-digit verification code.

    Uses the secrets module so codes cannot be predicted.

    Returns:
        str: numeric code between 100000 and 999999 inclusive
    """
    return str(100000 + secrets.randbelow(900000))


def get_expiration_minutes(code_type: VerificationCodeType) -> int:
    return EXPIRATION_MINUTES[code_type]


def format_expiration(code_type: VerificationCodeType) -> str:
    """Human readable lifetime, e.g. "24 hours" or "5 minutes"."""
    minutes = get_expiration_minutes(code_type)
    if minutes >= 60:
        hours = minutes // 60
        return f"{hours} hour{'s' if hours > 1 else ''}"
    return f"{minutes} minute{'s' if minutes > 1 else ''}"


def calculate_resend_delay(attempt_count: int) -> int:
    """
    Cool-down in minutes for a send, given how many sends happened in the
    last 24 hours. The index is clamped to the last table entry.
    """
    index = min(attempt_count, len(RESEND_DELAYS_MINUTES) - 1)
    return RESEND_DELAYS_MINUTES[index]


def mask_target(target: str, method: VerificationMethod) -> str:
    """Partially hide an email address or phone number for display."""
    if method == VerificationMethod.EMAIL:
        local_part, _, domain = target.partition("@")
        if len(local_part) <= 2:
            return f"{local_part[:1]}*@{domain}"
        return f"{local_part[:2]}****@{domain}"

    if len(target) <= 4:
        return f"****{target[-2:]}"
    return f"****{target[-4:]}"


def can_request_code(
    db: Session,
    user_id: uuid.UUID,
    code_type: VerificationCodeType,
    method: VerificationMethod,
    target: str,
    now: Optional[datetime] = None
) -> RateLimitStatus:
    """
    Check whether a new code may be sent to this target.

    Only the latest send for (user, type, method, target) matters: a new
    code is allowed once its next_allowed_at has passed.

    Returns:
        RateLimitStatus: allowed flag, and when not allowed the time it
        becomes allowed plus a wait message in whole minutes
    """
    now = resolve_now(now)

    last_attempt = db.query(VerificationAttempt).filter(
        VerificationAttempt.user_id == user_id,
        VerificationAttempt.code_type == code_type,
        VerificationAttempt.method == method,
        VerificationAttempt.target == target
    ).order_by(VerificationAttempt.sent_at.desc()).first()

    if not last_attempt:
        return RateLimitStatus(allowed=True)

    next_allowed_at = ensure_utc(last_attempt.next_allowed_at)
    if now >= next_allowed_at:
        return RateLimitStatus(allowed=True)

    wait_seconds = (next_allowed_at - now).total_seconds()
    wait_minutes = max(1, int(-(-wait_seconds // 60)))

    return RateLimitStatus(
        allowed=False,
        next_allowed_at=next_allowed_at,
        message=f"Please wait before requesting a new code. Next code allowed in {wait_minutes} minute(s)."
    )


def count_recent_attempts(
    db: Session,
    user_id: uuid.UUID,
    code_type: VerificationCodeType,
    method: VerificationMethod,
    target: str,
    now: Optional[datetime] = None
) -> int:
    """Number of sends to this target within the escalation window."""
    now = resolve_now(now)
    window_start = now - timedelta(hours=ATTEMPT_WINDOW_HOURS)

    return db.query(VerificationAttempt).filter(
        VerificationAttempt.user_id == user_id,
        VerificationAttempt.code_type == code_type,
        VerificationAttempt.method == method,
        VerificationAttempt.target == target,
        VerificationAttempt.sent_at >= window_start
    ).count()


def create_and_send_code(
    db: Session,
    user_id: uuid.UUID,
    code_type: VerificationCodeType,
    method: VerificationMethod,
    target: str,
    metadata: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None
) -> VerificationResult:
    """
    Issue a new code and deliver it over the requested channel.

    - Refuses (without writing anything) while the resend cool-down runs
    - Invalidates the user's other active codes of the same type
    - Persists the code and a throttle attempt in one transaction
    - Sends the code after the commit

    The user row is locked for the duration of the transaction so that two
    concurrent requests cannot both leave an active code behind.

    A delivery failure does not roll back the code or the attempt: the
    cool-down slot is spent and the caller gets success=False together with
    next_allowed_at.

    Args:
        db: Database session
        user_id: UUID of the user
        code_type: What the code authorises
        method: EMAIL or SMS
        target: Email address or phone number to deliver to
        metadata: Optional free-form data stored with the code
        now: Injected clock (defaults to the current UTC time)

    Returns:
        VerificationResult
    """
    now = resolve_now(now)

    user = db.query(User).filter(User.id == user_id).with_for_update().first()
    if not user:
        db.rollback()
        return VerificationResult(success=False, message="User not found")

    rate_status = can_request_code(db, user_id, code_type, method, target, now=now)
    if not rate_status.allowed:
        db.rollback()
        logger.info(f"Code request throttled: user={user_id} type={code_type.value} method={method.value}")
        return VerificationResult(
            success=False,
            message=rate_status.message,
            next_allowed_at=rate_status.next_allowed_at,
            rate_limited=True
        )

    attempt_count = count_recent_attempts(db, user_id, code_type, method, target, now=now)
    next_allowed_at = now + timedelta(minutes=calculate_resend_delay(attempt_count))

    # Invalidate previous active codes of this type by marking them as used
    db.query(VerificationCode).filter(
        VerificationCode.user_id == user_id,
        VerificationCode.code_type == code_type,
        VerificationCode.is_used == False,  # noqa: E712
        VerificationCode.expires_at > now
    ).update({"is_used": True}, synchronize_session=False)

    code = generate_verification_code()
    expires_at = now + timedelta(minutes=get_expiration_minutes(code_type))

    verification = VerificationCode(
        id=uuid.uuid4(),
        user_id=user_id,
        code=code,
        code_type=code_type,
        method=method,
        target=target,
        expires_at=expires_at,
        created_at=now,
        attempts=0,
        max_attempts=MAX_VERIFICATION_ATTEMPTS,
        is_used=False,
        metadata_=metadata
    )
    attempt = VerificationAttempt(
        id=uuid.uuid4(),
        user_id=user_id,
        code_type=code_type,
        method=method,
        target=target,
        sent_at=now,
        next_allowed_at=next_allowed_at
    )

    db.add(verification)
    db.add(attempt)
    db.commit()

    if not _deliver_code(user, code, code_type, method, target):
        logger.error(f"Code delivery failed: user={user_id} type={code_type.value} method={method.value}")
        return VerificationResult(
            success=False,
            message=SEND_FAILED_MESSAGE,
            next_allowed_at=next_allowed_at,
            delivery_failed=True,
            expires_at=expires_at
        )

    logger.info(f"Verification code sent: user={user_id} type={code_type.value} method={method.value}")

    channel = "email" if method == VerificationMethod.EMAIL else "SMS"
    return VerificationResult(
        success=True,
        message=f"Code sent by {channel}",
        next_allowed_at=next_allowed_at,
        expires_at=expires_at
    )


def _deliver_code(
    user: User,
    code: str,
    code_type: VerificationCodeType,
    method: VerificationMethod,
    target: str
) -> bool:
    expires_in = format_expiration(code_type)
    try:
        if method == VerificationMethod.EMAIL:
            return email_service.send_verification_code(
                to_email=target,
                code=code,
                code_type=code_type,
                expires_in=expires_in,
                user_name=user.display_name
            )
        return sms_service.send_verification_code(target, code, code_type, expires_in)
    except Exception as e:
        logger.exception(f"Unexpected error delivering {code_type.value} code: {str(e)}")
        return False


def verify_code(
    db: Session,
    user_id: uuid.UUID,
    code: str,
    code_type: VerificationCodeType,
    now: Optional[datetime] = None
) -> VerificationResult:
    """
    Verify a code for a user.

    Security checks:
    - Code must match the user and type, be unused and not expired
    - A code whose attempt limit is spent is burned even if correct
    - A successful check marks the code used (single-use)
    - A wrong code counts against the user's active code of that type

    Args:
        db: Database session
        user_id: UUID of the user
        code: 6-digit code as submitted
        code_type: Type the code was issued for
        now: Injected clock

    Returns:
        VerificationResult
    """
    now = resolve_now(now)

    verification = db.query(VerificationCode).filter(
        VerificationCode.user_id == user_id,
        VerificationCode.code == code,
        VerificationCode.code_type == code_type,
        VerificationCode.is_used == False,  # noqa: E712
        VerificationCode.expires_at > now
    ).first()

    if not verification:
        record_failed_attempt(db, user_id, code_type, now=now)
        return VerificationResult(success=False, message=INVALID_CODE_MESSAGE)

    if verification.attempts >= verification.max_attempts:
        verification.is_used = True
        db.commit()
        logger.warning(f"Code burned after too many attempts: user={user_id} type={code_type.value}")
        return VerificationResult(success=False, message=TOO_MANY_ATTEMPTS_MESSAGE)

    verification.attempts += 1
    verification.is_used = True
    verification.used_at = now
    db.commit()

    logger.info(f"Code verified: user={user_id} type={code_type.value}")
    return VerificationResult(success=True, message=VERIFIED_MESSAGE)


def record_failed_attempt(
    db: Session,
    user_id: uuid.UUID,
    code_type: VerificationCodeType,
    now: Optional[datetime] = None
) -> Optional[VerificationCode]:
    """
    Count a wrong submission against the user's active code of this type.

    attempts never goes past max_attempts; a code already at the limit is
    marked used instead.

    Returns:
        The active code that was charged, or None if there is none
    """
    active = get_active_code(db, user_id, code_type, now=now)
    if not active:
        return None

    if active.attempts >= active.max_attempts:
        active.is_used = True
    else:
        active.attempts += 1
    db.commit()
    return active


def get_active_code(
    db: Session,
    user_id: uuid.UUID,
    code_type: VerificationCodeType,
    now: Optional[datetime] = None
) -> Optional[VerificationCode]:
    """
    Get the active (non-expired, unused) code of a type for a user.
    """
    now = resolve_now(now)

    return db.query(VerificationCode).filter(
        VerificationCode.user_id == user_id,
        VerificationCode.code_type == code_type,
        VerificationCode.is_used == False,  # noqa: E712
        VerificationCode.expires_at > now
    ).order_by(VerificationCode.created_at.desc()).first()


def cleanup_expired_codes(db: Session, now: Optional[datetime] = None) -> int:
    """
    Delete expired codes, and used codes older than USED_CODE_RETENTION_DAYS.

    Run daily by the cleanup job.

    Returns:
        int: Number of codes deleted
    """
    now = resolve_now(now)
    retention_cutoff = now - timedelta(days=USED_CODE_RETENTION_DAYS)

    deleted = db.query(VerificationCode).filter(
        or_(
            VerificationCode.expires_at < now,
            (VerificationCode.is_used == True) & (VerificationCode.created_at < retention_cutoff)  # noqa: E712
        )
    ).delete(synchronize_session=False)

    db.commit()
    logger.info(f"Cleaned up {deleted} verification codes")
    return deleted


def cleanup_verification_attempts(db: Session, now: Optional[datetime] = None) -> int:
    """
    Delete send attempts that can no longer affect throttling: outside the
    24 hour escalation window and past their cool-down.

    Returns:
        int: Number of attempts deleted
    """
    now = resolve_now(now)
    window_start = now - timedelta(hours=ATTEMPT_WINDOW_HOURS)

    deleted = db.query(VerificationAttempt).filter(
        VerificationAttempt.sent_at < window_start,
        VerificationAttempt.next_allowed_at < now
    ).delete(synchronize_session=False)

    db.commit()
    logger.info(f"Cleaned up {deleted} verification attempts")
    return deleted
