"""
Verification code endpoints.

Issue, check and inspect 6-digit one-time codes sent by email or SMS.
"""

import logging
import re
from uuid import UUID
from email_validator import EmailNotValidError, validate_email
from fastapi import APIRouter, HTTPException, Depends, Query, Response, status
from sqlalchemy.orm import Session

from app.core.clock import utcnow
from app.core.database import get_db
from app.core.deps import get_admin_user, get_current_user
from app.core.rate_limiter import check_send_code_limit, check_verify_code_limit
from app.core.verification import (
    can_request_code,
    create_and_send_code,
    get_expiration_minutes,
    mask_target,
    verify_code,
)
from app.models.user import User
from app.models.verification import (
    VerificationAttempt,
    VerificationCode,
    VerificationCodeType,
    VerificationMethod,
)
from app.schemas.notification import PHONE_NUMBER_PATTERN
from app.schemas.verification import (
    RateLimitStatus,
    SendCodeRequest,
    SendCodeResponse,
    VerificationAttemptInfo,
    VerificationCodeInfo,
    VerificationHistoryResponse,
    VerificationMethodsResponse,
    VerifyCodeRequest,
    VerifyCodeResponse,
)

router = APIRouter(prefix="/verification", tags=["Verification"])
logger = logging.getLogger(__name__)

PHONE_PATTERN = re.compile(PHONE_NUMBER_PATTERN)

HISTORY_CODE_LIMIT = 50
HISTORY_ATTEMPT_LIMIT = 20


def _bad_request(message: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message)


def validate_code_request(
    user: User,
    code_type: VerificationCodeType,
    method: VerificationMethod,
    target: str
) -> None:
    """
    Check that the user may have a code of this type sent to this target.

    Raises:
        HTTPException 400: With the reason the request is refused
    """
    settings = user.notification_settings
    phone_number = settings.phone_number if settings else None

    if method == VerificationMethod.EMAIL:
        if code_type == VerificationCodeType.EMAIL_VERIFICATION and target != user.email:
            raise _bad_request("Email address not allowed")
        try:
            validate_email(target, check_deliverability=False)
        except EmailNotValidError:
            raise _bad_request("Invalid email format")

    if method == VerificationMethod.SMS:
        if not phone_number:
            raise _bad_request("No phone number configured")
        # A new number may be verified; every other SMS code goes to the number on file
        if code_type != VerificationCodeType.PHONE_VERIFICATION and target != phone_number:
            raise _bad_request("Phone number not allowed")
        if not PHONE_PATTERN.match(target):
            raise _bad_request("Invalid phone number format")

    if code_type == VerificationCodeType.EMAIL_VERIFICATION and user.is_verified and target == user.email:
        raise _bad_request("Email is already verified")

    if code_type == VerificationCodeType.ACCOUNT_DELETION and not user.is_active:
        raise _bad_request("Account is already deactivated")


@router.get("/methods", response_model=VerificationMethodsResponse)
def get_verification_methods(current_user: User = Depends(get_current_user)):
    """Channels a code can be sent to for the current user, with masked targets."""
    settings = current_user.notification_settings
    phone_number = settings.phone_number if settings else None

    available_methods = [VerificationMethod.EMAIL]
    if phone_number:
        available_methods.append(VerificationMethod.SMS)

    prefers_sms = bool(settings and settings.sms_enabled and phone_number)

    return VerificationMethodsResponse(
        email=mask_target(current_user.email, VerificationMethod.EMAIL),
        phone_number=mask_target(phone_number, VerificationMethod.SMS) if phone_number else None,
        available_methods=available_methods,
        preferred_method=VerificationMethod.SMS if prefers_sms else VerificationMethod.EMAIL
    )


@router.get("/rate-limit", response_model=RateLimitStatus)
def check_rate_limit(
    code_type: VerificationCodeType = Query(...),
    method: VerificationMethod = Query(...),
    target: str = Query(..., min_length=1),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Whether a code can be requested right now for this type, method and target."""
    return can_request_code(db, current_user.id, code_type, method, target.strip())


@router.post("/send-code", response_model=SendCodeResponse)
def send_code(
    request: SendCodeRequest,
    response: Response,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Issue a code and send it by email or SMS.

    Returns:
        SendCodeResponse with status 200 when sent, 429 while the resend
        cool-down runs, 502 when the channel failed to deliver

    Raises:
        HTTPException 400: Target not allowed for this user or code type
        HTTPException 429: Raw request rate exceeded
    """
    validate_code_request(current_user, request.code_type, request.method, request.target)
    check_send_code_limit(str(current_user.id))

    result = create_and_send_code(
        db,
        user_id=current_user.id,
        code_type=request.code_type,
        method=request.method,
        target=request.target,
        metadata=request.metadata
    )

    if result.rate_limited:
        response.status_code = status.HTTP_429_TOO_MANY_REQUESTS
    elif result.delivery_failed:
        response.status_code = status.HTTP_502_BAD_GATEWAY
    elif not result.success:
        raise _bad_request(result.message)

    return SendCodeResponse(
        success=result.success,
        message=result.message,
        next_allowed_at=result.next_allowed_at,
        code_type=request.code_type,
        method=request.method,
        target=mask_target(request.target, request.method),
        expires_in_minutes=get_expiration_minutes(request.code_type)
    )


@router.post("/verify-code", response_model=VerifyCodeResponse)
def verify_submitted_code(
    request: VerifyCodeRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Check a 6-digit code.

    A verified EMAIL_VERIFICATION code also marks the account email verified.

    Raises:
        HTTPException 429: Rate limit exceeded
        HTTPException 400: Invalid, expired, used or exhausted code
    """
    check_verify_code_limit(str(current_user.id))

    result = verify_code(db, current_user.id, request.code, request.code_type)
    if not result.success:
        raise _bad_request(result.message)

    if request.code_type == VerificationCodeType.EMAIL_VERIFICATION and not current_user.is_verified:
        current_user.is_verified = True
        db.commit()
        logger.info(f"User {current_user.id} verified their email")

    return VerifyCodeResponse(
        success=True,
        message=result.message,
        code_type=request.code_type,
        verified_at=utcnow()
    )


@router.get("/history/{user_id}", response_model=VerificationHistoryResponse)
def get_verification_history(
    user_id: UUID,
    db: Session = Depends(get_db),
    admin_user: User = Depends(get_admin_user)
):
    """Recent codes and send attempts for a user, targets masked. Admin only."""
    codes = db.query(VerificationCode).filter(
        VerificationCode.user_id == user_id
    ).order_by(VerificationCode.created_at.desc()).limit(HISTORY_CODE_LIMIT).all()

    attempts = db.query(VerificationAttempt).filter(
        VerificationAttempt.user_id == user_id
    ).order_by(VerificationAttempt.sent_at.desc()).limit(HISTORY_ATTEMPT_LIMIT).all()

    code_infos = []
    for code in codes:
        info = VerificationCodeInfo.model_validate(code)
        info.target = mask_target(code.target, code.method)
        code_infos.append(info)

    attempt_infos = []
    for attempt in attempts:
        info = VerificationAttemptInfo.model_validate(attempt)
        info.target = mask_target(attempt.target, attempt.method)
        attempt_infos.append(info)

    return VerificationHistoryResponse(codes=code_infos, attempts=attempt_infos)
