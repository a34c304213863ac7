"""
Pydantic schemas for verification codes.

RateLimitStatus and VerificationResult are also the return types of
app.core.verification, so the endpoints can hand them straight back.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator
import re

from app.models.verification import VerificationCodeType, VerificationMethod


class RateLimitStatus(BaseModel):
    """Whether a new code may be requested right now"""
    allowed: bool
    next_allowed_at: Optional[datetime] = None
    message: Optional[str] = None


class VerificationResult(BaseModel):
    """Outcome of issuing or verifying a code"""
    success: bool
    message: str
    next_allowed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    rate_limited: bool = False
    delivery_failed: bool = False


class SendCodeRequest(BaseModel):
    """Request to issue and send a code"""
    code_type: VerificationCodeType
    method: VerificationMethod
    target: str = Field(..., min_length=1, description="Email address or phone number")
    metadata: Optional[Dict[str, Any]] = None

    @field_validator('target')
    @classmethod
    def strip_target(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError('Target is required')
        return v


class VerifyCodeRequest(BaseModel):
    """Request to verify a 6-digit code"""
    code: str = Field(..., min_length=6, max_length=6, description="6-digit verification code")
    code_type: VerificationCodeType

    @field_validator('code')
    @classmethod
    def validate_code_format(cls, v: str) -> str:
        """Ensure code is exactly 6 digits"""
        if not re.match(r'^\d{6}$', v):
            raise ValueError('Code must be exactly 6 digits')
        return v


class SendCodeResponse(BaseModel):
    """Response after sending a code"""
    success: bool
    message: str
    next_allowed_at: Optional[datetime] = None
    code_type: VerificationCodeType
    method: VerificationMethod
    target: str  # masked
    expires_in_minutes: int


class VerifyCodeResponse(BaseModel):
    success: bool
    message: str
    code_type: VerificationCodeType
    verified_at: datetime


class VerificationMethodsResponse(BaseModel):
    email: str
    phone_number: Optional[str] = None
    available_methods: List[VerificationMethod]
    preferred_method: VerificationMethod


class VerificationCodeInfo(BaseModel):
    id: Any
    code_type: VerificationCodeType
    method: VerificationMethod
    target: str
    expires_at: datetime
    attempts: int
    max_attempts: int
    is_used: bool
    used_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class VerificationAttemptInfo(BaseModel):
    code_type: VerificationCodeType
    method: VerificationMethod
    target: str
    sent_at: datetime
    next_allowed_at: datetime

    class Config:
        from_attributes = True


class VerificationHistoryResponse(BaseModel):
    codes: List[VerificationCodeInfo]
    attempts: List[VerificationAttemptInfo]
