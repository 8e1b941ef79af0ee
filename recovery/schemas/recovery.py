"""
Recovery Schemas

Pydantic models for the password recovery endpoints. Field names are
camelCase on the wire.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base schema serializing to camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RequestCodeRequest(CamelModel):
    """Schema for requesting (or re-sending) a reset code."""

    account_id: EmailStr = Field(..., description="Account email address")


class RequestCodeResponse(CamelModel):
    """Schema for a code that was sent."""

    success: bool = True
    expires_at: datetime
    message: str


class VerifyCodeRequest(CamelModel):
    """Schema for checking a code."""

    account_id: EmailStr = Field(..., description="Account email address")
    code: str = Field(..., pattern=r"^\d{6}$", description="6-digit code")


class VerifyCodeResponse(CamelModel):
    """Schema for a verified code."""

    success: bool = True
    attempts_remaining: int
    message: str = "Code verified. You can now choose a new password."


class ResetPasswordRequest(CamelModel):
    """Schema for exchanging a code for a new password."""

    account_id: EmailStr = Field(..., description="Account email address")
    code: str = Field(..., pattern=r"^\d{6}$", description="6-digit code")
    new_credential: str = Field(..., description="New password")


class OperationResponse(CamelModel):
    """Generic success response."""

    success: bool = True
    message: str


class ErrorResponse(CamelModel):
    """Shape of every failed recovery call."""

    success: bool = False
    error: str
    message: str
    retry_after_seconds: Optional[int] = None
    attempts_remaining: Optional[int] = None
