"""
Account Recovery - Schemas Module

Pydantic models for request/response validation.
"""

from recovery.schemas.recovery import (
    RequestCodeRequest,
    RequestCodeResponse,
    VerifyCodeRequest,
    VerifyCodeResponse,
    ResetPasswordRequest,
    OperationResponse,
    ErrorResponse,
)

__all__ = [
    "RequestCodeRequest",
    "RequestCodeResponse",
    "VerifyCodeRequest",
    "VerifyCodeResponse",
    "ResetPasswordRequest",
    "OperationResponse",
    "ErrorResponse",
]
