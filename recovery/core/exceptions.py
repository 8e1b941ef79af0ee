"""
Recovery Errors

Domain error taxonomy for the recovery flow and the FastAPI handlers that
turn it into JSON responses.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


logger = logging.getLogger(__name__)


# Seconds a client should wait before retrying after a storage outage
STORE_RETRY_AFTER_SECONDS = 5


class RecoveryError(Exception):
    """
    Base class for recovery-flow failures reported to the caller.

    Attributes:
        error: Stable error name used on the wire.
        status_code: HTTP status for the API layer.
    """

    error = "RecoveryError"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Recovery request failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_payload(self) -> Dict[str, Any]:
        return {"success": False, "error": self.error, "message": self.message}


class RateLimitedError(RecoveryError):
    """A new code was requested before the cooldown elapsed."""

    error = "RateLimited"
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Please wait before requesting another code"

    def __init__(self, retry_after_seconds: int, message: Optional[str] = None):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            message or f"Please wait {retry_after_seconds} seconds before requesting another code"
        )

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload["retryAfterSeconds"] = self.retry_after_seconds
        return payload


class DeliveryFailedError(RecoveryError):
    """The code could not be handed to the email provider."""

    error = "DeliveryFailed"
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "Failed to send the verification code. Please try again."

    def __init__(self, reason: Optional[str] = None):
        self.reason = reason
        super().__init__()


class CodeNotFoundError(RecoveryError):
    error = "NotFound"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "No active code for this account. Please request a new one."


class CodeExpiredError(RecoveryError):
    error = "Expired"
    status_code = status.HTTP_410_GONE
    default_message = "This code has expired. Please request a new one."


class AttemptsExhaustedError(RecoveryError):
    error = "AttemptsExhausted"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Too many attempts. Please request a new code."


class CodeAlreadyUsedError(RecoveryError):
    error = "AlreadyUsed"
    status_code = status.HTTP_409_CONFLICT
    default_message = "This code has already been used. Please request a new one."


class InvalidCodeError(RecoveryError):
    """Wrong code; the caller may retry within the remaining budget."""

    error = "Invalid"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, attempts_remaining: int):
        self.attempts_remaining = attempts_remaining
        super().__init__(f"Invalid code. {attempts_remaining} attempts remaining")

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload["attemptsRemaining"] = self.attempts_remaining
        return payload


class WeakCredentialError(RecoveryError):
    error = "WeakCredential"
    status_code = 422
    default_message = "The new password does not meet the password policy"


class StoreUnavailableError(Exception):
    """
    Persistence layer failure.

    Not a RecoveryError: the caller should retry later.
    """


def register_exception_handlers(app: FastAPI) -> FastAPI:
    """Install JSON handlers for recovery, storage and validation errors."""

    @app.exception_handler(RecoveryError)
    async def recovery_error_handler(request: Request, exc: RecoveryError):
        headers = None
        if isinstance(exc, RateLimitedError):
            headers = {"Retry-After": str(exc.retry_after_seconds)}
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_payload(),
            headers=headers,
        )

    @app.exception_handler(StoreUnavailableError)
    async def store_unavailable_handler(request: Request, exc: StoreUnavailableError):
        logger.error(f"Storage unavailable on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "success": False,
                "error": "ServiceUnavailable",
                "message": "Service temporarily unavailable. Please try again later.",
            },
            headers={"Retry-After": str(STORE_RETRY_AFTER_SECONDS)},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content={
                "success": False,
                "error": "ValidationError",
                "message": "Invalid request payload",
                "details": jsonable_encoder(exc.errors()),
            },
        )

    return app
