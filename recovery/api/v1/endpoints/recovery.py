"""
Account Recovery Routes

Password reset by one-time code: request a code, verify it, and exchange
it for a new password.
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from recovery.api.deps import get_credential_store, get_otp_manager, get_password_reset_executor
from recovery.schemas.recovery import (
    ErrorResponse,
    OperationResponse,
    RequestCodeRequest,
    RequestCodeResponse,
    ResetPasswordRequest,
    VerifyCodeRequest,
    VerifyCodeResponse,
)
from recovery.services.credential_store import CredentialStore
from recovery.services.otp_service import OtpLifecycleManager
from recovery.services.password_reset_service import PasswordResetExecutor


router = APIRouter(prefix="/recovery", tags=["Account Recovery"])

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    410: {"model": ErrorResponse},
    429: {"model": ErrorResponse},
}


@router.post(
    "/request-code",
    response_model=RequestCodeResponse,
    responses={**ERROR_RESPONSES, 502: {"model": ErrorResponse}},
    summary="Request a password reset code",
)
async def request_code(
    data: RequestCodeRequest,
    manager: Annotated[OtpLifecycleManager, Depends(get_otp_manager)],
    credentials: Annotated[CredentialStore, Depends(get_credential_store)],
) -> RequestCodeResponse:
    """
    Issue a new reset code and email it.

    **Flow:**
    1. Apply the per-account cooldown
    2. Generate a code, replacing any earlier one
    3. Send it; on failure the earlier state is restored

    Unknown accounts get the same answer without anything being sent, to
    prevent email enumeration.
    """
    account_id = data.account_id.lower()
    known = await credentials.account_exists(account_id)
    expires_at = await manager.request_code(account_id, account_known=known)

    return RequestCodeResponse(
        expires_at=expires_at,
        message="If an account exists with this email, you'll receive a reset code.",
    )


@router.post(
    "/resend-code",
    response_model=RequestCodeResponse,
    responses={**ERROR_RESPONSES, 502: {"model": ErrorResponse}},
    summary="Send the current reset code again",
)
async def resend_code(
    data: RequestCodeRequest,
    manager: Annotated[OtpLifecycleManager, Depends(get_otp_manager)],
) -> RequestCodeResponse:
    """Re-deliver the active code without generating a new one."""
    expires_at = await manager.redeliver_code(data.account_id.lower())

    return RequestCodeResponse(
        expires_at=expires_at,
        message="Reset code sent again to your email",
    )


@router.post(
    "/verify-code",
    response_model=VerifyCodeResponse,
    responses={**ERROR_RESPONSES, 403: {"model": ErrorResponse}},
    summary="Verify a password reset code",
)
async def verify_code(
    data: VerifyCodeRequest,
    manager: Annotated[OtpLifecycleManager, Depends(get_otp_manager)],
) -> VerifyCodeResponse:
    """
    Check a code. Every call spends one attempt, even a correct one.

    The code stays usable for the reset until it expires.
    """
    record = await manager.verify_code(data.account_id.lower(), data.code)

    return VerifyCodeResponse(attempts_remaining=record.attempts_remaining)


@router.post(
    "/reset-password",
    response_model=OperationResponse,
    responses={**ERROR_RESPONSES, 403: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
    summary="Reset password with a code",
)
async def reset_password(
    data: ResetPasswordRequest,
    executor: Annotated[PasswordResetExecutor, Depends(get_password_reset_executor)],
) -> OperationResponse:
    """
    Set a new password and consume the code in one transaction.
    """
    await executor.reset_password(data.account_id.lower(), data.code, data.new_credential)

    return OperationResponse(
        message="Password reset successfully. You can now log in with your new password."
    )
