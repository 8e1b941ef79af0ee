"""
Password Reset Service

Applies a new password once the code checks out and consumes the code in
the same transaction, so a code can never be replayed and a password is
never changed without its code being spent.
"""

import logging
import re

from recovery.core.clock import Clock
from recovery.core.exceptions import (
    CodeAlreadyUsedError,
    CodeExpiredError,
    CodeNotFoundError,
    InvalidCodeError,
    WeakCredentialError,
)
from recovery.core.security import BCRYPT_MAX_PASSWORD_BYTES, hash_password
from recovery.services.credential_store import CredentialStore
from recovery.services.otp_service import OtpLifecycleManager
from recovery.services.otp_store import OtpRecordStore


logger = logging.getLogger(__name__)


def validate_new_password(password: str, account_id: str, min_length: int = 8) -> None:
    """
    Enforce the password policy.

    Raises:
        WeakCredentialError: With a message naming the failed rule.
    """
    if len(password) < min_length:
        raise WeakCredentialError(f"Password must be at least {min_length} characters")
    if len(password.encode("utf-8")) > BCRYPT_MAX_PASSWORD_BYTES:
        raise WeakCredentialError(
            f"Password must be at most {BCRYPT_MAX_PASSWORD_BYTES} bytes"
        )
    if not re.search(r"[A-Za-z]", password) or not re.search(r"\d", password):
        raise WeakCredentialError("Password must contain at least one letter and one digit")

    lowered = password.lower()
    local_part = account_id.split("@", 1)[0].lower()
    if lowered == account_id.lower() or lowered == local_part:
        raise WeakCredentialError("Password must not match your account name")


class PasswordResetExecutor:
    """Exchanges a valid code for a new password."""

    def __init__(
        self,
        manager: OtpLifecycleManager,
        store: OtpRecordStore,
        credentials: CredentialStore,
        clock: Clock,
        password_min_length: int = 8,
    ):
        self.manager = manager
        self.store = store
        self.credentials = credentials
        self.clock = clock
        self.password_min_length = password_min_length

    async def reset_password(self, account_id: str, submitted_code: str, new_password: str) -> None:
        """
        Set a new password for `account_id`.

        The code is re-checked here even after a successful verify_code;
        inside the locked section it must still be the same unconsumed,
        unexpired issuance.

        Raises:
            WeakCredentialError: Policy violation. No state is touched.
            RecoveryError: Same taxonomy as verify_code.
        """
        validate_new_password(new_password, account_id, self.password_min_length)

        authorized = await self.manager.authorize_reset(account_id, submitted_code)
        password_hash = hash_password(new_password)

        async with self.store.locked(account_id) as record:
            now = self.clock.now()
            if record is None:
                raise CodeNotFoundError()
            if record.created_at != authorized.created_at:
                raise InvalidCodeError(record.attempts_remaining)
            if record.consumed:
                raise CodeAlreadyUsedError()
            # The attempt budget is not re-checked: the authorizing attempt
            # may have been the last one.
            if now >= record.expires_at:
                raise CodeExpiredError()

            record.consumed = True
            record.consumed_at = now
            if not await self.credentials.set_password_hash(account_id, password_hash, now):
                raise CodeNotFoundError("No account found for this code")

        logger.info(f"Password reset completed for {account_id}")
