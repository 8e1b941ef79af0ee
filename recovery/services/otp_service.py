"""
OTP Service

Lifecycle of password reset codes: issue, deliver, verify, and the
checks shared with the password reset.

Per-account state:

    NoActiveCode -> CodeIssued -> Verified | Expired | AttemptsExhausted | Superseded
                               -> Consumed | Dead

The state is never stored; it is derived from the record and the clock
(see OTPRecord.state_at).
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional

from recovery.core.clock import Clock
from recovery.core.exceptions import (
    AttemptsExhaustedError,
    CodeAlreadyUsedError,
    CodeExpiredError,
    CodeNotFoundError,
    DeliveryFailedError,
    InvalidCodeError,
    RateLimitedError,
    RecoveryError,
)
from recovery.core.security import codes_match
from recovery.models.enums import OtpState
from recovery.models.otp_record import OTPRecord
from recovery.services.email_service import DeliveryGateway, DeliveryResult
from recovery.services.otp_generator import OtpGenerator
from recovery.services.otp_store import OtpRecordStore
from recovery.services.rate_limiter import OtpRateLimiter


logger = logging.getLogger(__name__)


def unusable_code_error(record: Optional[OTPRecord], now: datetime) -> Optional[RecoveryError]:
    """
    Error for a record that can no longer be verified, or None if it is active.

    Checks run in a fixed order: missing, consumed, expired, exhausted.
    """
    if record is None:
        return CodeNotFoundError()

    state = record.state_at(now)
    if state is OtpState.CONSUMED:
        return CodeAlreadyUsedError()
    if state is OtpState.EXPIRED:
        return CodeExpiredError()
    if state is OtpState.EXHAUSTED:
        return AttemptsExhaustedError()
    return None


class OtpLifecycleManager:
    """
    Orchestrates code generation, delivery and verification.

    Holds no state of its own; everything lives in the store, so any number
    of service instances can run side by side.
    """

    def __init__(
        self,
        store: OtpRecordStore,
        generator: OtpGenerator,
        rate_limiter: OtpRateLimiter,
        gateway: DeliveryGateway,
        clock: Clock,
        delivery_timeout: float = 10.0,
    ):
        self.store = store
        self.generator = generator
        self.rate_limiter = rate_limiter
        self.gateway = gateway
        self.clock = clock
        self.delivery_timeout = delivery_timeout

    async def request_code(self, account_id: str, account_known: bool = True) -> datetime:
        """
        Issue a new code and send it.

        Any previous code for the account stops working. When delivery
        fails the previous record is put back and the cooldown slot stays
        spent.

        Args:
            account_id: Normalized account identifier.
            account_known: False for accounts that do not exist. Such
                requests are rate limited like real ones and answered with a
                plausible expiry, but nothing is stored or sent.

        Returns:
            datetime: Expiry of the issued code.

        Raises:
            RateLimitedError: Cooldown has not elapsed.
            DeliveryFailedError: The email provider failed or timed out.
        """
        await self._check_rate_limit(account_id)

        if not account_known:
            logger.info(f"Code requested for unknown account {account_id}; nothing sent")
            return self.clock.now() + self.generator.ttl

        record = self.generator.generate(account_id)
        prior = await self.store.replace(record)
        logger.info(f"Issued reset code for {account_id}, expires {record.expires_at.isoformat()}")

        result = await self._deliver(record)
        if not result.success:
            restored = await self.store.restore(record, prior)
            logger.warning(
                f"Rolled back code for {account_id} after delivery failure "
                f"(reason={result.reason}, restored={restored})"
            )
            raise DeliveryFailedError(result.reason)

        return record.expires_at

    async def redeliver_code(self, account_id: str) -> datetime:
        """
        Send the current code again without regenerating it.

        Recovers from a delivery that never happened (e.g. a crash between
        storing the record and sending it). Shares the cooldown with
        request_code. A failed re-delivery leaves the record as it was.

        Returns:
            datetime: Expiry of the current code.
        """
        await self._check_rate_limit(account_id)

        record = await self.store.get(account_id)
        error = unusable_code_error(record, self.clock.now())
        if error is not None:
            raise error

        result = await self._deliver(record)
        if not result.success:
            raise DeliveryFailedError(result.reason)

        logger.info(f"Re-delivered reset code for {account_id}")
        return record.expires_at

    async def verify_code(self, account_id: str, submitted_code: str) -> OTPRecord:
        """
        Spend one attempt on `submitted_code`.

        Every call that reaches the comparison counts as an attempt,
        including the one that matches. A match does not consume the code;
        that happens only when the password is actually reset.

        Returns:
            OTPRecord: The record after the attempt was counted.

        Raises:
            CodeNotFoundError, CodeAlreadyUsedError, CodeExpiredError,
            AttemptsExhaustedError: The code is no longer usable.
            InvalidCodeError: Wrong code; carries the remaining budget.
        """
        now = self.clock.now()
        record = await self.store.get(account_id)
        error = unusable_code_error(record, now)
        if error is not None:
            logger.info(f"Verification for {account_id} rejected: {error.error}")
            raise error

        matched = codes_match(submitted_code, record.code)
        updated = await self.store.increment_attempts(
            account_id,
            issued_at=record.created_at,
            verified_at=now if matched else None,
        )
        if updated is None:
            # Lost a race with another attempt, a reset or a new code
            raise self._error_after_lost_race(account_id, record, await self.store.get(account_id), now)

        if not matched:
            logger.info(
                f"Invalid code for {account_id}, {updated.attempts_remaining} attempts remaining"
            )
            raise InvalidCodeError(updated.attempts_remaining)

        logger.info(f"Code verified for {account_id}")
        return updated

    async def authorize_reset(self, account_id: str, submitted_code: str) -> OTPRecord:
        """
        Checks run before a password reset.

        A code whose most recent counted attempt was a match is accepted
        again without spending another attempt, so a match on the last
        allowed attempt can still be used. A later miss clears that match.
        Otherwise the reset itself counts as an attempt.

        Returns:
            OTPRecord: The record the reset is authorized against.
        """
        now = self.clock.now()
        record = await self.store.get(account_id)
        if (
            record is not None
            and record.verified_at is not None
            and record.state_at(now) in (OtpState.ACTIVE, OtpState.EXHAUSTED)
            and codes_match(submitted_code, record.code)
        ):
            return record

        error = unusable_code_error(record, now)
        if error is not None:
            logger.info(f"Reset for {account_id} rejected: {error.error}")
            raise error

        return await self.verify_code(account_id, submitted_code)

    async def purge_stale_records(self, retention: timedelta) -> int:
        """
        Delete records dead for longer than `retention`.

        Housekeeping only: expiry is always evaluated at read time.
        """
        removed = await self.store.purge(self.clock.now() - retention)
        logger.info(f"Purged {removed} stale OTP rows")
        return removed

    async def _check_rate_limit(self, account_id: str) -> None:
        allowed, retry_after = await self.rate_limiter.check_and_record(account_id)
        if not allowed:
            raise RateLimitedError(retry_after)

    async def _deliver(self, record: OTPRecord) -> DeliveryResult:
        try:
            return await asyncio.wait_for(
                self.gateway.send(record.account_id, record.code, record.expires_at),
                timeout=self.delivery_timeout,
            )
        except asyncio.TimeoutError:
            logger.error(
                f"Delivery to {record.account_id} timed out after {self.delivery_timeout}s"
            )
            return DeliveryResult(success=False, reason="timeout")
        except Exception as e:
            logger.error(f"Delivery to {record.account_id} failed: {e}")
            return DeliveryResult(success=False, reason=type(e).__name__)

    @staticmethod
    def _error_after_lost_race(
        account_id: str,
        seen: OTPRecord,
        current: Optional[OTPRecord],
        now: datetime,
    ) -> RecoveryError:
        error = unusable_code_error(current, now)
        if error is not None:
            return error
        if current.created_at != seen.created_at:
            # Superseded while we compared; the submitted code targeted the old one
            logger.info(f"Code for {account_id} superseded during verification")
            return InvalidCodeError(current.attempts_remaining)
        return AttemptsExhaustedError()
