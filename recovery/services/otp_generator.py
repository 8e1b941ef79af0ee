"""
OTP Generator

Produces fresh one-time codes. Does not persist anything.
"""

import secrets
from datetime import timedelta
from typing import Callable

from recovery.core.clock import Clock
from recovery.models.otp_record import OTPRecord


CODE_LENGTH = 6
CODE_SPACE = 10 ** CODE_LENGTH


def generate_otp(randbelow: Callable[[int], int] = secrets.randbelow) -> str:
    """Generate a 6-digit code, uniform over 000000..999999."""
    return f"{randbelow(CODE_SPACE):0{CODE_LENGTH}d}"


class OtpGenerator:
    """
    Builds new OTP records.

    The randomness source must be cryptographically secure in production;
    tests may pass a deterministic `randbelow`. Failures of the source
    propagate, there is no fallback.
    """

    def __init__(
        self,
        clock: Clock,
        ttl: timedelta = timedelta(minutes=10),
        max_attempts: int = 3,
        randbelow: Callable[[int], int] = secrets.randbelow,
    ):
        self._clock = clock
        self._ttl = ttl
        self._max_attempts = max_attempts
        self._randbelow = randbelow

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def generate(self, account_id: str) -> OTPRecord:
        now = self._clock.now()
        return OTPRecord(
            account_id=account_id,
            code=generate_otp(self._randbelow),
            created_at=now,
            expires_at=now + self._ttl,
            consumed=False,
            consumed_at=None,
            attempts=0,
            max_attempts=self._max_attempts,
            verified_at=None,
        )
