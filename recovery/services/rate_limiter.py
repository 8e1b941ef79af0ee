"""
OTP Rate Limiter

Enforces a minimum interval between code requests for one account.
"""

import logging
import math
from datetime import timedelta
from typing import Optional, Tuple

from recovery.core.clock import Clock
from recovery.services.otp_store import OtpRecordStore


logger = logging.getLogger(__name__)


class OtpRateLimiter:
    """
    Per-account cooldown on code generation.

    The last request time is tracked in the store independently of the
    OTP record, so a denied request never touches the active code.
    """

    def __init__(
        self,
        store: OtpRecordStore,
        clock: Clock,
        cooldown: timedelta = timedelta(minutes=2),
    ):
        self._store = store
        self._clock = clock
        self._cooldown = cooldown

    @property
    def cooldown(self) -> timedelta:
        return self._cooldown

    async def check_and_record(self, account_id: str) -> Tuple[bool, Optional[int]]:
        """
        Claim the request slot for `account_id` if the cooldown has elapsed.

        Returns:
            tuple: (allowed, seconds_remaining). seconds_remaining is None
            when allowed and at least 1 when denied.
        """
        now = self._clock.now()
        last_requested_at = await self._store.claim_request_slot(
            account_id, now, self._cooldown
        )
        if last_requested_at is None:
            return True, None

        elapsed = (now - last_requested_at).total_seconds()
        remaining = max(math.ceil(self._cooldown.total_seconds() - elapsed), 1)
        logger.info(f"Code request for {account_id} rate limited, {remaining}s remaining")
        return False, remaining
