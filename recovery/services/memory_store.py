"""
In-Memory Stores

Process-local implementations of the OTP and credential stores for
development and tests. Per-account asyncio locks stand in for row locks,
so they are only correct within a single process.
"""

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import AsyncIterator, Dict, Iterable, Optional

from recovery.models.otp_record import OTPRecord
from recovery.services.credential_store import CredentialStore
from recovery.services.otp_store import OtpRecordStore


class InMemoryOtpRecordStore(OtpRecordStore):
    """
    Dict-backed OTP store.

    Records are copied in and out so callers never hold live references.
    """

    def __init__(self):
        self._records: Dict[str, OTPRecord] = {}
        self._last_requests: Dict[str, datetime] = {}
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def get(self, account_id: str) -> Optional[OTPRecord]:
        record = self._records.get(account_id)
        return record.copy() if record is not None else None

    async def replace(self, record: OTPRecord) -> Optional[OTPRecord]:
        async with self._locks[record.account_id]:
            prior = self._records.get(record.account_id)
            self._records[record.account_id] = record.copy()
            return prior

    async def restore(self, issued: OTPRecord, prior: Optional[OTPRecord]) -> bool:
        async with self._locks[issued.account_id]:
            current = self._records.get(issued.account_id)
            if current is None or current.created_at != issued.created_at:
                return False
            if prior is None:
                del self._records[issued.account_id]
            else:
                self._records[issued.account_id] = prior.copy()
            return True

    async def increment_attempts(
        self,
        account_id: str,
        issued_at: datetime,
        verified_at: Optional[datetime] = None,
    ) -> Optional[OTPRecord]:
        async with self._locks[account_id]:
            current = self._records.get(account_id)
            if (
                current is None
                or current.created_at != issued_at
                or current.consumed
                or current.attempts >= current.max_attempts
            ):
                return None
            current.attempts += 1
            current.verified_at = verified_at
            return current.copy()

    async def claim_request_slot(
        self,
        account_id: str,
        now: datetime,
        cooldown: timedelta,
    ) -> Optional[datetime]:
        async with self._locks[account_id]:
            last = self._last_requests.get(account_id)
            if last is not None and now - last < cooldown:
                return last
            self._last_requests[account_id] = now
            return None

    @asynccontextmanager
    async def locked(self, account_id: str) -> AsyncIterator[Optional[OTPRecord]]:
        async with self._locks[account_id]:
            current = self._records.get(account_id)
            working = current.copy() if current is not None else None
            yield working
            if working is not None:
                self._records[account_id] = working

    async def purge(self, before: datetime) -> int:
        dead = [
            account_id
            for account_id, record in self._records.items()
            if record.expires_at < before
            or (record.consumed and record.consumed_at is not None and record.consumed_at < before)
        ]
        for account_id in dead:
            del self._records[account_id]

        stale = [
            account_id
            for account_id, requested_at in self._last_requests.items()
            if requested_at < before
        ]
        for account_id in stale:
            del self._last_requests[account_id]

        return len(dead) + len(stale)


class InMemoryCredentialStore(CredentialStore):
    """Dict-backed credential store keyed by account id."""

    def __init__(self, accounts: Iterable[str] = ()):
        self._password_hashes: Dict[str, str] = {account: "" for account in accounts}
        self._changed_at: Dict[str, datetime] = {}

    def add_account(self, account_id: str, password_hash: str = "") -> None:
        self._password_hashes[account_id] = password_hash

    def password_hash_for(self, account_id: str) -> Optional[str]:
        return self._password_hashes.get(account_id)

    def password_changed_at(self, account_id: str) -> Optional[datetime]:
        return self._changed_at.get(account_id)

    async def account_exists(self, account_id: str) -> bool:
        return account_id in self._password_hashes

    async def set_password_hash(
        self,
        account_id: str,
        password_hash: str,
        changed_at: datetime,
    ) -> bool:
        if account_id not in self._password_hashes:
            return False
        self._password_hashes[account_id] = password_hash
        self._changed_at[account_id] = changed_at
        return True
