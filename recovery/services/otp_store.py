"""
OTP Record Store

Persistence contract for OTP records and the resend cooldown, with the
PostgreSQL implementation.

Every mutating operation is atomic per account: concurrent requests for
the same account are serialized by row locks or conditional statements,
never by in-process state.
"""

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import AsyncContextManager, AsyncIterator, Optional

from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from recovery.core.exceptions import StoreUnavailableError
from recovery.models.otp_record import OTPRecord
from recovery.models.otp_request_log import OTPRequestLog


class OtpRecordStore(ABC):
    """Storage for OTP records keyed by account id."""

    @abstractmethod
    async def get(self, account_id: str) -> Optional[OTPRecord]:
        """Point lookup of the current record."""

    @abstractmethod
    async def replace(self, record: OTPRecord) -> Optional[OTPRecord]:
        """
        Upsert `record`, superseding whatever the account had.

        Returns:
            Detached snapshot of the superseded record, or None.
        """

    @abstractmethod
    async def restore(self, issued: OTPRecord, prior: Optional[OTPRecord]) -> bool:
        """
        Undo `replace(issued)`.

        Only acts while the stored record is still `issued`. Puts `prior`
        back, or deletes the row when there was none.

        Returns:
            True if the store was changed.
        """

    @abstractmethod
    async def increment_attempts(
        self,
        account_id: str,
        issued_at: datetime,
        verified_at: Optional[datetime] = None,
    ) -> Optional[OTPRecord]:
        """
        Count one verification attempt.

        Applies only if the record issued at `issued_at` is still stored,
        unconsumed and below its attempt budget. `verified_at` is stored
        when the attempt matched and cleared when it did not, so it is set
        only while the last counted attempt was a match.

        Returns:
            The updated record, or None if the condition did not hold.
        """

    @abstractmethod
    async def claim_request_slot(
        self,
        account_id: str,
        now: datetime,
        cooldown: timedelta,
    ) -> Optional[datetime]:
        """
        Record a code request at `now` unless one happened within `cooldown`.

        Returns:
            None if the slot was claimed, else the previous request time.
        """

    @abstractmethod
    def locked(self, account_id: str) -> AsyncContextManager[Optional[OTPRecord]]:
        """
        Critical section over one account's record.

        Yields the current record (or None). Changes made to it are
        persisted on clean exit and discarded if the block raises.
        """

    @abstractmethod
    async def purge(self, before: datetime) -> int:
        """
        Delete records that expired or were consumed before `before`, and
        request-log rows older than `before`.

        Returns:
            Number of rows deleted.
        """


class SqlAlchemyOtpRecordStore(OtpRecordStore):
    """
    PostgreSQL-backed store.

    Shares the request's AsyncSession with the credential store, so work
    done inside `locked()` commits as one transaction.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[None]:
        try:
            yield
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise StoreUnavailableError(f"OTP store operation failed: {e}") from e
        except Exception:
            await self.session.rollback()
            raise

    async def get(self, account_id: str) -> Optional[OTPRecord]:
        async with self._transaction():
            result = await self.session.execute(
                select(OTPRecord)
                .where(OTPRecord.account_id == account_id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()

    async def replace(self, record: OTPRecord) -> Optional[OTPRecord]:
        async with self._transaction():
            result = await self.session.execute(
                select(OTPRecord)
                .where(OTPRecord.account_id == record.account_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            current = result.scalar_one_or_none()
            prior = current.copy() if current is not None else None

            values = _column_values(record)
            stmt = pg_insert(OTPRecord).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=[OTPRecord.account_id],
                set_={key: value for key, value in values.items() if key != "account_id"},
            )
            await self.session.execute(stmt)
            return prior

    async def restore(self, issued: OTPRecord, prior: Optional[OTPRecord]) -> bool:
        same_issuance = and_(
            OTPRecord.account_id == issued.account_id,
            OTPRecord.created_at == issued.created_at,
        )
        async with self._transaction():
            if prior is None:
                result = await self.session.execute(
                    delete(OTPRecord)
                    .where(same_issuance)
                    .execution_options(synchronize_session=False)
                )
            else:
                values = _column_values(prior)
                values.pop("account_id")
                result = await self.session.execute(
                    update(OTPRecord)
                    .where(same_issuance)
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
            return (result.rowcount or 0) > 0

    async def increment_attempts(
        self,
        account_id: str,
        issued_at: datetime,
        verified_at: Optional[datetime] = None,
    ) -> Optional[OTPRecord]:
        values = {"attempts": OTPRecord.attempts + 1, "verified_at": verified_at}

        async with self._transaction():
            result = await self.session.execute(
                update(OTPRecord)
                .where(
                    OTPRecord.account_id == account_id,
                    OTPRecord.created_at == issued_at,
                    OTPRecord.consumed.is_(False),
                    OTPRecord.attempts < OTPRecord.max_attempts,
                )
                .values(**values)
                .returning(OTPRecord)
                .execution_options(synchronize_session=False, populate_existing=True)
            )
            return result.scalar_one_or_none()

    async def claim_request_slot(
        self,
        account_id: str,
        now: datetime,
        cooldown: timedelta,
    ) -> Optional[datetime]:
        threshold = now - cooldown
        stmt = pg_insert(OTPRequestLog).values(account_id=account_id, last_requested_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=[OTPRequestLog.account_id],
            set_={"last_requested_at": now},
            where=OTPRequestLog.last_requested_at <= threshold,
        ).returning(OTPRequestLog.account_id)

        async with self._transaction():
            result = await self.session.execute(stmt)
            if result.scalar_one_or_none() is not None:
                return None

            return await self.session.scalar(
                select(OTPRequestLog.last_requested_at)
                .where(OTPRequestLog.account_id == account_id)
            )

    @asynccontextmanager
    async def locked(self, account_id: str) -> AsyncIterator[Optional[OTPRecord]]:
        async with self._transaction():
            result = await self.session.execute(
                select(OTPRecord)
                .where(OTPRecord.account_id == account_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            yield result.scalar_one_or_none()

    async def purge(self, before: datetime) -> int:
        async with self._transaction():
            records = await self.session.execute(
                delete(OTPRecord)
                .where(
                    or_(
                        OTPRecord.expires_at < before,
                        and_(
                            OTPRecord.consumed.is_(True),
                            OTPRecord.consumed_at < before,
                        ),
                    )
                )
                .execution_options(synchronize_session=False)
            )
            requests = await self.session.execute(
                delete(OTPRequestLog)
                .where(OTPRequestLog.last_requested_at < before)
                .execution_options(synchronize_session=False)
            )
            return (records.rowcount or 0) + (requests.rowcount or 0)


def _column_values(record: OTPRecord) -> dict:
    return {column.key: getattr(record, column.key) for column in OTPRecord.__table__.columns}
