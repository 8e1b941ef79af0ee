"""
Credential Store

Where password hashes live. The recovery flow only needs to know whether
an account exists and to replace its password hash.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from recovery.core.exceptions import StoreUnavailableError
from recovery.models.user import User


class CredentialStore(ABC):
    """Account credentials keyed by account id."""

    @abstractmethod
    async def account_exists(self, account_id: str) -> bool:
        ...

    @abstractmethod
    async def set_password_hash(
        self,
        account_id: str,
        password_hash: str,
        changed_at: datetime,
    ) -> bool:
        """
        Replace the account's password hash.

        Returns:
            False if the account does not exist.
        """


class SqlAlchemyCredentialStore(CredentialStore):
    """
    Credential store over the `users` table.

    Does not commit: password updates ride on the transaction opened by
    the OTP store's `locked()` block on the same session.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def account_exists(self, account_id: str) -> bool:
        try:
            user_id = await self.session.scalar(
                select(User.id).where(User.email == account_id)
            )
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise StoreUnavailableError(f"Credential lookup failed: {e}") from e
        return user_id is not None

    async def set_password_hash(
        self,
        account_id: str,
        password_hash: str,
        changed_at: datetime,
    ) -> bool:
        result = await self.session.execute(
            update(User)
            .where(User.email == account_id)
            .values(password_hash=password_hash, password_changed_at=changed_at)
            .execution_options(synchronize_session=False)
        )
        return (result.rowcount or 0) > 0
