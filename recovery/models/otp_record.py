"""
OTP Record Model

One password-reset code per account. A new code replaces the previous row.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from recovery.core.database import Base
from recovery.models.enums import OtpState


class OTPRecord(Base):
    """
    OTP record for password recovery.

    Attributes:
        account_id: Normalized account identifier (primary key).
        code: Zero-padded 6-digit code.
        created_at: When the code was generated.
        expires_at: created_at + TTL; the code is dead from this instant on.
        consumed: True once spent on a password reset. Never reverts.
        consumed_at: When the code was consumed.
        attempts: Verification attempts made against this code.
        max_attempts: Attempt budget for this code.
        verified_at: When an attempt last matched the code (null if never).
    """

    __tablename__ = "otp_records"
    __table_args__ = (
        CheckConstraint(
            "attempts >= 0 AND attempts <= max_attempts",
            name="ck_otp_records_attempts_bounded",
        ),
    )

    account_id: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
    )
    code: Mapped[str] = mapped_column(
        String(6),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        index=True,
        nullable=False,
    )
    consumed: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    consumed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    attempts: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    max_attempts: Mapped[int] = mapped_column(
        Integer,
        default=3,
        nullable=False,
    )
    verified_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def state_at(self, now: datetime) -> OtpState:
        """Effective state at `now`. Expiry is inclusive of the boundary."""
        if self.consumed:
            return OtpState.CONSUMED
        if now >= self.expires_at:
            return OtpState.EXPIRED
        if self.attempts >= self.max_attempts:
            return OtpState.EXHAUSTED
        return OtpState.ACTIVE

    @property
    def attempts_remaining(self) -> int:
        return max(self.max_attempts - self.attempts, 0)

    def copy(self) -> "OTPRecord":
        """Detached copy carrying the same column values."""
        return OTPRecord(
            **{column.key: getattr(self, column.key) for column in self.__table__.columns}
        )

    def __repr__(self) -> str:
        return (
            f"<OTPRecord(account_id={self.account_id}, expires_at={self.expires_at}, "
            f"attempts={self.attempts}, consumed={self.consumed})>"
        )
