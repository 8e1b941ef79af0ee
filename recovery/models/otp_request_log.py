"""
OTP Request Log Model

Last code request per account, used for the resend cooldown.
"""

from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from recovery.core.database import Base


class OTPRequestLog(Base):
    """
    Kept apart from otp_records so a generation rolled back after a failed
    delivery still counts toward the cooldown.
    """

    __tablename__ = "otp_request_log"

    account_id: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
    )
    last_requested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<OTPRequestLog(account_id={self.account_id}, last_requested_at={self.last_requested_at})>"
