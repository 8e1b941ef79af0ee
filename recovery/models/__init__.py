"""
Account Recovery - Models Module

This module exports all SQLAlchemy models for the application.
Import Base for Alembic migrations.
"""

from recovery.core.database import Base

# Enums
from recovery.models.enums import OtpState

# Models
from recovery.models.user import User
from recovery.models.otp_record import OTPRecord
from recovery.models.otp_request_log import OTPRequestLog

__all__ = [
    # Base
    "Base",
    # Enums
    "OtpState",
    # Models
    "User",
    "OTPRecord",
    "OTPRequestLog",
]
