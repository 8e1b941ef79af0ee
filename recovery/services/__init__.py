"""
Account Recovery - Services Module

Business logic layer.
"""

from recovery.services import email_service
from recovery.services import otp_service
from recovery.services import password_reset_service

__all__ = [
    "email_service",
    "otp_service",
    "password_reset_service",
]
