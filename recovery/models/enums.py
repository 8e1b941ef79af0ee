"""
Enums

Python Enums for derived recovery state.
"""

import enum


class OtpState(str, enum.Enum):
    """
    Effective state of an OTP record.

    Derived from the stored fields and the current time, never persisted.
    """
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    EXHAUSTED = "EXHAUSTED"
    CONSUMED = "CONSUMED"
