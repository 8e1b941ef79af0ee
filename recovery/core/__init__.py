"""
Account Recovery - Core Module

This module contains configuration, database setup, and security utilities.
"""

from recovery.core.config import get_settings, settings
from recovery.core.database import Base, get_engine, get_session_maker

__all__ = ["settings", "get_settings", "Base", "get_engine", "get_session_maker"]
