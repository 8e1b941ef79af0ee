"""
Account Recovery Service

Password recovery with one-time e-mail codes.
"""

__version__ = "0.1.0"
