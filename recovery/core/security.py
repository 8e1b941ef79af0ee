"""
Security Utilities

Password hashing and constant-time code comparison.
"""

import hmac

import bcrypt


# bcrypt only looks at the first 72 bytes of a password
BCRYPT_MAX_PASSWORD_BYTES = 72


def hash_password(password: str) -> str:
    """
    Hash a plain text password using bcrypt.

    Args:
        password: Plain text password to hash.

    Returns:
        str: Hashed password.
    """
    password_bytes = password.encode('utf-8')
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(password_bytes, salt)
    return hashed.decode('utf-8')


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a plain text password against a hashed password.

    Args:
        plain_password: Plain text password to verify.
        hashed_password: Hashed password to compare against.

    Returns:
        bool: True if passwords match, False otherwise.
    """
    try:
        password_bytes = plain_password.encode('utf-8')
        hashed_bytes = hashed_password.encode('utf-8')
        return bcrypt.checkpw(password_bytes, hashed_bytes)
    except ValueError:
        # Malformed or empty stored hash
        return False


def codes_match(submitted: str, expected: str) -> bool:
    """
    Compare two one-time codes in constant time.

    Both sides are compared as strings so leading zeros are significant.
    """
    return hmac.compare_digest(submitted.encode("utf-8"), expected.encode("utf-8"))
