"""
Password hashing (bcrypt) and access tokens (JWT).
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
from jose import JWTError, jwt

from lms.core.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

BCRYPT_ROUNDS = 12


def hash_password(password: str) -> str:
    """Return the bcrypt hash of a plain-text password."""
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Check a plain-text password against a stored hash.

    Malformed hashes count as a mismatch instead of raising.
    """
    try:
        return bcrypt.checkpw(
            plain_password.encode("utf-8"),
            hashed_password.encode("utf-8"),
        )
    except ValueError as e:
        logger.debug(f"Password check failed: {type(e).__name__}")
        return False


def create_access_token(
    subject: str,
    extra_data: dict[str, Any] | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """
    Create a signed JWT.

    Args:
        subject: User id stored in the ``sub`` claim
        extra_data: Additional claims (e.g. role)
        expires_delta: Custom lifetime, defaults to JWT_EXPIRES_MINUTES

    Returns:
        Encoded token
    """
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.JWT_EXPIRES_MINUTES))

    payload: dict[str, Any] = {"sub": subject, "exp": expire, "iat": now}
    if extra_data:
        payload.update(extra_data)

    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> dict[str, Any] | None:
    """Decode and validate a JWT. Returns None when invalid or expired."""
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except JWTError:
        return None
