"""
Pattern hashing, pattern validation and JWT token utilities.
No DB imports here.
"""
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from movienight.core.config import settings

# Pattern hashes are bcrypt, same as passwords would be
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

MIN_PATTERN_DOTS = 4
PATTERN_GRID_SIZE = 9


# ── Pattern helpers ───────────────────────────────────────────────────────────

def validate_pattern(pattern: str) -> bool:
    """
    A pattern is a '-'-joined sequence of grid dots, e.g. "1-5-9-3".

    Requires at least four dots, each between 1 and 9, none repeated.
    """
    parts = pattern.split("-")
    if len(parts) < MIN_PATTERN_DOTS:
        return False
    try:
        dots = [int(p) for p in parts]
    except ValueError:
        return False
    if any(d < 1 or d > PATTERN_GRID_SIZE for d in dots):
        return False
    return len(set(dots)) == len(dots)


def hash_pattern(pattern: str) -> str:
    """Return a bcrypt hash of *pattern*."""
    return pwd_context.hash(pattern)


def verify_pattern(pattern: str, hashed: str | None) -> bool:
    """Return True if *pattern* matches the stored *hashed* value."""
    if not hashed:
        return False
    return pwd_context.verify(pattern, hashed)


# ── JWT helpers ───────────────────────────────────────────────────────────────

def create_access_token(
    subject: Any,
    expires_delta: timedelta | None = None,
) -> str:
    """
    Create a signed JWT.

    Args:
        subject: The user's UUID (converted to str).
        expires_delta: Override the default expiry from settings.

    Returns:
        Encoded JWT string.
    """
    expire = datetime.now(timezone.utc) + (
        expires_delta
        or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    payload = {"sub": str(subject), "exp": expire}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> str | None:
    """
    Decode a JWT and return the *sub* claim (user UUID string).
    Returns None on any error (expired, tampered, malformed).
    """
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
        )
        return payload.get("sub")
    except JWTError:
        return None
