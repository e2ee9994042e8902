"""
Admin authentication: password check and JWT session tokens.
"""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from ..config import get_settings

ADMIN_SUBJECT = "admin"

# Password hashing context for ADMIN_PASSWORD_HASH
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_admin_password(candidate: str) -> bool:
    """
    Check a login attempt against the configured admin credential.

    A configured hash wins over a plain password. With neither configured,
    nobody can log in.
    """
    settings = get_settings()
    if settings.admin_password_hash:
        return pwd_context.verify(candidate, settings.admin_password_hash)
    if settings.admin_password:
        return secrets.compare_digest(candidate.encode(), settings.admin_password.encode())
    return False


def create_access_token(subject: str = ADMIN_SUBJECT, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token.

    Args:
        subject: Value of the ``sub`` claim
        expires_delta: Optional custom lifetime

    Returns:
        The encoded JWT token
    """
    settings = get_settings()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    return jwt.encode(
        {"sub": subject, "role": "admin", "exp": expire},
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM
    )


def verify_token(token: str) -> Optional[str]:
    """Return the admin subject of a valid token, None otherwise."""
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None

    if payload.get("role") != "admin":
        return None
    return payload.get("sub")
