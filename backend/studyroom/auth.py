"""
Bearer-token handling.

Identity is issued upstream; this module only verifies HS256 tokens and
returns their claims. ``create_access_token`` exists for local tooling and
tests that need a signed token.
"""

from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Dict, Optional, cast

from fastapi.security import OAuth2PasswordBearer
import jwt

from .core.config import settings

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login", auto_error=False)


def _secret_value(secret_obj: Any) -> str:
    getter = getattr(secret_obj, "get_secret_value", None)
    if callable(getter):
        return cast(str, getter())
    return cast(str, secret_obj)


def decode_access_token(token: str) -> Dict[str, Any]:
    """
    Verify a bearer token and return its claims.

    Raises:
        jwt.PyJWTError: signature, expiry or format failure
    """
    payload_raw = jwt.decode(
        token,
        _secret_value(settings.secret_key),
        algorithms=[settings.algorithm],
        options={"verify_aud": False},
    )
    return cast(Dict[str, Any], payload_raw)


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token.

    Args:
        data: Claims to encode (``sub``, ``email``, ``role``)
        expires_delta: Optional expiration time delta

    Returns:
        str: The encoded JWT token
    """
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(
            minutes=settings.access_token_expire_minutes
        )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, _secret_value(settings.secret_key), algorithm=settings.algorithm)
