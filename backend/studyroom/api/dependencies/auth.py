# backend/studyroom/api/dependencies/auth.py
"""
Authentication dependencies.

Turns a verified bearer token into an AuthorizationContext. A missing or
invalid token is 401; a valid token without a scheduling role is 403.
"""

import logging
from typing import Optional

from fastapi import Depends
from jwt import PyJWTError

from ...auth import decode_access_token, oauth2_scheme
from ...core.exceptions import ForbiddenException, UnauthorizedException
from ...principal import AdminPolicy, AuthorizationContext

logger = logging.getLogger(__name__)


def get_admin_policy() -> AdminPolicy:
    return AdminPolicy.from_settings()


def _unauthenticated() -> Exception:
    http_exc = UnauthorizedException("Unauthenticated", code="UNAUTHENTICATED").to_http_exception()
    http_exc.headers = {"WWW-Authenticate": "Bearer"}
    return http_exc


async def get_authorization_context(
    token: Optional[str] = Depends(oauth2_scheme),
    policy: AdminPolicy = Depends(get_admin_policy),
) -> AuthorizationContext:
    """
    Resolve the caller's role and identity.

    Raises:
        HTTPException: 401 for a missing or invalid token, 403 for no role
    """
    if not token:
        raise _unauthenticated()
    try:
        claims = decode_access_token(token)
    except PyJWTError as exc:
        logger.info(f"Rejected bearer token: {exc}")
        raise _unauthenticated() from exc

    context = policy.build_context(claims)
    if context is None:
        raise ForbiddenException("Not permitted", code="FORBIDDEN").to_http_exception()
    return context
