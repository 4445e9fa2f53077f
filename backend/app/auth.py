"""
FloraLens Backend - Authentication
====================================

What:  Resolves the bearer token of an incoming request into an AuthSession.
How:   Verifies an HS256 JWT (python-jose) issued by the external identity
       provider; `sub` carries the user id.
Who:   `get_current_session` is a FastAPI dependency of every /api/scans route.
When:  Before any other request processing. No valid token means 401 and
       nothing else runs.

Token issuance belongs to the identity provider. `create_access_token`
exists for local development, the CLI and the test-suite.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from app.config import settings
from app.exceptions import UnauthorizedError

logger = logging.getLogger(__name__)

# auto_error=False: a missing header is reported through UnauthorizedError,
# so the 401 body has the same shape as every other error.
bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthSession:
    """An authenticated caller. Only the user id is needed by this service."""

    user_id: str


def create_access_token(
    user_id: str,
    expires_in: timedelta = timedelta(hours=1),
    extra_claims: Optional[Dict[str, Any]] = None,
) -> str:
    now = datetime.now(timezone.utc)
    claims: Dict[str, Any] = {
        "sub": user_id,
        "iat": int(now.timestamp()),
        "exp": int((now + expires_in).timestamp()),
    }
    if settings.jwt_audience:
        claims["aud"] = settings.jwt_audience
    if settings.jwt_issuer:
        claims["iss"] = settings.jwt_issuer
    if extra_claims:
        claims.update(extra_claims)
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> AuthSession:
    """
    Verify signature, expiry, audience and issuer, then build the session.

    Raises:
        UnauthorizedError: bad signature, expired, wrong audience/issuer,
        or no `sub` claim.
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
        )
    except JWTError as e:
        logger.info("Rejected access token: %s", str(e))
        raise UnauthorizedError(message="Invalid or expired token")

    user_id = payload.get("sub")
    if not user_id:
        raise UnauthorizedError(message="Invalid token payload")
    return AuthSession(user_id=str(user_id))


async def get_current_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> AuthSession:
    """FastAPI dependency: the authenticated session, or 401."""
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError(message="Authentication required")
    return decode_access_token(credentials.credentials)
