# =============================================================================
# app/auth/dependencies.py - FastAPI Auth Dependencies
# =============================================================================
# Verifies Supabase access tokens. Supports:
# - ES256 (Supabase JWT signing keys) via the project's JWKS
# - HS256 (legacy Supabase JWT secret)
#
# A missing, expired or invalid token raises NotAuthenticatedError (401).
# =============================================================================

import logging
import time
from typing import Any, Optional
from uuid import UUID

import httpx
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt

from app.auth.models import AuthUser
from app.config import settings
from app.exceptions import NotAuthenticatedError

logger = logging.getLogger(__name__)

# auto_error=False so a missing header reaches our own 401
security = HTTPBearer(auto_error=False)

_jwks_cache: dict = {}
_jwks_cache_time: float = 0
JWKS_CACHE_TTL = 3600


def _get_jwks_url() -> str:
    return f"{settings.SUPABASE_URL.rstrip('/')}/auth/v1/.well-known/jwks.json"


def _fetch_jwks() -> dict:
    """Fetch the project's JWKS, cached for an hour."""
    global _jwks_cache, _jwks_cache_time

    now = time.time()
    if _jwks_cache and (now - _jwks_cache_time) < JWKS_CACHE_TTL:
        return _jwks_cache

    try:
        response = httpx.get(_get_jwks_url(), timeout=10)
        response.raise_for_status()
        _jwks_cache = response.json()
        _jwks_cache_time = now
        return _jwks_cache
    except httpx.HTTPError as e:
        logger.warning(f"Failed to fetch JWKS: {e}")
        # Stale keys beat no keys
        return _jwks_cache or {"keys": []}


def _get_signing_key(token: str) -> tuple[Any, str]:
    """
    Pick the key and algorithm for a token.

    Returns:
        (key, algorithm) for jwt.decode()
    """
    try:
        header = jwt.get_unverified_header(token)
    except JWTError:
        return settings.SUPABASE_JWT_SECRET, "HS256"

    alg = header.get("alg", "HS256")
    kid = header.get("kid")
    if alg == "HS256":
        return settings.SUPABASE_JWT_SECRET, "HS256"

    if kid:
        for key in _fetch_jwks().get("keys", []):
            if key.get("kid") == kid:
                return key, alg

    logger.warning(f"No JWKS key for alg={alg}, kid={kid}; trying HS256")
    return settings.SUPABASE_JWT_SECRET, "HS256"


def decode_token(token: str) -> AuthUser:
    """
    Verify a Supabase access token.

    Args:
        token: The raw JWT

    Returns:
        AuthUser for the token's subject

    Raises:
        NotAuthenticatedError: If the token is expired, invalid or has no
            usable subject
    """
    try:
        key, algorithm = _get_signing_key(token)
        payload = jwt.decode(token, key, algorithms=[algorithm], audience="authenticated")
    except ExpiredSignatureError:
        logger.info("Rejected expired token")
        raise NotAuthenticatedError("Token has expired")
    except JWTError as e:
        logger.warning(f"JWT validation failed: {e}")
        raise NotAuthenticatedError()

    subject = payload.get("sub")
    try:
        user_id = UUID(str(subject))
    except ValueError:
        logger.warning(f"Token subject is not a UUID: {subject}")
        raise NotAuthenticatedError()

    return AuthUser(id=user_id, email=payload.get("email"))


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> AuthUser:
    """
    The signed-in user, from the Authorization: Bearer header.

    Usage:
        @router.get("/orders/{order_id}")
        async def get_order(order_id: str, user: AuthUser = Depends(get_current_user)):
            ...
    """
    if credentials is None or not credentials.credentials:
        raise NotAuthenticatedError()
    return decode_token(credentials.credentials)


async def get_current_user_optional(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[AuthUser]:
    """Like get_current_user, but None instead of 401."""
    if credentials is None:
        return None
    try:
        return decode_token(credentials.credentials)
    except NotAuthenticatedError:
        return None
