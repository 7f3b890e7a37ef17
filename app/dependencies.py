# =============================================================================
# app/dependencies.py - Shared Dependencies
# =============================================================================
# FastAPI dependencies shared by the routers, injected with Depends().
# =============================================================================

from typing import Annotated

from fastapi import Depends, Request

from app.auth import AuthUser, get_current_user
from lib.rate_limit import enforce_rate_limit, get_client_ip


def client_ip(request: Request) -> str:
    """Caller IP for rate limiting, proxy headers first."""
    peer = request.client.host if request.client else None
    return get_client_ip(request.headers, fallback=peer)


def api_rate_limit(
    user: AuthUser = Depends(get_current_user),
    ip: str = Depends(client_ip),
) -> AuthUser:
    """
    Signed-in user, after the general per-user API rate limit.

    Raises:
        RateLimitExceededError: Over 100 requests per minute
    """
    enforce_rate_limit("api", f"{user.id}:{ip}")
    return user


# Type aliases for route signatures
CurrentUser = Annotated[AuthUser, Depends(api_rate_limit)]
ClientIP = Annotated[str, Depends(client_ip)]
