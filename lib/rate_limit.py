# =============================================================================
# lib/rate_limit.py - Fixed-Window Rate Limiting
# =============================================================================
# Simple fixed-window counters keyed by action + identifier.
#
# Two stores:
# - memory:   per-process limits MemoryStorage (development, tests,
#             single instance)
# - supabase: the check_rate_limit Postgres function, shared by all
#             instances. Any RPC failure falls back to the memory store.
#
# Usage:
#   from lib.rate_limit import enforce_rate_limit
#   enforce_rate_limit("refund", f"{user_id}:{client_ip}",
#                      message="Too many refund requests. Please try again later.")
# =============================================================================

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from limits import RateLimitItem, RateLimitItemPerSecond
from limits.storage import MemoryStorage
from limits.strategies import FixedWindowRateLimiter

from app.config import settings
from app.exceptions import RateLimitExceededError
from lib.supabase_client import SupabaseClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitConfig:
    """Requests allowed per window."""
    limit: int
    window_seconds: int


@dataclass
class RateLimitResult:
    """Outcome of one rate limit check."""
    success: bool
    remaining: int
    reset_at: float
    error: str | None = None

    @property
    def retry_after(self) -> int:
        """Seconds until the window resets (never negative)."""
        return max(0, math.ceil(self.reset_at - time.time()))


# =============================================================================
# Default Limits
# =============================================================================

RATE_LIMIT_CONFIGS: dict[str, RateLimitConfig] = {
    # Authentication
    "login": RateLimitConfig(limit=5, window_seconds=15 * 60),
    "signup": RateLimitConfig(limit=3, window_seconds=60 * 60),
    "password_reset": RateLimitConfig(limit=3, window_seconds=60 * 60),

    # Invitations
    "invitation": RateLimitConfig(limit=10, window_seconds=60 * 60),
    "invitation_token": RateLimitConfig(limit=20, window_seconds=60),

    # Payments
    "payment": RateLimitConfig(limit=10, window_seconds=60),
    "refund": RateLimitConfig(limit=5, window_seconds=60),

    # General
    "api": RateLimitConfig(limit=100, window_seconds=60),
    "upload": RateLimitConfig(limit=20, window_seconds=60),
    "health": RateLimitConfig(limit=60, window_seconds=60),
}


# =============================================================================
# In-Memory Store
# =============================================================================

# MemoryStorage evicts expired windows.
_storage = MemoryStorage()
_limiter = FixedWindowRateLimiter(_storage)


def _limit_item(config: RateLimitConfig) -> RateLimitItem:
    return RateLimitItemPerSecond(config.limit, config.window_seconds)


def _memory_rate_limit(action: str, identifier: str, config: RateLimitConfig) -> RateLimitResult:
    item = _limit_item(config)
    allowed = _limiter.hit(item, action, identifier)
    stats = _limiter.get_window_stats(item, action, identifier)
    reset_at = float(stats.reset_time)

    if not allowed:
        return RateLimitResult(
            success=False,
            remaining=0,
            reset_at=reset_at,
            error=f"Rate limit exceeded. Try again in {max(0, math.ceil(reset_at - time.time()))} seconds.",
        )

    return RateLimitResult(success=True, remaining=stats.remaining, reset_at=reset_at)


def _supabase_rate_limit(action: str, identifier: str, config: RateLimitConfig) -> RateLimitResult:
    """Count through the shared check_rate_limit RPC, falling back to memory."""
    now = datetime.now(timezone.utc)
    window_start = now - timedelta(seconds=config.window_seconds)

    try:
        data = SupabaseClient.rpc("check_rate_limit", {
            "p_key": f"{action}:{identifier}",
            "p_limit": config.limit,
            "p_window_start": window_start.isoformat(),
            "p_now": now.isoformat(),
        })
    except Exception as e:
        logger.warning(f"Rate limit RPC failed, falling back to in-memory: {e}")
        return _memory_rate_limit(action, identifier, config)

    if not isinstance(data, dict) or "allowed" not in data:
        logger.warning(f"Unexpected rate limit RPC response, falling back to in-memory: {data!r}")
        return _memory_rate_limit(action, identifier, config)

    if not data["allowed"]:
        reset_at = time.time() + config.window_seconds
        reset = data.get("reset_at")
        if reset:
            try:
                reset_at = datetime.fromisoformat(str(reset).replace("Z", "+00:00")).timestamp()
            except ValueError:
                pass
        seconds = max(0, math.ceil(reset_at - time.time()))
        return RateLimitResult(
            success=False,
            remaining=0,
            reset_at=reset_at,
            error=f"Rate limit exceeded. Try again in {seconds} seconds.",
        )

    return RateLimitResult(
        success=True,
        remaining=max(0, config.limit - int(data.get("count", 0))),
        reset_at=time.time() + config.window_seconds,
    )


# =============================================================================
# Public API
# =============================================================================

def get_config(action: str, limit: int | None = None, window_seconds: int | None = None) -> RateLimitConfig:
    """Defaults for an action (unknown actions use "api"), with overrides applied."""
    base = RATE_LIMIT_CONFIGS.get(action, RATE_LIMIT_CONFIGS["api"])
    return RateLimitConfig(
        limit=limit if limit is not None else base.limit,
        window_seconds=window_seconds if window_seconds is not None else base.window_seconds,
    )


def rate_limit(
    action: str,
    identifier: str,
    limit: int | None = None,
    window_seconds: int | None = None,
) -> RateLimitResult:
    """
    Check and count one request against a fixed window.

    Args:
        action: Action name, e.g. "refund" (selects the default limits)
        identifier: Who is being limited, usually "user_id:ip"
        limit: Override the action's request limit
        window_seconds: Override the action's window length

    Returns:
        RateLimitResult with success, remaining and reset time
    """
    config = get_config(action, limit, window_seconds)

    if settings.RATE_LIMIT_BACKEND == "supabase":
        result = _supabase_rate_limit(action, identifier, config)
    else:
        result = _memory_rate_limit(action, identifier, config)

    if not result.success:
        logger.info(f"Rate limit hit: action={action} identifier={identifier}")
    return result


def enforce_rate_limit(
    action: str,
    identifier: str,
    message: str | None = None,
    limit: int | None = None,
    window_seconds: int | None = None,
) -> RateLimitResult:
    """
    Like rate_limit(), but raises when the window is exhausted.

    Raises:
        RateLimitExceededError: With `message` if given, else the limiter's message
    """
    result = rate_limit(action, identifier, limit=limit, window_seconds=window_seconds)
    if not result.success:
        raise RateLimitExceededError(
            message or result.error or "Rate limit exceeded",
            retry_after=result.retry_after,
        )
    return result


def reset_rate_limit(action: str, identifier: str) -> None:
    """Forget the in-memory counter for an action + identifier (default limits)."""
    _limiter.clear(_limit_item(get_config(action)), action, identifier)


def clear_rate_limits() -> None:
    """Drop every in-memory counter."""
    _storage.reset()


def get_client_ip(headers, fallback: str | None = None) -> str:
    """
    Resolve the caller's IP from proxy headers.

    Checks, in order: x-forwarded-for (first hop), x-vercel-forwarded-for,
    cf-connecting-ip, x-real-ip. Uses `fallback` (the socket peer) when no
    header is present, else "unknown".
    """
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()

    vercel_ip = headers.get("x-vercel-forwarded-for")
    if vercel_ip:
        return vercel_ip.split(",")[0].strip()

    for header in ("cf-connecting-ip", "x-real-ip"):
        value = headers.get(header)
        if value:
            return value.strip()

    return fallback or "unknown"
