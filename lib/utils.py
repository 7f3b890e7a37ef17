# =============================================================================
# lib/utils.py - Shared Utilities
# =============================================================================
# Common utilities used across the application:
# - UUID normalization and validation
# - UTC timestamps
# - Vendor error sanitization (keeps secrets out of API responses)
# - Base error class for library-level failures
# =============================================================================

import re
from datetime import date, datetime, timezone
from typing import Any
from uuid import UUID


# =============================================================================
# UUID Utilities
# =============================================================================

def normalize_uuid(value: str | UUID) -> str:
    """
    Normalize a UUID to string format.

    Handles both string and UUID objects, ensuring consistent string output.

    Args:
        value: UUID as string or UUID object

    Returns:
        String representation of the UUID

    Example:
        order_id = normalize_uuid(uuid_obj)  # "550e8400-..."
        order_id = normalize_uuid("550e8400-...")  # "550e8400-..."
    """
    return str(value) if isinstance(value, UUID) else value


def is_valid_uuid(value: Any) -> bool:
    """Check whether a value parses as a UUID."""
    if isinstance(value, UUID):
        return True
    try:
        UUID(str(value))
        return True
    except (ValueError, TypeError):
        return False


# =============================================================================
# Time Utilities
# =============================================================================

def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_date(value: str | date | datetime) -> date:
    """
    Coerce an ISO string, date or datetime to a date.

    Example:
        to_date("2025-01-01")  # date(2025, 1, 1)
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def parse_timestamp(value: str | datetime | None) -> datetime | None:
    """Parse a Postgres/ISO timestamp string into an aware datetime."""
    if value is None or isinstance(value, datetime):
        return value
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# =============================================================================
# Error Sanitization
# =============================================================================

_SENSITIVE_PATTERNS = [
    (re.compile(r"\b(sk|pk|rk)_(live|test)_[A-Za-z0-9]+"), "[redacted-key]"),
    (re.compile(r"\b(acct|pi|ch|tr|re|cus|src|pm|seti)_[A-Za-z0-9]{6,}"), "[redacted-id]"),
    (re.compile(r"whsec_[A-Za-z0-9]+"), "[redacted-secret]"),
    (re.compile(r"Bearer\s+[A-Za-z0-9\-._~+/]+=*", re.IGNORECASE), "Bearer [redacted]"),
    (re.compile(r"[\w.+-]+@[\w-]+\.[\w.-]+"), "[redacted-email]"),
]


def sanitize_error_message(error: Any, fallback: str = "An unexpected error occurred") -> str:
    """
    Strip secrets and identifiers from an error before showing it to a client.

    Payment provider errors can echo API keys, account ids and customer
    emails. Everything matching a known pattern is replaced.

    Args:
        error: Exception or message
        fallback: Returned when the message is empty after sanitizing

    Returns:
        A client-safe error string
    """
    message = str(error or "").strip()
    for pattern, replacement in _SENSITIVE_PATTERNS:
        message = pattern.sub(replacement, message)
    if len(message) > 200:
        message = message[:200] + "..."
    return message or fallback
