# =============================================================================
# app/exceptions.py - Custom Exceptions and Handlers
# =============================================================================
# Centralized exception handling for the API.
# "Errors should tell HOW to fix, not just WHAT failed."
#
# Every workflow failure maps to one of a small set of classes:
#   401 not authenticated, 403 not authorized, 404 not found,
#   400 invalid input, 409 invalid transition, 429 rate limited,
#   502 payment provider failure, 500 database failure.
# =============================================================================

from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse


class CentaurException(Exception):
    """
    Base exception for the CentaurOS API.

    All custom exceptions inherit from this class.
    Provides structured error responses with actionable suggestions.
    """

    def __init__(
        self,
        message: str,
        code: str = "CENTAUROS_ERROR",
        status_code: int = 500,
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.suggestion = suggestion
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to API response dict."""
        result = {
            "detail": self.message,
            "code": self.code,
        }
        if self.suggestion:
            result["suggestion"] = self.suggestion
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# Access Exceptions
# =============================================================================

class NotAuthenticatedError(CentaurException):
    """Raised when a request has no valid user."""

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(
            message=message,
            code="NOT_AUTHENTICATED",
            status_code=401,
            suggestion="Sign in again and retry with a valid access token",
        )


class NotAuthorizedError(CentaurException):
    """Raised when the user is not a party allowed to perform the action."""

    def __init__(self, message: str = "Not authorized", details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            code="NOT_AUTHORIZED",
            status_code=403,
            details=details,
        )


class NotFoundError(CentaurException):
    """Raised when a referenced row doesn't exist."""

    def __init__(self, resource: str, resource_id: str | None = None):
        super().__init__(
            message=f"{resource} not found",
            code=f"{resource.upper().replace(' ', '_')}_NOT_FOUND",
            status_code=404,
            suggestion=f"Check that the {resource.lower()} id is correct",
            details={"id": resource_id} if resource_id else None,
        )


# =============================================================================
# Validation Exceptions
# =============================================================================

class InvalidInputError(CentaurException):
    """Raised when request values fail a business validation rule."""

    def __init__(
        self,
        message: str,
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            message=message,
            code="INVALID_INPUT",
            status_code=400,
            suggestion=suggestion,
            details=details,
        )


class InvalidTransitionError(CentaurException):
    """
    Raised when a status change isn't allowed from the current status.

    Also raised when a conditional update matched no row because another
    request changed the status first.
    """

    def __init__(
        self,
        message: str,
        current: str | None = None,
        requested: str | None = None,
    ):
        details = {}
        if current is not None:
            details["current_status"] = current
        if requested is not None:
            details["requested_status"] = requested
        super().__init__(
            message=message,
            code="INVALID_TRANSITION",
            status_code=409,
            suggestion="Refresh and check the current status before retrying",
            details=details,
        )


class RateLimitExceededError(CentaurException):
    """Raised when an action's fixed-window limit is exhausted."""

    def __init__(self, message: str, retry_after: int | None = None):
        super().__init__(
            message=message,
            code="RATE_LIMITED",
            status_code=429,
            suggestion="Wait for the current window to reset",
            details={"retry_after": retry_after} if retry_after is not None else None,
        )
        self.retry_after = retry_after


# =============================================================================
# Upstream Exceptions
# =============================================================================

class PaymentProviderError(CentaurException):
    """
    Raised when a Stripe call fails.

    The message must already be sanitized; raw provider errors are logged
    server-side only.
    """

    def __init__(self, message: str, operation: str | None = None):
        super().__init__(
            message=message,
            code="PAYMENT_PROVIDER_ERROR",
            status_code=502,
            suggestion="Try again later or contact support if the issue persists",
            details={"operation": operation} if operation else None,
        )


class DatabaseError(CentaurException):
    """Raised when a database write fails; the database message is passed through."""

    def __init__(self, message: str, operation: str | None = None):
        super().__init__(
            message=message,
            code="DATABASE_ERROR",
            status_code=500,
            details={"operation": operation} if operation else None,
        )


# =============================================================================
# Exception Handlers
# =============================================================================

async def centaur_exception_handler(
    request: Request,
    exc: CentaurException
) -> JSONResponse:
    """
    Convert CentaurException to JSON response.

    Returns structured error with:
    - detail: Human-readable message
    - code: Machine-readable error code
    - suggestion: How to fix (if available)
    - details: Additional context
    """
    headers = None
    if isinstance(exc, RateLimitExceededError) and exc.retry_after is not None:
        headers = {"Retry-After": str(exc.retry_after)}

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers=headers,
    )


async def validation_exception_handler(
    request: Request,
    exc: Exception
) -> JSONResponse:
    """
    Handle Pydantic validation errors.

    Converts validation errors to user-friendly messages.
    """
    return JSONResponse(
        status_code=422,
        content={
            "detail": "Validation error",
            "code": "VALIDATION_ERROR",
            "errors": str(exc)
        }
    )
