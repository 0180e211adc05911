"""
Custom exception classes and error handling.

Provides consistent error responses across the API. Service-layer errors
subclass APIException so routers can let them propagate unchanged.
"""
from fastapi import HTTPException, status
from typing import Optional, Dict, Any


class APIException(HTTPException):
    """Base API exception with consistent structure."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code


class NotFoundError(APIException):
    """Resource not found."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource} not found: {identifier}",
            error_code="NOT_FOUND"
        )


class ProfileNotFoundError(NotFoundError):
    """No profile row exists for the acting user."""

    def __init__(self, user_id: Any):
        super().__init__("Profile", str(user_id))
        self.error_code = "PROFILE_NOT_FOUND"
        self.user_id = user_id


class ValidationError(APIException):
    """Validation error."""

    def __init__(self, detail: str, field: Optional[str] = None):
        error_code = f"VALIDATION_ERROR_{field.upper()}" if field else "VALIDATION_ERROR"
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail,
            error_code=error_code
        )


class UnauthorizedError(APIException):
    """Authentication required."""

    def __init__(self, detail: str = "Authentication required"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            error_code="UNAUTHORIZED",
            headers={"WWW-Authenticate": "Bearer"}
        )


class PersistenceError(APIException):
    """A read or write against the database could not be completed."""

    def __init__(self, operation: str, detail: Optional[str] = None):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=detail or f"Could not complete {operation}. Please try again.",
            error_code="PERSISTENCE_ERROR"
        )
        self.operation = operation


class ProviderError(APIException):
    """Suggestion provider unreachable or returned unusable output."""

    reason = "provider_error"

    def __init__(self, detail: str, status_code: int = status.HTTP_502_BAD_GATEWAY):
        super().__init__(
            status_code=status_code,
            detail=detail,
            error_code="PROVIDER_ERROR"
        )


class RateLimitedError(ProviderError):
    """Provider rejected the call with 429."""

    reason = "rate_limited"

    def __init__(self, detail: str = "Rate limits exceeded, please try again later."):
        super().__init__(detail, status_code=status.HTTP_429_TOO_MANY_REQUESTS)
        self.error_code = "PROVIDER_RATE_LIMITED"


class QuotaExceededError(ProviderError):
    """Provider rejected the call with 402 (credits exhausted)."""

    reason = "quota_exceeded"

    def __init__(self, detail: str = "Payment required, please add funds."):
        super().__init__(detail, status_code=status.HTTP_402_PAYMENT_REQUIRED)
        self.error_code = "PROVIDER_QUOTA_EXCEEDED"
