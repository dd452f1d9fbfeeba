"""
Shared error handling for the Storefront services.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response format."""

    success: bool = False
    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class StorefrontException(Exception):
    """Base exception for Storefront services."""

    status_code = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self, request_id: Optional[str] = None) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class AuthenticationError(StorefrontException):
    """Authentication-related errors."""

    status_code = 401

    def __init__(self, message: str = "Authentication failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHENTICATION_ERROR", message, details)


class AuthorizationError(StorefrontException):
    """Authorization-related errors."""

    status_code = 403

    def __init__(self, message: str = "Authorization failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHORIZATION_ERROR", message, details)


class ValidationError(StorefrontException):
    """Validation-related errors."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class NotFoundError(StorefrontException):
    """Requested resource does not exist."""

    status_code = 404

    def __init__(self, message: str = "Resource not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", message, details)


class ConflictError(StorefrontException):
    """Request conflicts with current resource state."""

    status_code = 409

    def __init__(self, message: str = "Conflict", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFLICT", message, details)


class InvalidCachePatternError(ValidationError):
    """Cache invalidation pattern is not a valid regular expression."""

    def __init__(self, pattern: str, reason: str):
        super().__init__(
            f"Invalid cache pattern: {reason}",
            details={"pattern": pattern, "reason": reason}
        )
