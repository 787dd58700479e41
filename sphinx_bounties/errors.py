"""
Error taxonomy for the authentication core.

Every operational failure is an ``AppError`` subclass carrying a stable error
code and HTTP status. The Flask error handler in ``factory`` renders them as
``{"error": code, "message": message}``.
"""

from typing import Any, Dict, Optional


class AppError(Exception):
    """Base class for errors that map onto an HTTP response."""

    code = "internal_error"
    status_code = 500
    default_message = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None, **details: Any):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message}


class ValidationError(AppError):
    code = "validation_error"
    status_code = 400
    default_message = "Invalid request parameters"


class NotFoundError(AppError):
    code = "not_found"
    status_code = 404
    default_message = "Resource not found"


class ExpiredError(AppError):
    code = "expired"
    status_code = 400
    default_message = "Challenge expired"


class UnauthorizedError(AppError):
    code = "unauthorized"
    status_code = 401
    default_message = "Authentication required"


class InvalidSignatureError(UnauthorizedError):
    code = "invalid_signature"
    default_message = "Invalid signature"


class ForbiddenError(AppError):
    code = "forbidden"
    status_code = 403
    default_message = "Access denied"


class ConflictError(AppError):
    code = "conflict"
    status_code = 409
    default_message = "Challenge already used"


class InternalError(AppError):
    """Storage or crypto infrastructure failure."""


__all__ = [
    "AppError",
    "ConflictError",
    "ExpiredError",
    "ForbiddenError",
    "InternalError",
    "InvalidSignatureError",
    "NotFoundError",
    "UnauthorizedError",
    "ValidationError",
]
