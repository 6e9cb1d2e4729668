"""Custom exception classes for the application"""

from typing import Optional, Any


class BaseAPIException(Exception):
    """Base exception for all API errors"""

    code = "INTERNAL_SERVER_ERROR"
    is_operational = True

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Any] = None,
        code: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        if code:
            self.code = code
        super().__init__(self.message)


# Request Errors
class ValidationError(BaseAPIException):
    """Validation error"""
    code = "VALIDATION_ERROR"

    def __init__(self, message: str = "Validation failed", details: Optional[Any] = None):
        super().__init__(message, status_code=422, details=details)


# Authentication Errors
class UnauthorizedError(BaseAPIException):
    """Base authentication error"""
    code = "UNAUTHORIZED"

    def __init__(self, message: str = "Unauthorized", code: Optional[str] = None):
        super().__init__(message, status_code=401, code=code)


class InvalidCredentialsError(UnauthorizedError):
    """Unknown email, inactive account or wrong password.

    All three causes share this message so callers cannot probe which
    accounts exist.
    """
    code = "INVALID_CREDENTIALS"

    def __init__(self):
        super().__init__("Invalid email or password")


class InvalidTokenError(UnauthorizedError):
    """Token failed signature, structure, type or expiry checks"""
    code = "INVALID_TOKEN"

    def __init__(self, message: str = "Invalid or expired token"):
        super().__init__(message)


# Resource Errors
class NotFoundError(BaseAPIException):
    """Resource not found"""
    code = "NOT_FOUND"

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, status_code=404)


class ConflictError(BaseAPIException):
    """Resource already exists"""
    code = "CONFLICT"

    def __init__(self, message: str = "Conflict"):
        super().__init__(message, status_code=409)


class RateLimitExceededError(BaseAPIException):
    """Rate limit exceeded"""
    code = "RATE_LIMIT_EXCEEDED"

    def __init__(
        self,
        message: str = "Too many requests from this IP, please try again later.",
        retry_after: Optional[int] = None,
    ):
        details = {"retry_after": retry_after} if retry_after is not None else None
        super().__init__(message, status_code=429, details=details)
