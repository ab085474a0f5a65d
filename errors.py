"""
Error taxonomy. Every error maps to exactly one HTTP status; main.py renders
them into the response envelope.
"""
from typing import Dict, List, Optional


class AppError(Exception):
    status_code = 500
    message = "Server error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        if message:
            self.message = message


class DuplicateEmail(AppError):
    status_code = 400
    message = "User already exists with this email"


class InvalidCredentials(AppError):
    status_code = 401
    message = "Invalid credentials"


class Unauthenticated(AppError):
    status_code = 401
    message = "Not authorized to access this route"


class TokenInvalid(Unauthenticated):
    message = "Invalid token"


class TokenExpired(Unauthenticated):
    message = "Token expired"


class Forbidden(AppError):
    status_code = 403
    message = "Not authorized to perform this action"


class NotFound(AppError):
    status_code = 404
    message = "Resource not found"


class ValidationFailed(AppError):
    status_code = 400
    message = "Validation failed"

    def __init__(self, errors: List[Dict[str, str]], message: Optional[str] = None):
        super().__init__(message)
        self.errors = errors


class ServiceUnavailable(AppError):
    """Storage did not answer in time; the caller may retry."""

    status_code = 503
    message = "Database temporarily unavailable, please retry"
