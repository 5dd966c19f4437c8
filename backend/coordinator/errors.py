"""Typed errors for the coordination layer.

Claim conflicts and unknown tasks or commands are not errors: services return
False or None for those and callers branch on the result.
"""

from fastapi import HTTPException


class CoordinatorError(Exception):
    """Base class for coordination layer errors."""


class ValidationError(CoordinatorError):
    """Raised when a request is missing a required field or carries a bad value."""

    def __init__(self, detail: str, field: str | None = None):
        super().__init__(detail)
        self.detail = detail
        self.field = field


class StoreUnavailable(CoordinatorError):
    """Raised when a backing store cannot be reached."""


class AuthError(HTTPException):
    """Raised when the caller's credential is missing or not on the allow-list."""

    def __init__(self, detail: str = "Unauthorized"):
        super().__init__(
            status_code=401,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )
