"""
Error Taxonomy

Every failure the engine surfaces carries a stable, machine-checkable
category plus a human-readable message:

- VALIDATION: malformed or missing input, rejected before any store access
- AUTHORIZATION: the record exists but belongs to someone else
- NOT_FOUND: no record/policy with the given identifier
- UPSTREAM: the store or a network dependency failed (caller may retry)
"""

from enum import Enum
from typing import Any, Optional


class ErrorCategory(str, Enum):
    """Stable error categories exposed to callers."""
    VALIDATION = "validation_error"
    AUTHORIZATION = "authorization_error"
    NOT_FOUND = "not_found"
    UPSTREAM = "upstream_error"


class ExpenseTrackerError(Exception):
    """Base exception for all engine-level failures."""

    category: ErrorCategory = ErrorCategory.UPSTREAM

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for API responses and audit details."""
        payload = {
            "error": self.category.value,
            "message": self.message,
        }
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(ExpenseTrackerError):
    """Input failed validation. Nothing was written."""

    category = ErrorCategory.VALIDATION

    def __init__(self, message: str, issues: Optional[list] = None):
        self.issues = issues or []
        details = {"issues": [issue.model_dump() for issue in self.issues]} if self.issues else None
        super().__init__(message, details)


class AuthorizationError(ExpenseTrackerError):
    """
    The requester does not own the record.

    The message is deliberately generic so it never reveals more than
    "access denied".
    """

    category = ErrorCategory.AUTHORIZATION

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)


class NotFoundError(ExpenseTrackerError):
    """Entity not found."""

    category = ErrorCategory.NOT_FOUND


class UpstreamError(ExpenseTrackerError):
    """A storage or network dependency failed."""

    category = ErrorCategory.UPSTREAM
