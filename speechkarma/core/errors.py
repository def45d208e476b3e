"""
Statement Engine Errors

Every failure the engine reports to its caller is one of these.

- ValidationError: one violated input constraint, named by field
- AuthenticationRequired: a write path was called without an identity
- NotFound: missing politician, missing statement, or tombstoned statement
- Forbidden: ownership violation, grace period expiry, deleted record
- InternalError: store or other infrastructure failure

Augmentation failures never appear here. They are absorbed inside the
engine and creation proceeds with the original text.
"""

from typing import Any, Optional


class StatementError(Exception):
    """Base exception for statement engine errors."""

    code = "STATEMENT_ERROR"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(StatementError):
    """Raised when a single input field violates its constraint."""

    code = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str, value: Any = None):
        details: dict[str, Any] = {"field": field, "reason": reason}
        if value is not None:
            details["value"] = value
        super().__init__(f"Invalid {field}: {reason}", details)
        self.field = field
        self.reason = reason


class AuthenticationRequired(StatementError):
    """Raised when a write operation has no caller identity."""

    code = "AUTHENTICATION_REQUIRED"

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class NotFound(StatementError):
    """Raised when a referenced record does not exist or is not visible."""

    code = "NOT_FOUND"

    def __init__(self, resource: str, resource_id: Any = None):
        details: dict[str, Any] = {"resource": resource}
        if resource_id is not None:
            details["id"] = str(resource_id)
        super().__init__(f"{resource.capitalize()} not found", details)
        self.resource = resource


class Forbidden(StatementError):
    """
    Raised when the caller may not mutate the record.

    `reason` is one of: "deleted", "not owner", "grace period expired",
    "already deleted".
    """

    code = "FORBIDDEN"

    def __init__(self, reason: str):
        super().__init__(f"Forbidden: {reason}", {"reason": reason})
        self.reason = reason


class InternalError(StatementError):
    """Raised when infrastructure fails for reasons unrelated to business rules."""

    code = "INTERNAL_ERROR"
