"""
Library-wide exception hierarchy.

Services raise these types and never stringify them; the blueprint registers
one handler per type and maps it to an HTTP status.

Usage:
    from app.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="LibraryTestCase", resource_id=42)
    raise ValidationError("title is required", details={"title": "required"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable entity name (e.g. "LibraryTestCase", "Version").
        resource_id: The key that was looked up.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input violates a business rule in the service layer.

    Covers empty required text, unknown enum values, self-dependencies and
    dependency cycles. Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown. Keys are field names.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would break a uniqueness or state invariant.

    Duplicate edges, duplicate bookmarks, re-reviewing a terminal suggestion
    and lost version races all land here. Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The field (or state) in conflict.
        value: The conflicting value.
        message: Optional override for the default message.
    """

    def __init__(
        self,
        resource: str,
        field: str,
        value: str | int | None = None,
        message: str | None = None,
    ) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = message or f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class ForbiddenError(Exception):
    """Raised when the caller's pre-resolved capability does not allow the action.

    The core never computes roles; callers pass booleans such as
    ``can_moderate`` and this error signals that the decision was negative.
    Maps to HTTP 403.
    """

    def __init__(self, message: str = "Permission denied") -> None:
        super().__init__(message)
