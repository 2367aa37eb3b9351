"""
Application-wide exception hierarchy.

Services raise these; blueprints register handlers against them once
(see ``app.blueprints.register_error_handlers``) and get consistent HTTP
status codes everywhere.

Usage:
    from app.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Checklist", resource_id=checklist_id)
    raise ValidationError("Missing required fields", details={"missing": [...]})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Maps to HTTP 404.

    Args:
        resource: Human-readable entity name (e.g. "Checklist", "Client").
        resource_id: The key that was looked up.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" with ID {resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails validation in the service layer.

    Maps to HTTP 400.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would violate a uniqueness or lock rule.

    Maps to HTTP 409.

    Args:
        resource: Entity name.
        field: The unique field (or ``"lock"`` / ``"status"``) in conflict.
        value: The conflicting value.
        message: Optional override for the rendered message.
    """

    def __init__(
        self,
        resource: str,
        field: str,
        value: str | None = None,
        message: str | None = None,
    ) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = message or f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class AuthorizationError(Exception):
    """Raised when the caller's identity is missing or credentials are wrong.

    Maps to HTTP 401.
    """

    def __init__(self, message: str = "User not authenticated") -> None:
        super().__init__(message)


class ForbiddenError(Exception):
    """Raised when an authenticated caller may not perform the action.

    Maps to HTTP 403.
    """

    def __init__(self, message: str = "Forbidden") -> None:
        super().__init__(message)
