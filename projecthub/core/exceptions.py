"""
Platform-wide exception hierarchy.

Services raise these types. The app-level handlers in
``projecthub.utils.errors`` map each one to a single HTTP status and
error code, so blueprints never translate exceptions themselves.

Usage:
    from projecthub.core.exceptions import NotFoundError, InvalidStateError

    raise NotFoundError(resource="Task", resource_id=42)
    raise InvalidStateError("Issue must be in 'new' status to triage")
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "Project", "Task").
        resource_id: The PK that was looked up. Included in logs and message.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
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
    """Raised when an operation would duplicate a unique record.

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class PermissionDeniedError(Exception):
    """Raised when the caller lacks the role or capability for an action.

    Maps to HTTP 403. Nothing is written when this is raised.

    Args:
        user_id: The acting user.
        action: Action name, e.g. "triage" or "updateTasks".
        resource: Optional resource name the action targets.
    """

    def __init__(self, user_id, action: str, resource: str | None = None) -> None:
        self.user_id = user_id
        self.action = action
        self.resource = resource
        target = f" on {resource}" if resource else ""
        super().__init__(f"User {user_id} is not allowed to {action}{target}")


class InvalidStateError(Exception):
    """Raised when a state-machine precondition is not met.

    Maps to HTTP 400 with a machine-readable code (``INVALID_STATUS`` by
    default, ``ALREADY_LINKED`` for duplicate links).
    """

    def __init__(self, message: str, code: str = "INVALID_STATUS") -> None:
        self.code = code
        super().__init__(message)


class InfrastructureError(Exception):
    """Raised when the backing store fails (connection, timeout, lock).

    Maps to HTTP 500. The original driver exception is chained.
    """
