"""
Platform-wide exception hierarchy.

Services raise these; blueprints register handlers against them once and get
consistent HTTP status codes everywhere.  Scheduled jobs catch them per item
and log.

Usage:
    from app.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="ProblemSubmission", resource_id=42)
    raise ValidationError("Invitation can no longer be answered",
                          details={"status": "expired"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist, or is not owned by the caller.

    Maps to HTTP 404.  Ownership mismatches (e.g. a consultant answering
    someone else's invitation) are reported as not-found too, so the response
    never confirms that the row exists.

    Args:
        resource: Human-readable model name (e.g. "ConsultantInvitation").
        resource_id: The PK that was looked up.
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
    """Raised when well-formed input violates a business rule.

    Invalid state transitions, surge invitations to consultants that did not
    opt in, submitting an expired draft.  Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class InsufficientBalanceError(ValidationError):
    """Raised when a debit would take a user's token balance below zero."""

    def __init__(self, user_id: int, required: int, available: int | None = None) -> None:
        self.user_id = user_id
        self.required = required
        self.available = available
        super().__init__(
            "Insufficient token balance",
            details={"required": required, "available": available},
        )


class ConflictError(Exception):
    """Raised when an operation would violate a uniqueness rule.

    Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)
