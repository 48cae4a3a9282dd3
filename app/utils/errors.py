"""Coded JSON error responses.

Every error body has the shape ``{"error": <message>, "code": <E.*>}`` plus an
optional ``details`` object:

    return api_error(E.VALIDATION_REQUIRED, "problem_statement is required")
    return api_error(E.INSUFFICIENT_BALANCE, "Insufficient token balance",
                     details={"required": 8, "available": 3})
"""

from __future__ import annotations

from flask import jsonify

from app.core.exceptions import (
    ConflictError,
    InsufficientBalanceError,
    NotFoundError,
    ValidationError,
)


class E:
    """Error codes. All start with ``ERR_``."""

    # 400: request is malformed
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # 422: request is well formed but breaks a marketplace rule
    BUSINESS_RULE = "ERR_BUSINESS_RULE"
    INSUFFICIENT_BALANCE = "ERR_INSUFFICIENT_BALANCE"

    NOT_FOUND = "ERR_NOT_FOUND"
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"

    RATE_LIMITED = "ERR_RATE_LIMITED"

    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"


_STATUS_BY_CODE: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.BUSINESS_RULE: 422,
    E.INSUFFICIENT_BALANCE: 422,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.RATE_LIMITED: 429,
    E.DATABASE: 500,
    E.INTERNAL: 500,
}

# Service exception -> (code, include exc.details in the body)
_SERVICE_ERRORS = (
    (NotFoundError, E.NOT_FOUND, False),
    (InsufficientBalanceError, E.INSUFFICIENT_BALANCE, True),
    (ValidationError, E.BUSINESS_RULE, True),
    (ConflictError, E.CONFLICT_DUPLICATE, False),
)


def api_error(code: str, message: str, *, status: int | None = None,
              details: dict | None = None):
    """Build ``(response, status)`` for a Flask view.

    ``status`` defaults to the code's usual HTTP status, or 400 for unknown codes.
    """
    body: dict = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or _STATUS_BY_CODE.get(code, 400)


def register_service_error_handlers(bp) -> None:
    """Turn service-layer exceptions raised inside ``bp`` views into coded responses."""
    for exc_class, code, with_details in _SERVICE_ERRORS:
        bp.register_error_handler(exc_class, _make_handler(code, with_details))


def _make_handler(code: str, with_details: bool):
    def handler(error):
        details = getattr(error, "details", None) if with_details else None
        return api_error(code, str(error), details=details)
    return handler
