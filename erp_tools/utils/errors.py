"""JSON error responses for the workflow API.

    from erp_tools.utils.errors import api_error, E

    return api_error(E.VALIDATION_REQUIRED, "actor is required")
    return api_error(E.CONFLICT_STATE, str(exc), details={"current_status": "approved"})

Body shape: ``{"error": <message>, "code": <E.*>, "details": {...}?}``.
"""

from __future__ import annotations

from flask import jsonify


class E:
    """Machine-readable error codes."""

    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"   # missing request field / actor
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"     # bad field values, unknown fields
    VALIDATION_STATUS = "ERR_VALIDATION_STATUS"       # status not known to the module
    NOT_FOUND = "ERR_NOT_FOUND"
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"     # unique value or held container lock
    CONFLICT_STATE = "ERR_CONFLICT_STATE"             # transition not allowed from current status
    CONFLICT_CONCURRENT = "ERR_CONFLICT_CONCURRENT"   # expected_status / row version mismatch
    FORBIDDEN = "ERR_FORBIDDEN"
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"


HTTP_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 422,
    E.VALIDATION_STATUS: 422,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.CONFLICT_STATE: 409,
    E.CONFLICT_CONCURRENT: 409,
    E.FORBIDDEN: 403,
    E.DATABASE: 500,
    E.INTERNAL: 500,
}


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """Return ``(response, http_status)`` for a Flask view.

    *status* overrides the code's default from ``HTTP_STATUS`` (400 when the
    code is not listed).
    """
    body: dict = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or HTTP_STATUS.get(code, 400)
