"""JSON error bodies shared by every blueprint.

Each body is ``{"error": <message>, "code": <ERR_*>}`` plus an optional
``details`` object, so clients can branch on ``code`` without parsing text::

    return api_error(E.CONFLICT_STATE, "Report is being edited", details={"phase": "editing"})
"""

from __future__ import annotations

from flask import jsonify


class E:
    """Error codes returned in the ``code`` field."""

    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    UNSUPPORTED_FORMAT = "ERR_UNSUPPORTED_FORMAT"
    EXTRACTION_FAILED = "ERR_EXTRACTION_FAILED"

    UNAUTHENTICATED = "ERR_UNAUTHENTICATED"
    FORBIDDEN = "ERR_FORBIDDEN"

    NOT_FOUND = "ERR_NOT_FOUND"
    UNREGISTERED_USER = "ERR_UNREGISTERED_USER"

    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    CONFLICT_STATE = "ERR_CONFLICT_STATE"
    LAST_ADMIN = "ERR_LAST_ADMIN"

    STORE_UNAVAILABLE = "ERR_STORE_UNAVAILABLE"
    INTERNAL = "ERR_INTERNAL"


_STATUS_BY_CODE = {
    code: status
    for status, codes in (
        (400, (E.VALIDATION_INVALID, E.UNSUPPORTED_FORMAT)),
        (401, (E.UNAUTHENTICATED,)),
        (403, (E.FORBIDDEN,)),
        (404, (E.NOT_FOUND, E.UNREGISTERED_USER)),
        (409, (E.CONFLICT_DUPLICATE, E.CONFLICT_STATE, E.LAST_ADMIN)),
        (422, (E.EXTRACTION_FAILED,)),
        (500, (E.INTERNAL,)),
        (503, (E.STORE_UNAVAILABLE,)),
    )
    for code in codes
}


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """(response, status) for a Flask view; ``status`` overrides the code's usual status."""
    body = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or _STATUS_BY_CODE.get(code, 400)
