"""Uniform JSON error bodies for the survey API.

Every error response has the shape ``{"error": <message>, "code": <E.*>}``
plus an optional ``details`` object. The survey modal shows ``error``
inline and keys its retry behaviour off ``code``.

    from sitepulse.utils.errors import api_error, E

    return api_error(E.VALIDATION_REQUIRED, "user_id is required")
    return api_error(E.SURVEY_GUARD, str(exc), details=exc.details)
"""

from __future__ import annotations

from flask import jsonify


class E:
    """Error codes returned in the ``code`` field."""

    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    SURVEY_GUARD = "ERR_SURVEY_GUARD"
    NOT_FOUND = "ERR_NOT_FOUND"
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    PREDICTION_UNAVAILABLE = "ERR_PREDICTION_UNAVAILABLE"
    INTERNAL = "ERR_INTERNAL"


# Codes not listed here fall back to 400.
STATUS_FOR_CODE: dict[str, int] = {
    E.SURVEY_GUARD: 422,           # answers parsed but a step guard rejected them
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,     # same-day survey already claimed
    E.PREDICTION_UNAVAILABLE: 502,
    E.INTERNAL: 500,
}


def api_error(code: str, message: str, *, status: int | None = None,
              details: dict | None = None):
    """Build ``(response, status)`` for a Flask view or error handler.

    ``status`` overrides the code's default; ``details`` is only included
    when non-empty (e.g. which task is missing a delay reason).
    """
    body: dict = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or STATUS_FOR_CODE.get(code, 400)
