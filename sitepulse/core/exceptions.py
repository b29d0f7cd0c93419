"""
SitePulse exception hierarchy.

Services raise these types; blueprints register one handler per type and
map them to consistent HTTP status codes. Callers never import exception
classes from service modules.

Usage:
    from sitepulse.core.exceptions import ValidationError, PredictionServiceError

    raise ValidationError("Site status is required", details={"site_status": "required"})
    raise PredictionServiceError("deadline-exceeded", status_code=504)
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable entity name (e.g. "SurveyTrackingRecord").
        resource_id: The key that was looked up. Included in logs.
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
    """Raised when input fails a business rule in the service layer.

    Distinct from HTTP 400 (malformed input, caught in the blueprint): the
    data was well-formed but a survey guard rejected it, e.g. a delayed task
    without a delay reason.

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown. Keys are field names (or
                 ``task_updates.<task_id>``); values are error descriptions.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class InvalidTransitionError(ValidationError):
    """Raised when a survey operation is not allowed in the current step.

    Maps to HTTP 422 like any other ValidationError.
    """

    def __init__(self, current_step: str, action: str) -> None:
        self.current_step = current_step
        self.action = action
        super().__init__(
            f"Cannot {action} while the survey is in step '{current_step}'",
            details={"step": current_step},
        )


class ConflictError(Exception):
    """Raised when an operation would duplicate a unique record.

    Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The unique field (or field combination) that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class PredictionServiceError(Exception):
    """Raised when the remote delay-prediction boundary rejects or fails a call.

    The message is the boundary's own error text, passed through unchanged
    so the UI can show it and offer a retry.

    Maps to HTTP 502.

    Args:
        message: Error text reported by the boundary (or the transport).
        status_code: HTTP status of the failed call, None on network failure.
        function: Name of the remote function that failed.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        function: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.function = function
        super().__init__(message)
