"""
Platform-wide exception hierarchy.

Services raise these types; blueprints register handlers against them
once and get consistent HTTP status codes everywhere.

Usage:
    from aigov.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="UseCase", resource_id=42)
    raise ValidationError("title is required", details={"title": "required"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "UseCase").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
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
    """Raised when input fails business-rule validation in the service layer.

    Distinct from HTTP 400 (malformed input, caught in blueprint) — this
    exception signals that the data was well-formed but violated a business
    rule (e.g. score out of range, unknown t-shirt size).

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class GovernanceBlockedError(Exception):
    """Raised when a status change into an activation status is blocked.

    ``payload`` is the caller-facing body built by
    ``build_activation_blocked_response`` (gates, missing fields, progress).

    Maps to HTTP 403.
    """

    def __init__(self, message: str, payload: dict | None = None) -> None:
        self.payload = payload or {}
        super().__init__(message)


class PhaseTransitionJustificationRequired(Exception):
    """Raised when a phase move has unmet exit requirements and no justification.

    Maps to HTTP 400. ``payload`` lists the pending exit requirements.
    """

    def __init__(self, message: str, payload: dict | None = None) -> None:
        self.payload = payload or {}
        super().__init__(message)
