"""
Application exception hierarchy.

Services raise these; app/__init__.py registers one error handler per type
that renders ``{"error": <message>, "code": ...}`` through
app.utils.errors.api_error. Blueprints therefore stay free of try/except
for the common not-found / bad-input / forbidden cases.

Usage:
    from app.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError("Initiative", initiative_id)
    raise ValidationError("Title and quarter are required")
"""


class NotFoundError(Exception):
    """Raised when a requested record does not exist.

    The HTTP message is "<resource> not found"; the id is kept on the
    exception for logging.

    Args:
        resource: Human-readable entity name (e.g. "Goal", "Team member").
        resource_id: The key that was looked up.
        message: Optional override of the default message.
    """

    def __init__(self, resource: str, resource_id=None, message: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(message or f"{resource} not found")


class ValidationError(Exception):
    """Raised when input fails a business rule. Maps to HTTP 400.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown.
        extra: Optional top-level keys added to the error body.
    """

    def __init__(self, message: str, details: dict | None = None, extra: dict | None = None) -> None:
        self.details = details or {}
        self.extra = extra or {}
        super().__init__(message)


class ForbiddenError(Exception):
    """Raised when the authenticated user may not act on a record. Maps to HTTP 403."""


class AuthenticationError(Exception):
    """Raised when credentials are missing or wrong. Maps to HTTP 401."""


class UpstreamError(Exception):
    """Raised when an external source (iCal feed, OCR engine) fails. Maps to HTTP 502."""
