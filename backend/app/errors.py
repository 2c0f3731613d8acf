# backend/app/errors.py

from typing import Any, Dict, Optional

# Legacy text signals for authentication failures. Only used when a
# collaborator does not report a typed auth flag or a 401 status.
AUTH_FAILURE_MARKERS = ("401", "Unauthorized", "Invalid token", "AUTH_INVALID_CREDENTIALS")

AUTH_FAILED_MESSAGE = (
    "Authentication failed. Please ensure you are logged in or ACCESS_API_KEY "
    "is configured in the scoring service environment."
)


def looks_like_auth_failure(message: Optional[str]) -> bool:
    """Compatibility check for collaborators that only report error text."""
    if not message:
        return False
    return any(marker in message for marker in AUTH_FAILURE_MARKERS)


class ScoreError(Exception):
    """
    Base class for failures the handler turns into a JSON error response.

    `extra` carries diagnostic fields (hint, raw previews, ...) that are
    merged into the response body next to error/details/type.
    """

    status_code = 500
    error_type = "InternalError"

    def __init__(
        self,
        message: str,
        details: Any = None,
        status_code: Optional[int] = None,
        extra: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details
        if status_code is not None:
            self.status_code = status_code
        self.extra = extra or {}

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        body["type"] = self.error_type
        body.update(self.extra)
        return body


class ValidationError(ScoreError):
    status_code = 400
    error_type = "VALIDATION_ERROR"


class AuthError(ScoreError):
    status_code = 401
    error_type = "AUTH_ERROR"


class UpstreamError(ScoreError):
    error_type = "UPSTREAM_ERROR"

    def __init__(self, message: str, details: Any = None, status_code: Optional[int] = None,
                 extra: Optional[Dict[str, Any]] = None, error_type: Optional[str] = None):
        if status_code is not None and not 400 <= status_code < 600:
            status_code = 500
        super().__init__(message, details=details, status_code=status_code, extra=extra)
        if error_type:
            self.error_type = error_type


class ParseError(ScoreError):
    error_type = "PARSE_ERROR"


class SchemaError(ScoreError):
    error_type = "SCHEMA_ERROR"


def classify_unexpected(exc: BaseException) -> ScoreError:
    """Map an exception nobody handled into an auth failure or a generic 500."""
    message = str(exc) or "Internal server error"
    if looks_like_auth_failure(message):
        return AuthError(AUTH_FAILED_MESSAGE, details=message)
    error = ScoreError(message, details=repr(exc))
    error.error_type = type(exc).__name__
    return error
