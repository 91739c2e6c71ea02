"""
Domain error taxonomy for the directory engine.

Services raise these; the HTTP layer translates them once in
``app.main`` into a JSON error body with the matching status code.

4xx errors are caller-correctable. ``StoreUnavailableError`` is the only
5xx error and signals that a retry with backoff may succeed.
"""
from typing import Any, Optional


class DirectoryError(Exception):
    """
    Base class for all directory errors.

    Attributes:
        error_code: Machine-readable error code.
        status_code: HTTP status the controller layer should use.
        message: Human-readable description.
        context: Structured details (field names, ids) for logs and clients.
    """
    error_code: str = "DIRECTORY_ERROR"
    status_code: int = 500

    def __init__(self, message: str, context: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"code": self.error_code, "message": self.message}
        if self.context:
            body["details"] = self.context
        return body


class ValidationError(DirectoryError):
    """Malformed input, uniqueness violation or weak password."""
    error_code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, field: str, reason: str, **extra: Any) -> None:
        self.field = field
        self.reason = reason
        super().__init__(f"Validation failed for '{field}': {reason}", {"field": field, "reason": reason, **extra})


class NotFoundError(DirectoryError):
    error_code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource_type: str, resource_id: str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(
            f"{resource_type} not found",
            {"resource_type": resource_type, "resource_id": str(resource_id)},
        )


class ConflictError(DirectoryError):
    """
    The operation conflicts with current state.

    Raised when a principal still has subordinates, or when a unique key
    race is lost at commit time. The caller resolves the conflict and retries.
    """
    error_code = "CONFLICT"
    status_code = 409

    def __init__(self, reason: str, **context: Any) -> None:
        self.reason = reason
        super().__init__(reason, context)


class UnauthorizedError(DirectoryError):
    """Credential mismatch or inactive account."""
    error_code = "UNAUTHORIZED"
    status_code = 401

    def __init__(self, message: str = "Invalid email or password") -> None:
        super().__init__(message)


class ForbiddenError(DirectoryError):
    """The acting principal is not allowed to perform the mutation."""
    error_code = "FORBIDDEN"
    status_code = 403

    def __init__(self, reason: str, **context: Any) -> None:
        self.reason = reason
        super().__init__(reason, context)


class StoreUnavailableError(DirectoryError):
    """The backing store could not be reached or failed mid-operation."""
    error_code = "STORE_UNAVAILABLE"
    status_code = 503

    def __init__(self, message: str = "Directory store unavailable") -> None:
        super().__init__(message)
