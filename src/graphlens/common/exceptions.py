"""Custom exceptions for GraphLens.

Every storage adapter translates driver failures into this hierarchy at
its boundary. Each class carries an HTTP status code and a stable error
code for structured API responses.
"""

from typing import Any


class GraphLensError(Exception):
    """Base exception for all GraphLens errors."""

    status_code: int = 500
    error_code: str = "INTERNAL_ERROR"
    message: str = "An internal error occurred"

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize exception with optional details.

        Args:
            message: Human-readable error message.
            details: Additional error details for debugging.
            cause: Original exception that caused this error.
        """
        self.message = message or self.message
        self.details = details or {}
        self.cause = cause
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API response."""
        result = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# 400 Bad Request errors
class InvalidArgumentError(GraphLensError):
    """Input has the wrong shape or an illegal value."""

    status_code = 400
    error_code = "INVALID_ARGUMENT"
    message = "Invalid argument"


class EmptyGraphError(InvalidArgumentError):
    """Graph creation without any node."""

    error_code = "EMPTY_GRAPH"
    message = "A graph needs at least one node"


class InvalidDatabaseNameError(InvalidArgumentError):
    """Database name contains illegal characters."""

    error_code = "INVALID_DATABASE_NAME"
    message = "Database name can only contain letters, numbers, and underscores"


class UnknownBackendError(InvalidArgumentError):
    """Backend identifier is not registered."""

    error_code = "UNKNOWN_BACKEND"
    message = "Unknown backend"


# 403 Forbidden errors
class PermissionDeniedError(GraphLensError):
    """Operation refused on a protected resource."""

    status_code = 403
    error_code = "PERMISSION_DENIED"
    message = "Operation not permitted"


class ProtectedDatabaseError(PermissionDeniedError):
    """Attempt to delete a default or system database."""

    error_code = "PROTECTED_DATABASE"
    message = "Cannot delete a protected database"


# 404 Not Found errors
class NotFoundError(GraphLensError):
    """Resource not found."""

    status_code = 404
    error_code = "NOT_FOUND"
    message = "Resource not found"


class GraphNotFoundError(NotFoundError):
    """Graph not found."""

    error_code = "GRAPH_NOT_FOUND"
    message = "Graph not found"


class NodeNotFoundError(NotFoundError):
    """Node not found in graph."""

    error_code = "NODE_NOT_FOUND"
    message = "Node not found in graph"


class DatabaseNotFoundError(NotFoundError):
    """Database not found."""

    error_code = "DATABASE_NOT_FOUND"
    message = "Database not found"


# 409 Conflict errors
class ConflictError(GraphLensError):
    """Resource conflict."""

    status_code = 409
    error_code = "CONFLICT"
    message = "Resource conflict"


class GraphAlreadyExistsError(ConflictError):
    """Graph id already used in this database."""

    error_code = "GRAPH_ALREADY_EXISTS"
    message = "Graph with this identifier already exists"


# 501 Not Implemented errors
class UnsupportedOperationError(GraphLensError):
    """Operation not meaningful for this backend."""

    status_code = 501
    error_code = "UNSUPPORTED"
    message = "Operation not supported by this backend"


# 503 Service Unavailable errors
class BackendUnavailableError(GraphLensError):
    """Backend unreachable, pool exhausted or acquisition timed out."""

    status_code = 503
    error_code = "BACKEND_UNAVAILABLE"
    message = "Storage backend unavailable"
