"""
Expense Tracker API — Custom Exception Hierarchy
==================================================

What:  Application-specific exceptions for configuration, database,
       authentication and request errors.
How:   Each exception carries a message, an optional context dict, an HTTP
       status and a machine-readable `code`. The handlers registered in
       main.py turn them into `{success: false, error, code, request_id}`.
Who:   Raised by config, the database manager, the auth verifier, services
       and middleware; caught by the global handlers or by the process runner.

Exception Hierarchy:
    ExpenseTrackerError (base)                → 500
    ├── ConfigError                           → startup only (fatal in production)
    ├── DatabaseConnectionError               → background only (retried)
    ├── DatabaseUnavailableError              → 503 Service Unavailable
    ├── AuthError (missing | invalid)         → 401 Unauthorized
    ├── ValidationError                       → 400 Bad Request
    ├── RouteNotFoundError                    → 404 Not Found
    ├── NotFoundError                         → 404 Not Found
    ├── ConflictError                         → 409 Conflict
    └── PayloadTooLargeError                  → 413 Payload Too Large
"""

from enum import Enum
from typing import Any, Dict, Optional


class ExpenseTrackerError(Exception):
    """
    Base exception for all application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
    """

    status_code: int = 500
    code: str = "server_error"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ConfigError(ExpenseTrackerError):
    """A required environment value is missing or invalid."""

    code = "config_error"

    def __init__(
        self,
        message: str = "Invalid configuration",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseConnectionError(ExpenseTrackerError):
    """
    Raised when the connection manager gives up.

    What:    Retries exhausted, or the URI is missing/malformed (no retry).
    Where:   Never reaches an HTTP client; the Application decides between
             degraded mode (production) and a fatal exit (development).
    """

    code = "database_connection_error"

    def __init__(
        self,
        message: str = "Could not connect to the database",
        attempts: int = 0,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["attempts"] = attempts
        super().__init__(message=message, context=ctx)
        self.attempts = attempts


class DatabaseUnavailableError(ExpenseTrackerError):
    """
    A request needs the database but the manager is not connected.

    HTTP:    503 Service Unavailable. The message stays generic; the
             connection state goes into the context for the server log.
    """

    status_code = 503
    code = "database_unavailable"

    def __init__(
        self,
        message: str = "The database is temporarily unavailable. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class AuthErrorKind(str, Enum):
    MISSING = "missing_credential"
    INVALID = "invalid_credential"


class AuthError(ExpenseTrackerError):
    """
    Raised when a protected request has no usable bearer credential.

    Kinds:
        MISSING: No Authorization header (or an empty one)
        INVALID: Wrong scheme, bad signature, expired, or no identity claim
    HTTP:    401 Unauthorized, `code` is the kind value
    """

    status_code = 401

    def __init__(
        self,
        kind: AuthErrorKind,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        if message is None:
            message = (
                "Authentication required: no bearer token provided"
                if kind is AuthErrorKind.MISSING
                else "Invalid or expired token"
            )
        super().__init__(message=message, context=context)
        self.kind = kind

    @property
    def code(self) -> str:  # type: ignore[override]
        return self.kind.value


class ValidationError(ExpenseTrackerError):
    """Client input failed a business rule. HTTP 400."""

    status_code = 400
    code = "validation_error"

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class RouteNotFoundError(ExpenseTrackerError):
    """No route matches the request. Message echoes method and path."""

    status_code = 404
    code = "route_not_found"

    def __init__(self, method: str, path: str):
        super().__init__(
            message=f"Route not found: {method} {path}",
            context={"method": method, "path": path},
        )


class ConflictError(ExpenseTrackerError):
    """The resource already exists (e.g. an email registered twice). HTTP 409."""

    status_code = 409
    code = "conflict"

    def __init__(
        self,
        message: str = "Resource already exists",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class PayloadTooLargeError(ExpenseTrackerError):
    """Request body exceeds MAX_BODY_SIZE. HTTP 413."""

    status_code = 413
    code = "payload_too_large"

    def __init__(self, limit: int, context: Optional[Dict[str, Any]] = None):
        ctx = context or {}
        ctx["limit"] = limit
        super().__init__(
            message=f"Request body exceeds the {limit} byte limit",
            context=ctx,
        )
        self.limit = limit


class NotFoundError(ExpenseTrackerError):
    """
    Raised when a requested resource does not exist.

    When:    GET /api/me for a token whose user has been deleted.
    HTTP:    404 Not Found
    """

    status_code = 404
    code = "not_found"

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)
