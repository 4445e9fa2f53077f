"""
FloraLens Backend - Custom Exception Hierarchy
================================================

What:  Application-specific exceptions, one per error class of the API.
How:   Each exception carries a user-facing message and an optional context
       dict. Global handlers (registered in main.py) turn them into JSON
       error responses with the right status code.
Who:   Raised by services, auth and routes; caught by global handlers.

Exception Hierarchy:
    FloraLensError (base)
    ├── ValidationError          → 400 Bad Request (no file provided)
    ├── UnauthorizedError        → 401 Unauthorized
    ├── ForbiddenError           → 403 Forbidden (scan owned by someone else)
    ├── NotFoundError            → 404 Not Found
    ├── PayloadTooLargeError     → 413 Payload Too Large
    ├── StorageServiceError      → 500 Internal Server Error
    ├── VisionServiceError       → 500 Internal Server Error
    └── DatabaseError            → 500 Internal Server Error

`context` is logged server-side and never returned for 5xx errors.
"""

from typing import Any, Dict, Optional


class FloraLensError(Exception):
    """
    Base exception for all FloraLens application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged, returned only for 4xx details)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(FloraLensError):
    """
    Raised when client input fails validation.

    When:    The multipart body has no file part, or the part is empty.
    HTTP:    400 Bad Request
    """

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


class UnauthorizedError(FloraLensError):
    """
    Raised when the request carries no valid session.

    HTTP:    401 Unauthorized, with `WWW-Authenticate: Bearer`.
    """

    def __init__(
        self,
        message: str = "Authentication required",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ForbiddenError(FloraLensError):
    """
    Raised when an authenticated user touches a resource they do not own.

    HTTP:    403 Forbidden. The response body never includes resource fields.
    """

    def __init__(
        self,
        message: str = "Unauthorized",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(FloraLensError):
    """
    Raised when a requested resource does not exist.

    When:    GET /api/scans/{id} with an unknown id, or a signed file URL
             whose object is gone.
    HTTP:    404 Not Found
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"{resource.capitalize()} not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class PayloadTooLargeError(FloraLensError):
    """
    Raised while reading an upload that grows past the configured cap.

    HTTP:    413 Payload Too Large. Raised before any storage, model or
             database call is made.
    """

    def __init__(
        self,
        max_size: int,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["max_size_bytes"] = max_size
        super().__init__(message="File too large", context=ctx)
        self.max_size = max_size


class StorageServiceError(FloraLensError):
    """
    Raised when the object storage backend fails (write, sign, delete).

    HTTP:    500 Internal Server Error
    """

    def __init__(
        self,
        message: str = "Image storage is temporarily unavailable",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class VisionServiceError(FloraLensError):
    """
    Raised when the vision model produced no schema-conforming analysis.

    Network failures, timeouts, blocked responses and malformed JSON all
    end up here with the same user-facing message.

    HTTP:    500 Internal Server Error
    """

    def __init__(
        self,
        message: str = "Image analysis failed. Please try again later.",
        reason: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if reason:
            ctx["reason"] = reason
        super().__init__(message=message, context=ctx)
        self.reason = reason


class DatabaseError(FloraLensError):
    """
    Raised when database operations fail unexpectedly.

    HTTP:    500 Internal Server Error. The client always gets a generic
             message; the SQLAlchemy error is logged server-side.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
