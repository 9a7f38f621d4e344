"""
Doll Pin API: Custom Exception Hierarchy
==========================================

What:  Application-specific exceptions for the doll store and image pipeline.
How:   Each exception carries a message and an optional context dict.
       Global exception handlers (registered in main.py) turn them into the
       JSON failure envelope with the matching HTTP status code.
Who:   Raised by services; caught by the global handlers.

Exception Hierarchy:
    DollApiError (base)
    ├── ValidationError          → 400 Bad Request
    ├── NotFoundError            → 404 Not Found
    ├── ProcessingError          → 500 Internal Server Error (image codec)
    ├── StorageError             → 500 Internal Server Error (persistence)
    └── AuthenticationError      → 401 Unauthorized (no endpoint raises these yet)
        ├── TokenInvalidError
        └── TokenExpiredError
"""

from typing import Any, Dict, List, Optional


class DollApiError(Exception):
    """
    Base exception for all application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info; handlers decide what to expose
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(DollApiError):
    """
    Raised when client input fails validation.

    When:    Missing required fields, out-of-range values, bad hex colors,
             wrong upload type, oversized upload.
    HTTP:    400 Bad Request

    `errors` lists one human-readable line per offending field so a single
    response can report several problems at once.

    Example response:
        {
            "success": false,
            "error": "validation_error",
            "message": "Validation Error",
            "errors": ["Name cannot exceed 50 characters", "Size must be at least 1"],
            "details": {"fields": ["name", "size"]}
        }
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        errors: Optional[List[str]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field
        self.errors = errors or [message]


class NotFoundError(DollApiError):
    """
    Raised when a requested resource does not exist.

    When:    GET/PUT/DELETE on an unknown doll id, DELETE on an unknown image.
    HTTP:    404 Not Found
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)
        self.resource = resource
        self.resource_id = resource_id


class ProcessingError(DollApiError):
    """
    Raised when the image codec cannot decode, resize or encode an upload.

    When:    Corrupt bytes behind an image extension, truncated files,
             unsupported pixel modes, disk errors while writing the derivative.
    HTTP:    500 Internal Server Error

    The pipeline removes the staged original and any partial derivative
    before this propagates.
    """

    def __init__(
        self,
        message: str = "Failed to process image",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class StorageError(DollApiError):
    """
    Raised when a read or write against the doll store fails.

    HTTP:    500 Internal Server Error
    The driver's message travels in context["reason"] and is returned to the
    client; no automatic retry is attempted.
    """

    def __init__(
        self,
        message: str = "A storage error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class AuthenticationError(DollApiError):
    """
    Base for credential failures (HTTP 401).

    No endpoint authenticates today; the handler is registered so a future
    auth dependency only has to raise these.
    """

    code = "unauthorized"

    def __init__(
        self,
        message: str = "Authentication required",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class TokenInvalidError(AuthenticationError):
    code = "invalid_token"

    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__(message="Invalid token", context=context)


class TokenExpiredError(AuthenticationError):
    code = "token_expired"

    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__(message="Token expired", context=context)
