# -*- coding: utf-8 -*-
"""Exception classes raised by the service layer and rendered by the API."""


class ApiError(Exception):
    """Base exception for all request-level failures."""

    status_code = 500
    error = "server_error"

    def __init__(self, message: str, status_code: int = None, details: dict = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details


class ValidationFailed(ApiError):
    """Raised when request input has the wrong shape or range (400)."""
    status_code = 400
    error = "validation_error"


class Unauthorized(ApiError):
    """Raised when no valid session is present (401)."""
    status_code = 401
    error = "unauthorized"


class Forbidden(ApiError):
    """Raised when the caller may not perform the action (403)."""
    status_code = 403
    error = "forbidden"


class NotFound(ApiError):
    """Raised when a resource is missing or must not be revealed (404)."""
    status_code = 404
    error = "not_found"


class Gone(ApiError):
    """Raised when message content has disappeared for good (410)."""
    status_code = 410
    error = "disappeared"


class Conflict(ApiError):
    status_code = 409
    error = "conflict"


class UpstreamError(ApiError):
    """Raised when a third-party provider call fails (502)."""
    status_code = 502
    error = "upstream_error"
