"""Custom exception classes for the session service.

This module defines application-specific exceptions following Google Python
Style Guide. Every exception carries a machine-readable ``code`` and the HTTP
status the request layer renders it with.
"""

from typing import Optional


class SessionServiceError(Exception):
    """Base exception for all session service errors."""

    code = "INT_001"
    status_code = 500


class ValidationError(SessionServiceError):
    """Raised when input cannot be accepted (bad URL, no favorites, ...)."""

    code = "VAL_001"
    status_code = 400


class NotFoundError(SessionServiceError):
    """Raised when a resource is absent or access to it is denied."""

    code = "NOT_FOUND_001"
    status_code = 404

    def __init__(self, resource: str, identifier: Optional[str] = None):
        """Initialize the exception.

        Args:
            resource: Kind of resource, e.g. "Session".
            identifier: Optional identifier of the missing resource.
        """
        self.resource = resource
        self.identifier = identifier
        if identifier:
            super().__init__(f"{resource} not found: {identifier}")
        else:
            super().__init__(f"{resource} not found")


class ForbiddenError(SessionServiceError):
    """Raised when a non-host attempts a host-only action."""

    code = "AUTH_006"
    status_code = 403


class SessionFullError(SessionServiceError):
    """Raised when a session has reached its participant capacity."""

    code = "SESSION_002"
    status_code = 409

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__("This session is at maximum capacity")


class ConflictError(SessionServiceError):
    """Raised when an invite is invalid, expired or exhausted."""

    code = "CONFLICT_001"
    status_code = 409


class InternalError(SessionServiceError):
    """Raised when the persistent store fails; wraps the underlying message."""

    code = "INT_002"
    status_code = 500
