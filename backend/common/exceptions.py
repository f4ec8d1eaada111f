"""
Error taxonomy for course dispatch operations.

The same classes are raised by the backend services and re-raised by the
driver client when it decodes an error response, so both sides agree on
what a failure means and whether it can be retried.
"""

from datetime import datetime
from typing import Any, Dict, Optional


class DispatchError(Exception):
    """Base class for all dispatch errors."""

    error_code = "dispatch_error"
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "error": self.error_code,
            "message": self.message,
        }


class AuthorizationError(DispatchError):
    """Raised when the actor is not allowed to perform the operation. Never retried."""

    error_code = "not_authorized"
    status_code = 403


class InvalidStateError(DispatchError):
    """
    Raised when a transition precondition does not hold.

    ``unlock_time`` is set when the course is simply not startable yet, so the
    caller can show a countdown and retry once it passes.
    """

    error_code = "invalid_state"
    status_code = 409

    def __init__(self, message: str = "", unlock_time: Optional[datetime] = None):
        super().__init__(message)
        self.unlock_time = unlock_time

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.unlock_time is not None:
            data["unlock_time"] = self.unlock_time.isoformat()
        return data


class NotFoundError(DispatchError):
    """Raised when a course or driver cannot be found."""

    error_code = "not_found"
    status_code = 404


class TransientIOError(DispatchError):
    """Raised when the network, location provider or backend is unavailable."""

    error_code = "temporarily_unavailable"
    status_code = 503
