"""Domain errors raised by the request lifecycle and rating services.

These are plain exceptions, not ``HTTPException``, so the services can run
outside a request (scripts, tests). The handler registered in ``app.main``
renders them using ``status_code`` and ``code``.
"""
from fastapi import status


class LifecycleError(Exception):
    """Base class for recoverable domain failures."""

    code: str = "lifecycle_error"
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code}


class NotFound(LifecycleError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class Forbidden(LifecycleError):
    code = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN


class InvalidTransition(LifecycleError):
    code = "invalid_transition"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str, current_status: str):
        super().__init__(message)
        self.current_status = current_status

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["current_status"] = self.current_status
        return data


class DuplicatePending(LifecycleError):
    code = "duplicate_pending"
    status_code = status.HTTP_409_CONFLICT


class NotApproved(LifecycleError):
    code = "not_approved"
    status_code = status.HTTP_400_BAD_REQUEST


class AlreadyRated(LifecycleError):
    code = "already_rated"
    status_code = status.HTTP_409_CONFLICT


class NotEligible(LifecycleError):
    code = "not_eligible"
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidInput(LifecycleError):
    code = "invalid_input"
    status_code = 422
