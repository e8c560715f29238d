"""Domain errors surfaced by the service layer.

Every error is an ``HTTPException`` so routes let it propagate unchanged and
FastAPI renders the status code; ``code`` is a stable machine-readable tag the
client uses to pick a user-visible message.
"""

from typing import Optional

from fastapi import HTTPException


class CampusNetError(HTTPException):
    """Base class for workflow errors."""

    http_status: int = 400
    code: str = "error"
    default_detail: str = "Request failed"

    def __init__(self, detail: Optional[str] = None) -> None:
        super().__init__(status_code=self.http_status, detail=detail or self.default_detail)


class NotFound(CampusNetError):
    http_status = 404
    code = "not_found"
    default_detail = "Not found"


class Unauthorized(CampusNetError):
    http_status = 403
    code = "unauthorized"
    default_detail = "You are not allowed to perform this action"


class AlreadyMember(CampusNetError):
    http_status = 409
    code = "already_member"
    default_detail = "User is already a member of this group"


class DuplicateRequest(CampusNetError):
    http_status = 409
    code = "duplicate_request"
    default_detail = "A pending request already exists"


class LimitExceeded(CampusNetError):
    http_status = 422
    code = "limit_exceeded"
    default_detail = "Limit exceeded"


class Conflict(CampusNetError):
    http_status = 409
    code = "conflict"
    default_detail = "The resource was changed concurrently"


class StoreUnavailable(CampusNetError):
    http_status = 503
    code = "store_unavailable"
    default_detail = "Backend store unavailable"


class ValidationError(CampusNetError):
    http_status = 422
    code = "validation_error"
    default_detail = "Invalid input"


UNIQUE_VIOLATION = "23505"


def is_unique_violation(exc: Exception) -> bool:
    """True if the store rejected a write because of a unique constraint."""
    return getattr(exc, "code", None) == UNIQUE_VIOLATION
