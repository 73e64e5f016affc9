"""Error taxonomy shared by the service layer and the HTTP API."""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, status


class ServiceError(HTTPException):
    """Base class for domain errors that map onto an HTTP status code."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    kind: str = "internal_error"

    def __init__(self, detail: str) -> None:
        super().__init__(status_code=type(self).status_code, detail=detail)

    def to_payload(self) -> dict[str, Any]:
        return {"detail": self.detail, "error": self.kind}


class BadRequestError(ServiceError):
    """Input is well formed but violates a business rule."""

    status_code = status.HTTP_400_BAD_REQUEST
    kind = "bad_request"


class UnauthorizedError(ServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    kind = "unauthorized"


class ForbiddenError(ServiceError):
    """Requester lacks the role required for the operation."""

    status_code = status.HTTP_403_FORBIDDEN
    kind = "forbidden"


class NotFoundError(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND
    kind = "not_found"


class ConflictError(ServiceError):
    """The operation collides with existing state."""

    status_code = status.HTTP_409_CONFLICT
    kind = "conflict"


class PersistenceError(ServiceError):
    """Raised when the database rejects a write for reasons outside the domain."""

    def __init__(self, operation: str, context: dict[str, Any] | None = None) -> None:
        super().__init__("Internal server error")
        self.operation = operation
        self.context = dict(context or {})


_KIND_BY_STATUS = {
    error.status_code: error.kind
    for error in (BadRequestError, UnauthorizedError, ForbiddenError, NotFoundError, ConflictError)
}


def error_kind_for_status(status_code: int) -> str:
    """Map an HTTP status raised outside the service layer onto an error kind."""

    if status_code in _KIND_BY_STATUS:
        return _KIND_BY_STATUS[status_code]
    return "bad_request" if status_code < 500 else "internal_error"
