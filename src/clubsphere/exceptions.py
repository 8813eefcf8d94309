"""
# Domain Exceptions

Error taxonomy shared by the guards, lifecycles and managers.

Managers raise these exceptions; route handlers translate them to
`HTTPException` via `to_http()`. Each class carries the HTTP status and a
stable machine-readable `error` code returned alongside the detail message.

| Exception | Code | HTTP |
|---|---|---|
| `UnauthenticatedError` | `unauthenticated` | 401 |
| `ForbiddenError` | `forbidden` | 403 |
| `NotFoundError` | `not_found` | 404 |
| `InvalidInputError` | `invalid_input` | 400 |
| `InvalidTransitionError` | `invalid_transition` | 422 |
| `ConflictError` | `conflict` | 409 |
| `InternalError` | `internal` | 500 |
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status
from fastapi.encoders import jsonable_encoder


class ClubSphereError(Exception):
    """Base class for all domain errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: str = "internal"
    default_detail: str = "Internal server error"

    def __init__(self, detail: Optional[str] = None, extra: Optional[Dict[str, Any]] = None):
        self.detail = detail or self.default_detail
        self.extra = extra or {}
        super().__init__(self.detail)

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        return None

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"detail": self.detail, "error": self.error_code}
        body.update(jsonable_encoder(self.extra))
        return body

    def to_http(self) -> HTTPException:
        """
        Convert to the `HTTPException` a route handler raises.

        The detail is the plain message unless the error carries extra context
        (e.g. the existing membership on a duplicate join), in which case the
        full body is returned.
        """
        detail: Any = self.to_body() if self.extra else self.detail
        return HTTPException(status_code=self.status_code, detail=detail, headers=self.headers)


class UnauthenticatedError(ClubSphereError):
    """Missing or malformed credential."""

    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "unauthenticated"
    default_detail = "Unauthorized"

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        return {"WWW-Authenticate": "Bearer"}


class ForbiddenError(ClubSphereError):
    """Valid credential, insufficient capability (or a credential that failed verification)."""

    status_code = status.HTTP_403_FORBIDDEN
    error_code = "forbidden"
    default_detail = "Forbidden"


class NotFoundError(ClubSphereError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "not_found"
    default_detail = "Resource not found"


class InvalidInputError(ClubSphereError):
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "invalid_input"
    default_detail = "Invalid input"


class InvalidTransitionError(ClubSphereError):
    """Requested status is not reachable from the current status."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = "invalid_transition"
    default_detail = "Invalid status transition"


class ConflictError(ClubSphereError):
    """Lost a concurrent transition race, or a duplicate/terminal-state violation."""

    status_code = status.HTTP_409_CONFLICT
    error_code = "conflict"
    default_detail = "Conflict"


class InternalError(ClubSphereError):
    """
    Unexpected storage or provider failure.

    The detail returned to callers is always generic; the underlying cause is
    logged where the error is raised.
    """

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code = "internal"
    default_detail = "Internal server error"
