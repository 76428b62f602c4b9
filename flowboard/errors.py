"""Domain errors.

Every error is an ``HTTPException`` with a fixed status code, so route code and
services can raise them directly and FastAPI renders them as
``{"detail": ...}`` without extra handlers.
"""

from typing import Optional

from fastapi import HTTPException, status


class FlowboardError(HTTPException):
    """Base class for errors raised at the operation boundary."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "FLOWBOARD_ERROR"

    def __init__(self, detail: str, headers: Optional[dict] = None):
        super().__init__(status_code=self.status_code, detail=detail, headers=headers)


class Unauthenticated(FlowboardError):
    """No identity claim, or an invalid one."""

    status_code = status.HTTP_401_UNAUTHORIZED
    code = "UNAUTHENTICATED"

    def __init__(self, detail: str = "Not authenticated"):
        super().__init__(detail, headers={"WWW-Authenticate": "Bearer"})


class Forbidden(FlowboardError):
    """Authenticated, but the caller's role does not allow the action."""

    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"


class NotFound(FlowboardError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class InvalidReference(FlowboardError):
    """A referenced id does not exist or belongs to another parent."""

    code = "INVALID_REFERENCE"


class InvariantViolation(FlowboardError):
    """The request would remove or demote the project creator."""

    code = "INVARIANT_VIOLATION"


class ValidationError(FlowboardError):
    code = "VALIDATION_ERROR"
