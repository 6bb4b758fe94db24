"""
Error taxonomy for the dispatch API.

Every error carries a machine-readable ``kind`` next to the human message so
clients can branch on it. The handler in ``app.main`` renders them as::

    {"error": "<kind>", "message": "<text>", ...extra}
"""
from typing import Any, Dict, Iterable, Optional

from fastapi import HTTPException, status


class AppError(HTTPException):
    kind = "Error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, extra: Optional[Dict[str, Any]] = None, headers=None):
        super().__init__(status_code=self.status_code, detail=message, headers=headers)
        self.message = message
        self.extra = extra or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.kind, "message": self.message, **self.extra}


class Unauthorized(AppError):
    kind = "Unauthorized"
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, headers={"WWW-Authenticate": "Bearer"})


class Forbidden(AppError):
    kind = "Forbidden"
    status_code = status.HTTP_403_FORBIDDEN


class NotFound(AppError):
    kind = "NotFound"
    status_code = status.HTTP_404_NOT_FOUND


class Conflict(AppError):
    kind = "Conflict"
    status_code = status.HTTP_409_CONFLICT


class InvalidState(AppError):
    kind = "InvalidState"
    status_code = status.HTTP_400_BAD_REQUEST


class ValidationError(AppError):
    kind = "ValidationError"
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidTransition(AppError):
    kind = "InvalidTransition"
    status_code = 422

    def __init__(self, current: str, requested: str, allowed: Iterable[str]):
        allowed = list(allowed)
        message = (
            f"Invalid transition: {current} -> {requested}. "
            f"Allowed: {', '.join(allowed) or 'none'}"
        )
        super().__init__(
            message,
            extra={"current": current, "requested": requested, "allowed": allowed},
        )
        self.current = current
        self.requested = requested
        self.allowed = allowed
