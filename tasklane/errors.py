"""Error kinds surfaced by the planner core.

Every failure leaving the service layer is a `PlannerError` carrying a kind and a
human message. The HTTP layer maps kinds to status codes; nothing below the
service layer knows about HTTP.
"""

from enum import Enum
from typing import Dict


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    CONFLICT = "conflict"
    INVALID = "invalid"
    TRANSIENT = "transient"


class PlannerError(Exception):
    """Base class for structured planner errors."""

    kind: ErrorKind = ErrorKind.INVALID

    def __init__(self, message: str, *, field: str = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> Dict[str, str]:
        out = {"kind": self.kind.value, "message": self.message}
        if self.field:
            out["field"] = self.field
        return out


class NotFoundError(PlannerError):
    kind = ErrorKind.NOT_FOUND


class UnauthorizedError(PlannerError):
    kind = ErrorKind.UNAUTHORIZED


class ConflictError(PlannerError):
    kind = ErrorKind.CONFLICT


class InvalidError(PlannerError):
    kind = ErrorKind.INVALID


CONFLICT_MESSAGE = "data was modified by another request, please try again"
