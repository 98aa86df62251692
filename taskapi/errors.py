# taskapi/errors.py

"""
Error types raised by the validation layer, the stores and the service.

Every error the API can answer with is one of these; the HTTP handlers in
``taskapi.handlers`` turn them into the ``{success: false, ...}`` envelope.
"""

from enum import Enum
from typing import Optional

from taskapi.schemas import FieldError


class TaskApiError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code = 500
    message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class RequestValidationFailed(TaskApiError):
    """Input rejected at the boundary, with every violated field listed."""

    status_code = 400
    message = "Validation failed"

    def __init__(self, errors: Optional[list[FieldError]] = None, message: Optional[str] = None):
        super().__init__(message)
        self.errors = errors or []


class TaskNotFound(TaskApiError):
    status_code = 404
    message = "Task not found"

    def __init__(self, task_id: str):
        super().__init__()
        self.task_id = task_id


class StoreErrorKind(str, Enum):
    VALIDATION = "validation"
    UNIQUE_CONSTRAINT = "unique_constraint"
    FOREIGN_KEY = "foreign_key"
    CONNECTION = "connection"


class StoreError(Exception):
    """Failure reported by a task store, tagged with what went wrong."""

    def __init__(self, kind: StoreErrorKind, message: str, errors: Optional[list[FieldError]] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.errors = errors or []

    @classmethod
    def validation(cls, errors: list[FieldError]) -> "StoreError":
        return cls(StoreErrorKind.VALIDATION, "; ".join(e.message for e in errors), errors)
