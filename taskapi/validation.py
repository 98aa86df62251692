# taskapi/validation.py

import uuid
from typing import Any, Mapping

from pydantic import BaseModel, ValidationError

from taskapi.errors import RequestValidationFailed
from taskapi.schemas import (
    DESCRIPTION_MAX_LENGTH,
    TITLE_MAX_LENGTH,
    FieldError,
    SortField,
    TaskCreate,
    TaskQuery,
    TaskStatus,
    TaskUpdate,
)

_STATUSES = ", ".join(s.value for s in TaskStatus)
_INVALID_DATE = "Due date must be a valid ISO 8601 date"

# (field, pydantic error type) -> message shown to the client
MESSAGES = {
    ("title", "missing"): "Title is required",
    ("title", "string_type"): "Title must be a string",
    ("title", "string_too_short"): "Title cannot be empty",
    ("title", "string_too_long"): f"Title cannot exceed {TITLE_MAX_LENGTH} characters",
    ("title", "null_not_allowed"): "Title cannot be empty",
    ("description", "string_type"): "Description must be a string",
    ("description", "string_too_long"): f"Description cannot exceed {DESCRIPTION_MAX_LENGTH} characters",
    ("status", "enum"): f"Status must be one of: {_STATUSES}",
    ("status", "null_not_allowed"): f"Status must be one of: {_STATUSES}",
    ("dueDate", "datetime_parsing"): _INVALID_DATE,
    ("dueDate", "datetime_from_date_parsing"): _INVALID_DATE,
    ("dueDate", "datetime_type"): _INVALID_DATE,
    ("sortBy", "enum"): "sortBy must be one of: " + ", ".join(f.value for f in SortField),
    ("sortOrder", "enum"): 'sortOrder must be either "asc" or "desc"',
    ("page", "int_parsing"): "Page must be an integer",
    ("limit", "int_parsing"): "Limit must be an integer",
}


def field_errors(exc: ValidationError) -> list[FieldError]:
    """Flatten a pydantic ValidationError into one entry per violation."""
    errors = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"]) or "body"
        message = MESSAGES.get((field, error["type"]), error["msg"])
        errors.append(FieldError(field=field, message=message))
    return errors


def _validate(model: type[BaseModel], payload: Any, message: str):
    if not isinstance(payload, Mapping):
        raise RequestValidationFailed(
            [FieldError(field="body", message="Request body must be a JSON object")], message
        )
    try:
        return model.model_validate(dict(payload))
    except ValidationError as exc:
        raise RequestValidationFailed(field_errors(exc), message) from exc


def parse_create(payload: Any) -> TaskCreate:
    return _validate(TaskCreate, payload, "Validation failed")


def parse_update(payload: Any) -> TaskUpdate:
    update = _validate(TaskUpdate, payload, "Validation failed")
    if not update.model_fields_set:
        raise RequestValidationFailed(
            [FieldError(field="body", message="At least one field must be provided for update")]
        )
    return update


def parse_query(params: Mapping[str, Any]) -> TaskQuery:
    """Validate listing parameters; absent or None values take the defaults."""
    present = {key: value for key, value in params.items() if value is not None}
    return _validate(TaskQuery, present, "Invalid query parameters")


def parse_task_id(raw: str) -> str:
    try:
        return str(uuid.UUID(raw))
    except (ValueError, AttributeError, TypeError):
        raise RequestValidationFailed(
            [FieldError(field="id", message="Invalid task ID format")], "Invalid task ID format"
        )

