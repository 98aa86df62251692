# taskapi/schemas.py

from pydantic import BaseModel, Field, field_validator, ValidationInfo
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError
from datetime import datetime, timezone
from typing import Optional
from enum import Enum


def utcnow() -> datetime:
    """Current time as naive UTC, the form timestamps are stored in."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _due_date_input(value):
    # numbers (and numeric strings) would otherwise be read as Unix timestamps
    if value is None or isinstance(value, datetime):
        return value
    if not isinstance(value, str) or value.strip().lstrip("+-").replace(".", "", 1).isdigit():
        raise PydanticCustomError("datetime_type", "Due date must be a valid ISO 8601 date")
    return value


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class SortField(str, Enum):
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"
    DUE_DATE = "due_date"
    TITLE = "title"
    STATUS = "status"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


TITLE_MAX_LENGTH = 255
DESCRIPTION_MAX_LENGTH = 2000
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 10


class CamelModel(BaseModel):
    """Base for every wire model: snake_case attributes, camelCase JSON."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        str_strip_whitespace = True
        extra = "ignore"


class TaskCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=TITLE_MAX_LENGTH, description="Task title")
    description: Optional[str] = Field(None, max_length=DESCRIPTION_MAX_LENGTH, description="Task description")
    status: TaskStatus = Field(default=TaskStatus.PENDING, description="Task status")
    due_date: Optional[datetime] = Field(None, description="Due date (ISO 8601)")

    @field_validator("due_date", mode="before")
    @classmethod
    def due_date_is_iso_string(cls, value):
        return _due_date_input(value)

    @field_validator("due_date")
    @classmethod
    def due_date_not_in_past(cls, value: Optional[datetime], info: ValidationInfo) -> Optional[datetime]:
        value = to_naive_utc(value)
        if value is None:
            return value
        # status is declared first, so it is already validated (or missing on error)
        if info.data.get("status") != TaskStatus.COMPLETED and value < utcnow():
            raise PydanticCustomError("due_date_past", "Due date cannot be in the past")
        return value


class TaskUpdate(CamelModel):
    title: Optional[str] = Field(None, min_length=1, max_length=TITLE_MAX_LENGTH, description="Task title")
    description: Optional[str] = Field(None, max_length=DESCRIPTION_MAX_LENGTH, description="Task description")
    status: Optional[TaskStatus] = Field(None, description="Task status")
    due_date: Optional[datetime] = Field(None, description="Due date (ISO 8601)")

    @field_validator("title", "status", mode="before")
    @classmethod
    def reject_null(cls, value):
        if value is None:
            raise PydanticCustomError("null_not_allowed", "Value cannot be null")
        return value

    @field_validator("due_date", mode="before")
    @classmethod
    def due_date_is_iso_string(cls, value):
        return _due_date_input(value)

    @field_validator("due_date")
    @classmethod
    def normalize_due_date(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(value)

    def changes(self) -> dict:
        """Only the fields the client actually sent, keyed by column name."""
        return self.model_dump(exclude_unset=True)


def _coerce_int(value) -> int:
    if isinstance(value, bool):
        raise PydanticCustomError("int_parsing", "Input should be a valid integer")
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        raise PydanticCustomError("int_parsing", "Input should be a valid integer")


class TaskQuery(CamelModel):
    status: Optional[TaskStatus] = Field(None, description="Filter by status")
    sort_by: SortField = Field(default=SortField.CREATED_AT, description="Sort field")
    sort_order: SortOrder = Field(default=SortOrder.DESC, description="Sort direction")
    page: int = Field(default=1, description="Page number, starting at 1")
    limit: int = Field(default=DEFAULT_PAGE_SIZE, description="Page size, at most 100")

    @field_validator("status", mode="before")
    @classmethod
    def empty_status_means_all(cls, value):
        return value or None

    @field_validator("sort_order", mode="before")
    @classmethod
    def lowercase_sort_order(cls, value):
        return value.lower() if isinstance(value, str) else value

    @field_validator("page", mode="before")
    @classmethod
    def clamp_page(cls, value) -> int:
        return max(1, _coerce_int(value))

    @field_validator("limit", mode="before")
    @classmethod
    def clamp_limit(cls, value) -> int:
        return min(max(1, _coerce_int(value)), MAX_PAGE_SIZE)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class Task(CamelModel):
    id: str
    title: str
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.PENDING
    due_date: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class Pagination(CamelModel):
    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int
    has_next_page: bool
    has_previous_page: bool


class TaskPage(CamelModel):
    """Snapshot stored in the listing cache."""

    tasks: list[Task]
    pagination: Pagination


class TaskListing(TaskPage):
    cached: bool = False


class TaskStats(CamelModel):
    total: int
    by_status: dict[str, int]
    overdue: int


class FieldError(BaseModel):
    field: str
    message: str


# Response envelopes

class TaskResponse(CamelModel):
    success: bool = True
    message: Optional[str] = None
    data: Task


class TaskListResponse(CamelModel):
    success: bool = True
    data: list[Task]
    pagination: Pagination
    cached: bool


class StatsResponse(CamelModel):
    success: bool = True
    data: TaskStats


class MessageResponse(CamelModel):
    success: bool = True
    message: str


class ErrorResponse(CamelModel):
    success: bool = False
    message: str
    errors: Optional[list[FieldError]] = None
    error: Optional[str] = None
    stack: Optional[str] = None
