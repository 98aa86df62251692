# taskapi/store.py

"""
Task persistence.

``TaskStore`` is the interface the service talks to. It also owns the column
constraints and the due-date rule, which every backend runs before writing
(the equivalent of model hooks in an ORM). ``InMemoryTaskStore`` backs local
development and the test suite; the BigQuery store lives in
``taskapi.database``.
"""

import uuid
from datetime import datetime
from typing import Any, Callable, Optional

import structlog

from taskapi.errors import StoreError
from taskapi.schemas import (
    DESCRIPTION_MAX_LENGTH,
    TITLE_MAX_LENGTH,
    FieldError,
    SortField,
    SortOrder,
    Task,
    TaskStatus,
    utcnow,
)

logger = structlog.get_logger(__name__)

DUE_DATE_IN_PAST = "Due date cannot be in the past"


def check_columns(values: dict[str, Any]) -> list[FieldError]:
    """Column constraints for whichever of the fields are present."""
    errors = []
    if "title" in values:
        title = values["title"]
        if not isinstance(title, str) or not title.strip():
            errors.append(FieldError(field="title", message="Title cannot be empty"))
        elif len(title) > TITLE_MAX_LENGTH:
            errors.append(FieldError(
                field="title", message=f"Title must be between 1 and {TITLE_MAX_LENGTH} characters"
            ))
    description = values.get("description")
    if description is not None and len(description) > DESCRIPTION_MAX_LENGTH:
        errors.append(FieldError(
            field="description", message=f"Description cannot exceed {DESCRIPTION_MAX_LENGTH} characters"
        ))
    if "status" in values:
        try:
            TaskStatus(values["status"])
        except ValueError:
            errors.append(FieldError(
                field="status",
                message="Status must be one of: " + ", ".join(s.value for s in TaskStatus),
            ))
    due_date = values.get("due_date")
    if due_date is not None and not isinstance(due_date, datetime):
        errors.append(FieldError(field="dueDate", message="Due date must be a valid date"))
    return errors


class TaskStore:
    """Async interface over the tasks table."""

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    # hooks

    def before_create(self, values: dict[str, Any]) -> None:
        errors = check_columns(values)
        due_date = values.get("due_date")
        if (
            isinstance(due_date, datetime)
            and values.get("status") != TaskStatus.COMPLETED
            and due_date < self.now()
        ):
            errors.append(FieldError(field="dueDate", message=DUE_DATE_IN_PAST))
        if errors:
            raise StoreError.validation(errors)

    def before_update(self, task: Task, changes: dict[str, Any]) -> None:
        errors = check_columns(changes)
        due_date = changes.get("due_date")
        # status after the update is applied, not the stored one
        status = changes.get("status", task.status)
        if (
            "due_date" in changes
            and due_date != task.due_date
            and isinstance(due_date, datetime)
            and status != TaskStatus.COMPLETED
            and due_date < self.now()
        ):
            errors.append(FieldError(field="dueDate", message=DUE_DATE_IN_PAST))
        if errors:
            raise StoreError.validation(errors)

    # operations

    async def create(self, values: dict[str, Any]) -> Task:
        raise NotImplementedError

    async def find_by_id(self, task_id: str) -> Optional[Task]:
        raise NotImplementedError

    async def find_and_count(
        self,
        status: Optional[TaskStatus],
        sort_by: SortField,
        sort_order: SortOrder,
        limit: int,
        offset: int,
    ) -> tuple[list[Task], int]:
        raise NotImplementedError

    async def update(self, task: Task, changes: dict[str, Any]) -> Task:
        raise NotImplementedError

    async def delete(self, task_id: str) -> None:
        raise NotImplementedError

    async def count_by_status(self) -> dict[str, int]:
        raise NotImplementedError

    async def count_overdue(self) -> int:
        raise NotImplementedError

    async def close(self) -> None:
        return None


def _sort_key(field: SortField):
    def key(task: Task):
        value = getattr(task, field.value)
        # NULLs sort after every value, as in Postgres
        return (1,) if value is None else (0, value)
    return key


class InMemoryTaskStore(TaskStore):
    def __init__(self, clock: Callable[[], datetime] = utcnow):
        super().__init__(clock)
        self._tasks: dict[str, Task] = {}

    async def create(self, values):
        values = {"status": TaskStatus.PENDING, **values}
        self.before_create(values)
        now = self.now()
        task = Task(
            id=str(uuid.uuid4()),
            title=values["title"],
            description=values.get("description"),
            status=values["status"],
            due_date=values.get("due_date"),
            created_at=now,
            updated_at=now,
        )
        self._tasks[task.id] = task
        return task.model_copy()

    async def find_by_id(self, task_id):
        task = self._tasks.get(task_id)
        return task.model_copy() if task else None

    async def find_and_count(self, status, sort_by, sort_order, limit, offset):
        rows = [t for t in self._tasks.values() if status is None or t.status == status]
        rows.sort(key=_sort_key(sort_by), reverse=sort_order == SortOrder.DESC)
        return [t.model_copy() for t in rows[offset:offset + limit]], len(rows)

    async def update(self, task, changes):
        if task.id not in self._tasks:
            return None
        self.before_update(task, changes)
        updated = self._tasks[task.id].model_copy(update={**changes, "updated_at": self.now()})
        self._tasks[task.id] = updated
        return updated.model_copy()

    async def delete(self, task_id):
        self._tasks.pop(task_id, None)

    async def count_by_status(self):
        counts: dict[str, int] = {}
        for task in self._tasks.values():
            counts[task.status.value] = counts.get(task.status.value, 0) + 1
        return counts

    async def count_overdue(self):
        now = self.now()
        return sum(
            1 for t in self._tasks.values()
            if t.due_date is not None and t.due_date < now and t.status != TaskStatus.COMPLETED
        )


def build_store(settings) -> TaskStore:
    if settings.store_backend == "memory":
        logger.warning("Using in-memory task store, data will not survive a restart")
        return InMemoryTaskStore()
    from taskapi.database import BigQueryTaskStore

    return BigQueryTaskStore.from_settings(settings)
