"""Tests for the request validation layer."""

import uuid
from datetime import datetime

import pytest

from taskapi.errors import RequestValidationFailed
from taskapi.schemas import SortField, SortOrder, TaskStatus
from taskapi.validation import parse_create, parse_query, parse_task_id, parse_update


def fields_of(exc_info) -> dict[str, str]:
    return {e.field: e.message for e in exc_info.value.errors}


class TestCreateSchema:
    """Test validation of create payloads."""

    def test_minimal_payload_gets_defaults(self):
        task = parse_create({"title": "Write report"})

        assert task.title == "Write report"
        assert task.status == TaskStatus.PENDING
        assert task.description is None
        assert task.due_date is None

    def test_title_is_trimmed(self):
        assert parse_create({"title": "  Buy milk  "}).title == "Buy milk"

    def test_missing_title(self):
        with pytest.raises(RequestValidationFailed) as exc_info:
            parse_create({"description": "no title"})

        assert fields_of(exc_info) == {"title": "Title is required"}

    def test_whitespace_title_is_empty(self):
        with pytest.raises(RequestValidationFailed) as exc_info:
            parse_create({"title": "   "})

        assert fields_of(exc_info)["title"] == "Title cannot be empty"

    def test_every_violation_is_reported(self):
        """All failing fields come back together, not just the first."""
        with pytest.raises(RequestValidationFailed) as exc_info:
            parse_create({"title": "x" * 256, "description": "d" * 2001, "status": "done"})

        errors = fields_of(exc_info)
        assert errors["title"] == "Title cannot exceed 255 characters"
        assert errors["description"] == "Description cannot exceed 2000 characters"
        assert errors["status"] == "Status must be one of: pending, in_progress, completed"
        assert exc_info.value.message == "Validation failed"

    def test_due_date_in_past_rejected(self, yesterday):
        with pytest.raises(RequestValidationFailed) as exc_info:
            parse_create({"title": "x", "dueDate": yesterday})

        assert fields_of(exc_info) == {"dueDate": "Due date cannot be in the past"}

    def test_due_date_in_past_allowed_when_completed(self, yesterday):
        task = parse_create({"title": "x", "dueDate": yesterday, "status": "completed"})

        assert task.status == TaskStatus.COMPLETED
        assert task.due_date is not None

    def test_invalid_due_date(self):
        with pytest.raises(RequestValidationFailed) as exc_info:
            parse_create({"title": "x", "dueDate": "next tuesday"})

        assert fields_of(exc_info)["dueDate"] == "Due date must be a valid ISO 8601 date"

    @pytest.mark.parametrize("raw", [4102444800, 4102444800.5, "4102444800", True, ["2099-01-01"]])
    def test_non_iso_due_date_rejected(self, raw):
        with pytest.raises(RequestValidationFailed) as exc_info:
            parse_create({"title": "x", "dueDate": raw})

        assert fields_of(exc_info) == {"dueDate": "Due date must be a valid ISO 8601 date"}

    def test_aware_due_date_stored_as_naive_utc(self):
        task = parse_create({"title": "x", "dueDate": "2099-01-01T12:00:00+02:00"})

        assert task.due_date == datetime(2099, 1, 1, 10, 0)

    def test_unknown_fields_ignored(self):
        task = parse_create({"title": "x", "id": "forged", "createdAt": "2000-01-01"})

        assert "id" not in task.model_dump()

    def test_body_must_be_object(self):
        with pytest.raises(RequestValidationFailed) as exc_info:
            parse_create(["title"])

        assert "body" in fields_of(exc_info)


class TestUpdateSchema:
    """Test validation of partial updates."""

    def test_only_sent_fields_are_changes(self):
        update = parse_update({"title": "New title"})

        assert update.changes() == {"title": "New title"}

    def test_empty_update_rejected(self):
        with pytest.raises(RequestValidationFailed) as exc_info:
            parse_update({})

        assert fields_of(exc_info) == {"body": "At least one field must be provided for update"}

    def test_only_unknown_fields_rejected(self):
        with pytest.raises(RequestValidationFailed):
            parse_update({"priority": "high"})

    def test_null_title_rejected(self):
        with pytest.raises(RequestValidationFailed) as exc_info:
            parse_update({"title": None})

        assert fields_of(exc_info) == {"title": "Title cannot be empty"}

    def test_null_description_clears_it(self):
        assert parse_update({"description": None}).changes() == {"description": None}

    def test_past_due_date_not_checked_here(self, yesterday):
        update = parse_update({"dueDate": yesterday})

        assert "due_date" in update.changes()

    def test_numeric_due_date_rejected(self):
        with pytest.raises(RequestValidationFailed) as exc_info:
            parse_update({"dueDate": 4102444800})

        assert fields_of(exc_info) == {"dueDate": "Due date must be a valid ISO 8601 date"}

    def test_null_due_date_clears_it(self):
        assert parse_update({"dueDate": None}).changes() == {"due_date": None}

    def test_invalid_status(self):
        with pytest.raises(RequestValidationFailed) as exc_info:
            parse_update({"status": "archived"})

        assert "status" in fields_of(exc_info)


class TestQuerySchema:
    """Test listing parameter coercion."""

    def test_defaults(self):
        query = parse_query({})

        assert query.status is None
        assert query.sort_by == SortField.CREATED_AT
        assert query.sort_order == SortOrder.DESC
        assert query.page == 1
        assert query.limit == 10

    def test_none_values_take_defaults(self):
        query = parse_query({"status": None, "sortBy": None, "page": None})

        assert query.sort_by == SortField.CREATED_AT
        assert query.page == 1

    @pytest.mark.parametrize("raw, expected", [("500", 100), ("100", 100), ("0", 1), ("-5", 1), ("25", 25)])
    def test_limit_clamped(self, raw, expected):
        assert parse_query({"limit": raw}).limit == expected

    @pytest.mark.parametrize("raw, expected", [("0", 1), ("-2", 1), ("7", 7)])
    def test_page_clamped(self, raw, expected):
        assert parse_query({"page": raw}).page == expected

    def test_offset(self):
        assert parse_query({"page": "3", "limit": "20"}).offset == 40

    def test_non_integer_page_and_limit(self):
        with pytest.raises(RequestValidationFailed) as exc_info:
            parse_query({"page": "first", "limit": "many"})

        errors = fields_of(exc_info)
        assert errors == {"page": "Page must be an integer", "limit": "Limit must be an integer"}
        assert exc_info.value.message == "Invalid query parameters"

    def test_sort_order_case_insensitive(self):
        assert parse_query({"sortOrder": "ASC"}).sort_order == SortOrder.ASC

    def test_invalid_sort_field(self):
        with pytest.raises(RequestValidationFailed) as exc_info:
            parse_query({"sortBy": "priority"})

        assert fields_of(exc_info)["sortBy"].startswith("sortBy must be one of")

    def test_invalid_sort_order(self):
        with pytest.raises(RequestValidationFailed) as exc_info:
            parse_query({"sortOrder": "sideways"})

        assert "sortOrder" in fields_of(exc_info)

    def test_empty_status_means_all(self):
        assert parse_query({"status": ""}).status is None

    def test_status_filter(self):
        assert parse_query({"status": "in_progress"}).status == TaskStatus.IN_PROGRESS


class TestTaskId:
    def test_valid_uuid(self):
        task_id = str(uuid.uuid4())
        assert parse_task_id(task_id) == task_id

    def test_invalid_uuid(self):
        with pytest.raises(RequestValidationFailed) as exc_info:
            parse_task_id("42")

        assert exc_info.value.message == "Invalid task ID format"
