# taskapi/database.py

from google.cloud import bigquery
from google.api_core import exceptions as google_exceptions
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Optional
import asyncio
import uuid

import structlog

from taskapi.errors import StoreError, StoreErrorKind
from taskapi.schemas import SortOrder, Task, TaskStatus, utcnow
from taskapi.store import TaskStore

logger = structlog.get_logger(__name__)

# Thread pool executor for running synchronous BigQuery operations
executor = ThreadPoolExecutor(max_workers=10)

TASK_COLUMNS = "id, title, description, status, due_date, created_at, updated_at"

TABLE_SCHEMA = [
    bigquery.SchemaField("id", "STRING", mode="REQUIRED"),
    bigquery.SchemaField("title", "STRING", mode="REQUIRED"),
    bigquery.SchemaField("description", "STRING", mode="NULLABLE"),
    bigquery.SchemaField("status", "STRING", mode="REQUIRED"),
    bigquery.SchemaField("due_date", "TIMESTAMP", mode="NULLABLE"),
    bigquery.SchemaField("created_at", "TIMESTAMP", mode="REQUIRED"),
    bigquery.SchemaField("updated_at", "TIMESTAMP", mode="REQUIRED"),
]

COLUMN_TYPES = {
    "title": "STRING",
    "description": "STRING",
    "status": "STRING",
    "due_date": "TIMESTAMP",
    "updated_at": "TIMESTAMP",
}


def _naive(value: Optional[datetime]) -> Optional[datetime]:
    # BigQuery hands TIMESTAMP columns back as aware UTC datetimes
    if value is None or value.tzinfo is None:
        return value
    return value.replace(tzinfo=None)


def row_to_task(row) -> Task:
    """Helper function to convert BigQuery row to Task model."""
    return Task(
        id=row.id,
        title=row.title,
        description=row.description,
        status=row.status,
        due_date=_naive(row.due_date),
        created_at=_naive(row.created_at),
        updated_at=_naive(row.updated_at),
    )


def _param_value(value):
    if isinstance(value, TaskStatus):
        return value.value
    # TIMESTAMP parameters are sent as aware UTC
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _map_google_error(e: Exception) -> StoreError:
    if isinstance(e, google_exceptions.Conflict):
        return StoreError(StoreErrorKind.UNIQUE_CONSTRAINT, "Duplicate entry")
    if isinstance(e, google_exceptions.BadRequest):
        return StoreError(StoreErrorKind.VALIDATION, "Invalid request parameters")
    return StoreError(StoreErrorKind.CONNECTION, "Database operation failed")


class BigQueryTaskStore(TaskStore):
    """Tasks table in BigQuery, queried with named parameters."""

    def __init__(self, client: bigquery.Client, table_id: str, clock=utcnow):
        super().__init__(clock)
        self.client = client
        self.table_id = table_id

    @classmethod
    def from_settings(cls, settings) -> "BigQueryTaskStore":
        # Validate required settings
        required = {
            "BIGQUERY_PROJECT_ID": settings.bigquery_project_id,
            "BIGQUERY_DATASET": settings.bigquery_dataset,
            "BIGQUERY_TABLE": settings.bigquery_table,
        }
        missing = [name for name, value in required.items() if not value]
        if missing:
            raise ValueError(f"Missing required environment variables: {', '.join(missing)}")

        # Initialize BigQuery client with error handling
        try:
            client = bigquery.Client(project=settings.bigquery_project_id)
        except Exception as e:
            raise ConnectionError(f"Failed to initialize BigQuery client: {str(e)}")

        store = cls(
            client,
            f"{settings.bigquery_project_id}.{settings.bigquery_dataset}.{settings.bigquery_table}",
        )
        store.create_table_if_not_exists(settings.bigquery_location)
        return store

    def create_table_if_not_exists(self, location: str = "US") -> None:
        """Create the dataset and the tasks table if they don't exist"""
        project_id, dataset_id, table_name = self.table_id.split(".")
        dataset_ref = bigquery.DatasetReference(project_id, dataset_id)
        dataset = bigquery.Dataset(dataset_ref)
        dataset.location = location

        try:
            self.client.create_dataset(dataset, exists_ok=True)
            logger.info("Dataset is ready", dataset=dataset_id)
        except google_exceptions.GoogleAPICallError as e:
            logger.warning("Could not create dataset", dataset=dataset_id, error=str(e))

        table = bigquery.Table(bigquery.TableReference(dataset_ref, table_name), schema=TABLE_SCHEMA)
        try:
            self.client.create_table(table, exists_ok=True)
            logger.info("Table is ready", table=self.table_id)
        except google_exceptions.GoogleAPICallError as e:
            logger.error("Error creating table", table=self.table_id, error=str(e))
            raise _map_google_error(e) from e

    async def _run(self, query: str, params: list, fetch: bool = False):
        """Run a parameterized query in the thread pool, mapping API errors."""
        job_config = bigquery.QueryJobConfig(query_parameters=params)

        def execute_query():
            query_job = self.client.query(query, job_config=job_config)
            result = query_job.result()
            return list(result) if fetch else result

        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(executor, execute_query)
        except google_exceptions.GoogleAPICallError as e:
            logger.error("BigQuery query failed", error=str(e))
            raise _map_google_error(e) from e
        except google_exceptions.RetryError as e:
            logger.error("BigQuery query timed out", error=str(e))
            raise StoreError(StoreErrorKind.CONNECTION, "Database connection failed") from e

    async def create(self, values):
        values = {"status": TaskStatus.PENDING, **values}
        self.before_create(values)
        task_id = str(uuid.uuid4())
        current_time = self.now()

        query = f"""
        INSERT INTO `{self.table_id}`
        ({TASK_COLUMNS})
        VALUES (@id, @title, @description, @status, @due_date, @created_at, @updated_at)
        """
        await self._run(query, [
            bigquery.ScalarQueryParameter("id", "STRING", task_id),
            bigquery.ScalarQueryParameter("title", "STRING", values["title"]),
            bigquery.ScalarQueryParameter("description", "STRING", values.get("description")),
            bigquery.ScalarQueryParameter("status", "STRING", _param_value(values["status"])),
            bigquery.ScalarQueryParameter("due_date", "TIMESTAMP", _param_value(values.get("due_date"))),
            bigquery.ScalarQueryParameter("created_at", "TIMESTAMP", _param_value(current_time)),
            bigquery.ScalarQueryParameter("updated_at", "TIMESTAMP", _param_value(current_time)),
        ])

        return Task(
            id=task_id,
            title=values["title"],
            description=values.get("description"),
            status=values["status"],
            due_date=values.get("due_date"),
            created_at=current_time,
            updated_at=current_time,
        )

    async def find_by_id(self, task_id):
        query = f"""
        SELECT {TASK_COLUMNS}
        FROM `{self.table_id}`
        WHERE id = @task_id
        """
        rows = await self._run(
            query, [bigquery.ScalarQueryParameter("task_id", "STRING", task_id)], fetch=True
        )
        return row_to_task(rows[0]) if rows else None

    async def find_and_count(self, status, sort_by, sort_order, limit, offset):
        where = "WHERE status = @status" if status is not None else ""
        filter_params = (
            [bigquery.ScalarQueryParameter("status", "STRING", status.value)] if status is not None else []
        )
        direction = "ASC NULLS LAST" if sort_order == SortOrder.ASC else "DESC NULLS FIRST"

        # sort_by comes from the SortField enum, never from raw input
        query = f"""
        SELECT {TASK_COLUMNS}
        FROM `{self.table_id}`
        {where}
        ORDER BY {sort_by.value} {direction}
        LIMIT @limit OFFSET @offset
        """
        rows = await self._run(query, filter_params + [
            bigquery.ScalarQueryParameter("limit", "INT64", limit),
            bigquery.ScalarQueryParameter("offset", "INT64", offset),
        ], fetch=True)

        count_query = f"SELECT COUNT(*) AS total FROM `{self.table_id}` {where}"
        count_rows = await self._run(count_query, filter_params, fetch=True)
        total = count_rows[0].total if count_rows else 0

        return [row_to_task(row) for row in rows], total

    async def update(self, task, changes):
        self.before_update(task, changes)
        update_fields = dict(changes)
        update_fields["updated_at"] = self.now()

        # Build the UPDATE query dynamically
        set_clause = ", ".join([f"{field} = @{field}" for field in update_fields.keys()])
        query = f"""
        UPDATE `{self.table_id}`
        SET {set_clause}
        WHERE id = @task_id
        """
        await self._run(query, [
            bigquery.ScalarQueryParameter("task_id", "STRING", task.id),
        ] + [
            bigquery.ScalarQueryParameter(field, COLUMN_TYPES[field], _param_value(value))
            for field, value in update_fields.items()
        ])

        return task.model_copy(update=update_fields)

    async def delete(self, task_id):
        query = f"""
        DELETE FROM `{self.table_id}`
        WHERE id = @task_id
        """
        await self._run(query, [bigquery.ScalarQueryParameter("task_id", "STRING", task_id)])

    async def count_by_status(self):
        query = f"""
        SELECT status, COUNT(id) AS count
        FROM `{self.table_id}`
        GROUP BY status
        """
        rows = await self._run(query, [], fetch=True)
        return {row.status: int(row.count) for row in rows}

    async def count_overdue(self):
        query = f"""
        SELECT COUNT(*) AS total
        FROM `{self.table_id}`
        WHERE due_date < @now AND status != @completed
        """
        rows = await self._run(query, [
            bigquery.ScalarQueryParameter("now", "TIMESTAMP", _param_value(self.now())),
            bigquery.ScalarQueryParameter("completed", "STRING", TaskStatus.COMPLETED.value),
        ], fetch=True)
        return rows[0].total if rows else 0

    async def close(self):
        self.client.close()
