# taskapi/service.py

"""
Task service: the request pipeline between the routes and the store.

Listing pages are cached under ``tasks:*``. Any mutation clears that whole
namespace, so the first listing after a write always goes to the store.
"""

import math

import structlog
from pydantic import ValidationError

from taskapi.cache import DEFAULT_TTL_SECONDS, LIST_CACHE_PATTERN, TaskCache, build_list_cache_key
from taskapi.errors import TaskNotFound
from taskapi.schemas import (
    Pagination,
    Task,
    TaskCreate,
    TaskListing,
    TaskPage,
    TaskQuery,
    TaskStats,
    TaskStatus,
    TaskUpdate,
)
from taskapi.store import TaskStore

logger = structlog.get_logger(__name__)


def paginate(page: int, limit: int, total: int) -> Pagination:
    total_pages = math.ceil(total / limit)
    return Pagination(
        current_page=page,
        total_pages=total_pages,
        total_items=total,
        items_per_page=limit,
        has_next_page=page < total_pages,
        has_previous_page=page > 1,
    )


class TaskService:
    def __init__(self, store: TaskStore, cache: TaskCache, cache_ttl: int = DEFAULT_TTL_SECONDS):
        self.store = store
        self.cache = cache
        self.cache_ttl = cache_ttl

    async def create_task(self, payload: TaskCreate) -> Task:
        task = await self.store.create(payload.model_dump())
        await self._invalidate_listings()
        logger.info("Task created", task_id=task.id)
        return task

    async def list_tasks(self, query: TaskQuery) -> TaskListing:
        cache_key = build_list_cache_key(query)

        cached = await self.cache.get(cache_key)
        if cached is not None:
            try:
                page = TaskPage.model_validate(cached)
            except ValidationError:
                logger.warning("Ignoring malformed cache entry", key=cache_key)
            else:
                logger.info("Cache hit", key=cache_key)
                return TaskListing(tasks=page.tasks, pagination=page.pagination, cached=True)
        else:
            logger.debug("Cache miss", key=cache_key)

        tasks, total = await self.store.find_and_count(
            status=query.status,
            sort_by=query.sort_by,
            sort_order=query.sort_order,
            limit=query.limit,
            offset=query.offset,
        )
        page = TaskPage(tasks=tasks, pagination=paginate(query.page, query.limit, total))
        await self.cache.set(cache_key, page.model_dump(mode="json", by_alias=True), self.cache_ttl)

        logger.info("Tasks retrieved", items=len(tasks), page=query.page, key=cache_key)
        return TaskListing(tasks=page.tasks, pagination=page.pagination, cached=False)

    async def get_task(self, task_id: str) -> Task:
        task = await self.store.find_by_id(task_id)
        if task is None:
            raise TaskNotFound(task_id)
        return task

    async def update_task(self, task_id: str, changes: TaskUpdate) -> Task:
        task = await self.get_task(task_id)
        updated = await self.store.update(task, changes.changes())
        if updated is None:
            raise TaskNotFound(task_id)
        await self._invalidate_listings()
        logger.info("Task updated", task_id=task_id, fields=sorted(changes.model_fields_set))
        return updated

    async def delete_task(self, task_id: str) -> None:
        await self.get_task(task_id)
        await self.store.delete(task_id)
        await self._invalidate_listings()
        logger.info("Task deleted", task_id=task_id)

    async def get_stats(self) -> TaskStats:
        counts = await self.store.count_by_status()
        by_status = {status.value: counts.get(status.value, 0) for status in TaskStatus}
        return TaskStats(
            total=sum(counts.values()),
            by_status=by_status,
            overdue=await self.store.count_overdue(),
        )

    async def _invalidate_listings(self) -> None:
        if not await self.cache.delete_pattern(LIST_CACHE_PATTERN):
            logger.warning("Failed to clear task cache", pattern=LIST_CACHE_PATTERN)
