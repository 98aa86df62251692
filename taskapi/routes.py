# taskapi/routes.py

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query, Request, status

from taskapi.schemas import (
    ErrorResponse,
    MessageResponse,
    StatsResponse,
    TaskListResponse,
    TaskResponse,
)
from taskapi.service import TaskService
from taskapi.validation import parse_create, parse_query, parse_task_id, parse_update

router = APIRouter(prefix="/api/tasks", tags=["tasks"])

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Validation failed"},
    404: {"model": ErrorResponse, "description": "Task not found"},
    500: {"model": ErrorResponse, "description": "Server error"},
}


def get_task_service(request: Request) -> TaskService:
    return request.app.state.task_service


# CREATE - POST /api/tasks
@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED, responses=ERROR_RESPONSES)
async def create_task(
    payload: Any = Body(None, description="{title, description?, status?, dueDate?}"),
    service: TaskService = Depends(get_task_service),
):
    task = await service.create_task(parse_create(payload))
    return TaskResponse(message="Task created successfully", data=task)


# READ (All) - GET /api/tasks
@router.get("", response_model=TaskListResponse, responses=ERROR_RESPONSES)
async def list_tasks(
    task_status: Optional[str] = Query(None, alias="status"),
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    sort_order: Optional[str] = Query(None, alias="sortOrder"),
    page: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    service: TaskService = Depends(get_task_service),
):
    query = parse_query({
        "status": task_status,
        "sortBy": sort_by,
        "sortOrder": sort_order,
        "page": page,
        "limit": limit,
    })
    listing = await service.list_tasks(query)
    return TaskListResponse(data=listing.tasks, pagination=listing.pagination, cached=listing.cached)


# Registered before /{task_id} so "stats" is not taken for an id
@router.get("/stats", response_model=StatsResponse)
async def task_stats(service: TaskService = Depends(get_task_service)):
    return StatsResponse(data=await service.get_stats())


# READ (Single) - GET /api/tasks/{task_id}
@router.get("/{task_id}", response_model=TaskResponse, responses=ERROR_RESPONSES)
async def get_task(task_id: str, service: TaskService = Depends(get_task_service)):
    task = await service.get_task(parse_task_id(task_id))
    return TaskResponse(data=task)


# UPDATE - PUT /api/tasks/{task_id}
@router.put("/{task_id}", response_model=TaskResponse, responses=ERROR_RESPONSES)
async def update_task(
    task_id: str,
    payload: Any = Body(None, description="Any subset of {title, description, status, dueDate}"),
    service: TaskService = Depends(get_task_service),
):
    task_id = parse_task_id(task_id)
    task = await service.update_task(task_id, parse_update(payload))
    return TaskResponse(message="Task updated successfully", data=task)


# DELETE - DELETE /api/tasks/{task_id}
@router.delete("/{task_id}", response_model=MessageResponse, responses=ERROR_RESPONSES)
async def delete_task(task_id: str, service: TaskService = Depends(get_task_service)):
    await service.delete_task(parse_task_id(task_id))
    return MessageResponse(message="Task deleted successfully")
