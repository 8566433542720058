"""
api/routes/v1/tasks.py -- Ownership-scoped task CRUD, filtering and statistics.

Routes (all require auth):
  GET    /tasks              -- filtered, paginated list
  GET    /tasks/stats        -- aggregates, optional created_at range
  GET    /tasks/{id}         -- one task; 404 missing, 403 not owned
  POST   /tasks              -- create; 201; 400 if categoryId is not the caller's
  PATCH  /tasks/{id}         -- partial update
  PATCH  /tasks/{id}/status  -- status only
  DELETE /tasks/{id}         -- soft delete; 204

/tasks/stats is registered before /tasks/{id} so "stats" is never captured
as a task id.

IDOR guard: every store call passes ctx.user.id; TaskStore.find_one()
rejects tasks owned by someone else with Forbidden.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from api.models import (
    CategoryCountResponse,
    PaginatedTasksResponse,
    TaskCategoryResponse,
    TaskCreate,
    TaskPriorityEnum,
    TaskResponse,
    TaskStatsResponse,
    TaskStatusEnum,
    TaskStatusUpdate,
    TaskUpdate,
)
from auth.dependencies import AuthContext, get_auth_context
from auth.store import to_iso
from tasks.models import Task, TaskFilters, TaskPriority, TaskStatus
from tasks.store import TaskStore

router = APIRouter()


def _store(request: Request) -> TaskStore:
    return request.app.state.task_store


@router.get("/tasks", response_model=PaginatedTasksResponse)
def list_tasks(
    request: Request,
    ctx: AuthContext = Depends(get_auth_context),
    status: Optional[TaskStatusEnum] = None,
    priority: Optional[TaskPriorityEnum] = None,
    category_id: Annotated[Optional[str], Query(alias="categoryId")] = None,
    start_date: Annotated[Optional[datetime], Query(alias="startDate")] = None,
    end_date: Annotated[Optional[datetime], Query(alias="endDate")] = None,
    search: Annotated[Optional[str], Query(max_length=200)] = None,
    tags: Annotated[Optional[str], Query(description="Comma-separated; matches any")] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
) -> PaginatedTasksResponse:
    """List the caller's tasks, earliest due date first.

    startDate/endDate bound dueDate inclusively; search matches title or
    description case-insensitively.
    """
    filters = TaskFilters(
        status=TaskStatus(status.value) if status else None,
        priority=TaskPriority(priority.value) if priority else None,
        category_id=category_id,
        start_date=start_date,
        end_date=end_date,
        search=search or None,
        tags=[t.strip() for t in tags.split(",") if t.strip()] if tags else [],
        page=page,
        limit=limit,
    )
    result = _store(request).find_all(ctx.user.id, filters)
    return PaginatedTasksResponse(
        data=[_to_response(t) for t in result.data],
        total=result.total,
        page=result.page,
        limit=result.limit,
        total_pages=result.total_pages,
    )


@router.get("/tasks/stats", response_model=TaskStatsResponse)
def task_stats(
    request: Request,
    ctx: AuthContext = Depends(get_auth_context),
    start_date: Annotated[Optional[datetime], Query(alias="startDate")] = None,
    end_date: Annotated[Optional[datetime], Query(alias="endDate")] = None,
) -> TaskStatsResponse:
    stats = _store(request).stats(ctx.user.id, start_date, end_date)
    return TaskStatsResponse(
        total=stats.total,
        by_status=stats.by_status,
        by_priority=stats.by_priority,
        by_category=[
            CategoryCountResponse(category_id=c.category_id, category_name=c.category_name, count=c.count)
            for c in stats.by_category
        ],
        completion_rate=stats.completion_rate,
        average_completion_time=stats.average_completion_time,
    )


@router.get("/tasks/{task_id}", response_model=TaskResponse)
def get_task(request: Request, task_id: str, ctx: AuthContext = Depends(get_auth_context)) -> TaskResponse:
    return _to_response(_store(request).find_one(task_id, ctx.user.id))


@router.post("/tasks", response_model=TaskResponse, status_code=201)
def create_task(request: Request, body: TaskCreate, ctx: AuthContext = Depends(get_auth_context)) -> TaskResponse:
    created = _store(request).create(
        Task(
            user_id=ctx.user.id,
            title=body.title,
            description=body.description,
            status=TaskStatus(body.status.value),
            priority=TaskPriority(body.priority.value),
            due_date=body.due_date,
            estimated_time=body.estimated_time,
            actual_time=body.actual_time,
            tags=body.tags,
            category_id=body.category_id,
        )
    )
    return _to_response(created)


@router.patch("/tasks/{task_id}", response_model=TaskResponse)
def update_task(
    request: Request,
    task_id: str,
    body: TaskUpdate,
    ctx: AuthContext = Depends(get_auth_context),
) -> TaskResponse:
    """Only fields present in the body are written; null clears nullable fields."""
    updated = _store(request).update(task_id, ctx.user.id, **body.model_dump(exclude_unset=True))
    return _to_response(updated)


@router.patch("/tasks/{task_id}/status", response_model=TaskResponse)
def update_task_status(
    request: Request,
    task_id: str,
    body: TaskStatusUpdate,
    ctx: AuthContext = Depends(get_auth_context),
) -> TaskResponse:
    return _to_response(_store(request).update_status(task_id, ctx.user.id, TaskStatus(body.status.value)))


@router.delete("/tasks/{task_id}", status_code=204)
def delete_task(request: Request, task_id: str, ctx: AuthContext = Depends(get_auth_context)) -> Response:
    _store(request).remove(task_id, ctx.user.id)
    return Response(status_code=204)


def _to_response(task: Task) -> TaskResponse:
    category = None
    if task.category is not None:
        category = TaskCategoryResponse(id=task.category.id, name=task.category.name, color=task.category.color)
    return TaskResponse(
        id=task.id,
        title=task.title,
        description=task.description,
        status=TaskStatusEnum(task.status.value),
        priority=TaskPriorityEnum(task.priority.value),
        due_date=to_iso(task.due_date) if task.due_date is not None else None,
        estimated_time=task.estimated_time,
        actual_time=task.actual_time,
        tags=task.tags,
        user_id=task.user_id,
        category=category,
        created_at=task.created_at or "",
        updated_at=task.updated_at or "",
    )
