"""
tasks/models.py -- Domain dataclasses and enums for tasks.

Pure data containers. Filtering, pagination, ownership checks and statistics
live in tasks/store.py.

Layer rule: tasks/ may import from categories/, auth/ (errors, engine
helper) and core/. It does NOT import from api/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class TaskStatus(str, Enum):
    PENDIENTE = "PENDIENTE"
    EN_PROGRESO = "EN_PROGRESO"
    COMPLETADA = "COMPLETADA"
    CANCELADA = "CANCELADA"


class TaskPriority(str, Enum):
    BAJA = "BAJA"
    MEDIA = "MEDIA"
    ALTA = "ALTA"
    URGENTE = "URGENTE"


@dataclass(frozen=True)
class TaskCategory:
    """The slice of a Category embedded in task reads."""

    id: str
    name: str
    color: str


@dataclass
class Task:
    """A user-owned unit of work, optionally filed under one category.

    estimated_time and actual_time are minutes. due_date is timezone-aware
    UTC when set. category is populated on reads only; writes go through
    category_id.
    """

    user_id: str
    title: str
    id: str | None = None
    description: str | None = None
    status: TaskStatus = TaskStatus.PENDIENTE
    priority: TaskPriority = TaskPriority.MEDIA
    due_date: datetime | None = None
    estimated_time: int | None = None
    actual_time: int | None = None
    tags: list[str] = field(default_factory=list)
    category_id: str | None = None
    category: TaskCategory | None = None
    created_at: str | None = None
    updated_at: str | None = None
    deleted_at: str | None = None


@dataclass
class TaskFilters:
    """Query for TaskStore.find_all(). Unset fields do not filter.

    start_date/end_date bound due_date inclusively. search matches title or
    description case-insensitively. tags matches tasks carrying any of them.
    """

    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    category_id: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    search: str | None = None
    tags: list[str] = field(default_factory=list)
    page: int = 1
    limit: int = 50


@dataclass(frozen=True)
class TaskPage:
    data: list[Task]
    total: int
    page: int
    limit: int
    total_pages: int


@dataclass(frozen=True)
class CategoryCount:
    category_id: str | None
    category_name: str | None
    count: int


@dataclass(frozen=True)
class TaskStats:
    """Aggregates over a user's visible tasks.

    completion_rate is a percentage rounded to two decimals.
    average_completion_time is in days, averaged over completed tasks that
    record actual_time; None when there are none.
    """

    total: int
    by_status: dict[str, int]
    by_priority: dict[str, int]
    by_category: list[CategoryCount]
    completion_rate: float
    average_completion_time: float | None
