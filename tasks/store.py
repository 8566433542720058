"""
tasks/store.py -- SQLAlchemy Core persistence for tasks.

Pattern: Repository + Data Mapper, same shape as categories/store.py.

Ownership: find_one() raises NotFound for a missing or soft-deleted task and
Forbidden for a task owned by another user. update(), update_status() and
remove() go through find_one() first.

Category links: any category_id written by create()/update() must name a
visible category owned by the same user. CategoryStore.find_one() does the
check; its NotFound/Forbidden are reported as BadRequest because the
problem is in the request body, not the addressed task.

Reads outer-join the categories table so every Task carries a TaskCategory
summary (id, name, color) when linked.

Tags are stored as a JSON array in a TEXT column. The any-of tag filter
matches the JSON-encoded tag token, which keeps the query portable and the
pagination count exact.

Statistics use conditional aggregation (COUNT(CASE WHEN ...)) in one
SELECT, plus one GROUP BY for the per-category breakdown.
"""

from __future__ import annotations

import json
import logging
import math
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, case, func, or_, select
from sqlalchemy.engine import Engine

from auth.errors import BadRequest, Forbidden, NotFound
from auth.store import create_store_engine, from_iso, to_iso
from categories.store import CategoryStore, categories_table
from core.config import get_settings
from tasks.models import (
    CategoryCount,
    Task,
    TaskCategory,
    TaskFilters,
    TaskPage,
    TaskPriority,
    TaskStats,
    TaskStatus,
)

logger = logging.getLogger("taskauth.tasks")

_UPDATABLE = (
    "title",
    "description",
    "status",
    "priority",
    "due_date",
    "estimated_time",
    "actual_time",
    "tags",
    "category_id",
)
_NOT_NULL = ("title", "status", "priority", "tags")

_MINUTES_PER_DAY = 60 * 24

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_tasks = Table(
    "tasks",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), nullable=False, index=True),
    Column("title", String(200), nullable=False),
    Column("description", Text),
    Column("status", String(12), nullable=False, index=True),
    Column("priority", String(8), nullable=False),
    Column("due_date", String(32)),
    Column("estimated_time", Integer),  # minutes
    Column("actual_time", Integer),  # minutes
    Column("tags", Text, nullable=False, server_default="[]"),  # JSON array
    # Not a declared FOREIGN KEY: categories are soft-deleted, and links are
    # validated against CategoryStore on write.
    Column("category_id", String(36), index=True),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Column("deleted_at", String(32), index=True),  # NULL = visible
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def _like_escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _select_tasks():
    return select(
        _tasks,
        categories_table.c.name.label("category_name"),
        categories_table.c.color.label("category_color"),
    ).select_from(_tasks.outerjoin(categories_table, _tasks.c.category_id == categories_table.c.id))


def _to_column_values(fields: dict) -> dict:
    """Convert domain field values to their stored representation."""
    values = dict(fields)
    if values.get("status") is not None:
        values["status"] = TaskStatus(values["status"]).value
    if values.get("priority") is not None:
        values["priority"] = TaskPriority(values["priority"]).value
    if "due_date" in values:
        values["due_date"] = to_iso(values["due_date"]) if values["due_date"] is not None else None
    if "tags" in values:
        values["tags"] = json.dumps(list(values["tags"]))
    return values


class TaskStore:
    """Repository for Task entities.

    Usage:
        store = TaskStore(db_url, categories=CategoryStore(db_url))
        task = store.create(Task(user_id=uid, title="Write report", priority=TaskPriority.ALTA))
        page = store.find_all(uid, TaskFilters(status=TaskStatus.PENDIENTE, limit=20))
    """

    def __init__(self, db_url: str | None = None, categories: CategoryStore | None = None) -> None:
        db_url = db_url or get_settings().database_url
        self.engine: Engine = create_store_engine(db_url)
        _metadata.create_all(self.engine)
        self._owns_categories = categories is None
        self.categories = categories or CategoryStore(db_url)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_all(self, user_id: str, filters: TaskFilters | None = None) -> TaskPage:
        """Return one page of the user's visible tasks, earliest due date first.

        Tasks without a due date sort last. total counts every match, not
        just the page.
        """
        filters = filters or TaskFilters()
        conditions = self._filter_conditions(user_id, filters)
        offset = (filters.page - 1) * filters.limit
        with self.engine.connect() as conn:
            total = conn.execute(select(func.count()).select_from(_tasks).where(*conditions)).scalar_one()
            rows = conn.execute(
                _select_tasks()
                .where(*conditions)
                .order_by(_tasks.c.due_date.asc().nulls_last(), _tasks.c.created_at.asc())
                .limit(filters.limit)
                .offset(offset)
            ).fetchall()
        return TaskPage(
            data=[_row_to_task(r) for r in rows],
            total=total,
            page=filters.page,
            limit=filters.limit,
            total_pages=math.ceil(total / filters.limit),
        )

    def find_one(self, task_id: str, user_id: str) -> Task:
        """Return one task. NotFound if missing or deleted, Forbidden if not owned."""
        with self.engine.connect() as conn:
            row = conn.execute(_select_tasks().where(_tasks.c.id == task_id)).fetchone()
        if row is None or row.deleted_at is not None:
            raise NotFound("Task not found")
        if row.user_id != user_id:
            raise Forbidden("You do not have permission to access this task")
        return _row_to_task(row)

    def stats(self, user_id: str, start: datetime | None = None, end: datetime | None = None) -> TaskStats:
        """Aggregate the user's visible tasks, optionally by created_at range."""
        conditions = [_tasks.c.user_id == user_id, _tasks.c.deleted_at.is_(None)]
        if start is not None:
            conditions.append(_tasks.c.created_at >= to_iso(start))
        if end is not None:
            conditions.append(_tasks.c.created_at <= to_iso(end))

        completed = _tasks.c.status == TaskStatus.COMPLETADA.value
        timed = completed & _tasks.c.actual_time.is_not(None)
        columns = [func.count().label("total")]
        columns += [func.count(case((_tasks.c.status == s.value, 1))).label(s.value) for s in TaskStatus]
        columns += [func.count(case((_tasks.c.priority == p.value, 1))).label(p.value) for p in TaskPriority]
        columns += [
            func.count(case((timed, 1))).label("timed_count"),
            func.sum(case((timed, _tasks.c.actual_time))).label("timed_minutes"),
        ]
        per_category = (
            select(
                _tasks.c.category_id,
                func.max(categories_table.c.name).label("category_name"),
                func.count().label("count"),
            )
            .select_from(_tasks.outerjoin(categories_table, _tasks.c.category_id == categories_table.c.id))
            .where(*conditions)
            .group_by(_tasks.c.category_id)
            .order_by(func.count().desc())
        )
        with self.engine.connect() as conn:
            agg = conn.execute(select(*columns).select_from(_tasks).where(*conditions)).fetchone()
            category_rows = conn.execute(per_category).fetchall()

        total = agg.total
        by_status = {s.value: getattr(agg, s.value) for s in TaskStatus}
        by_priority = {p.value: getattr(agg, p.value) for p in TaskPriority}
        completion_rate = round(by_status[TaskStatus.COMPLETADA.value] / total * 100, 2) if total else 0.0
        average = agg.timed_minutes / agg.timed_count / _MINUTES_PER_DAY if agg.timed_count else None
        return TaskStats(
            total=total,
            by_status=by_status,
            by_priority=by_priority,
            by_category=[CategoryCount(r.category_id, r.category_name, r.count) for r in category_rows],
            completion_rate=completion_rate,
            average_completion_time=average,
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, task: Task) -> Task:
        if task.category_id is not None:
            self._validate_category(task.category_id, task.user_id)
        now = _now_iso()
        task_id = str(uuid.uuid4())
        values = _to_column_values(
            {
                "status": task.status,
                "priority": task.priority,
                "due_date": task.due_date,
                "tags": task.tags,
            }
        )
        with self.engine.begin() as conn:
            conn.execute(
                _tasks.insert().values(
                    id=task_id,
                    user_id=task.user_id,
                    title=task.title,
                    description=task.description,
                    estimated_time=task.estimated_time,
                    actual_time=task.actual_time,
                    category_id=task.category_id,
                    created_at=now,
                    updated_at=now,
                    **values,
                )
            )
        logger.info("Created task %s for user %s", task_id, task.user_id)
        return self.find_one(task_id, task.user_id)

    def update(self, task_id: str, user_id: str, **fields) -> Task:
        """Write the given fields on an owned task.

        Only keywords passed are written; an explicit None clears a nullable
        field. category_id, when set, must name one of the user's categories.
        """
        self.find_one(task_id, user_id)
        values = {k: v for k, v in fields.items() if k in _UPDATABLE}
        null_required = [k for k in _NOT_NULL if k in values and values[k] is None]
        if null_required:
            raise BadRequest(f"{', '.join(null_required)} cannot be null")
        if values.get("category_id") is not None:
            self._validate_category(values["category_id"], user_id)
        if values:
            values = _to_column_values(values)
            values["updated_at"] = _now_iso()
            with self.engine.begin() as conn:
                conn.execute(_tasks.update().where(_tasks.c.id == task_id).values(**values))
        return self.find_one(task_id, user_id)

    def update_status(self, task_id: str, user_id: str, status: TaskStatus | str) -> Task:
        return self.update(task_id, user_id, status=status)

    def remove(self, task_id: str, user_id: str) -> None:
        """Soft delete an owned task."""
        self.find_one(task_id, user_id)
        now = _now_iso()
        with self.engine.begin() as conn:
            conn.execute(_tasks.update().where(_tasks.c.id == task_id).values(deleted_at=now, updated_at=now))
        logger.info("Deleted task %s for user %s", task_id, user_id)

    def close(self) -> None:
        self.engine.dispose()
        if self._owns_categories:
            self.categories.close()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _validate_category(self, category_id: str, user_id: str) -> None:
        try:
            self.categories.find_one(category_id, user_id)
        except NotFound as exc:
            raise BadRequest("Category not found") from exc
        except Forbidden as exc:
            raise BadRequest("Category does not belong to this user") from exc

    @staticmethod
    def _filter_conditions(user_id: str, filters: TaskFilters) -> list:
        conditions = [_tasks.c.user_id == user_id, _tasks.c.deleted_at.is_(None)]
        if filters.status is not None:
            conditions.append(_tasks.c.status == TaskStatus(filters.status).value)
        if filters.priority is not None:
            conditions.append(_tasks.c.priority == TaskPriority(filters.priority).value)
        if filters.category_id is not None:
            conditions.append(_tasks.c.category_id == filters.category_id)
        if filters.start_date is not None:
            conditions.append(_tasks.c.due_date >= to_iso(filters.start_date))
        if filters.end_date is not None:
            conditions.append(_tasks.c.due_date <= to_iso(filters.end_date))
        if filters.search:
            pattern = f"%{_like_escape(filters.search)}%"
            conditions.append(
                or_(
                    _tasks.c.title.ilike(pattern, escape="\\"),
                    _tasks.c.description.ilike(pattern, escape="\\"),
                )
            )
        if filters.tags:
            conditions.append(
                or_(*[_tasks.c.tags.like(f"%{_like_escape(json.dumps(tag))}%", escape="\\") for tag in filters.tags])
            )
        return conditions


def _row_to_task(row) -> Task:
    category = None
    if row.category_id is not None and row.category_name is not None:
        category = TaskCategory(id=row.category_id, name=row.category_name, color=row.category_color)
    return Task(
        id=row.id,
        user_id=row.user_id,
        title=row.title,
        description=row.description,
        status=TaskStatus(row.status),
        priority=TaskPriority(row.priority),
        due_date=from_iso(row.due_date),
        estimated_time=row.estimated_time,
        actual_time=row.actual_time,
        tags=json.loads(row.tags or "[]"),
        category_id=row.category_id,
        category=category,
        created_at=row.created_at,
        updated_at=row.updated_at,
        deleted_at=row.deleted_at,
    )
