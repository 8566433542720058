"""
categories/store.py -- SQLAlchemy Core persistence for task categories.

Pattern: Repository + Data Mapper, same shape as auth/store.py.

Every read and write is ownership-scoped: find_one() raises NotFound for a
missing or soft-deleted row and Forbidden for a row owned by another user,
and update()/remove() go through find_one() first.

create_default_categories() is the registration hook. It is best-effort:
any database failure is logged and an empty list is returned, so a broken
seed never fails account creation.

categories_table is public so tasks/store.py can join it for the category
summary embedded in task reads.

Layer rule: categories/ may import from auth/ (errors, engine helper) and
core/. It does NOT import from api/ or tasks/.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, MetaData, String, Table, Text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from auth.errors import BadRequest, Forbidden, NotFound
from auth.store import create_store_engine
from categories.models import Category
from core.config import get_settings

logger = logging.getLogger("taskauth.categories")

_UPDATABLE = ("name", "color", "description")

# Seeded for every new account, in this order.
DEFAULT_CATEGORIES: list[dict[str, str]] = [
    {"name": "Personal", "color": "#3B82F6", "description": "Tareas personales"},
    {"name": "Trabajo", "color": "#10B981", "description": "Tareas de trabajo"},
    {"name": "Salud", "color": "#EF4444", "description": "Salud y ejercicio"},
    {"name": "Hogar", "color": "#F59E0B", "description": "Tareas del hogar"},
    {"name": "Estudio", "color": "#8B5CF6", "description": "Estudio y aprendizaje"},
]

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

categories_table = Table(
    "categories",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), nullable=False, index=True),
    Column("name", String(50), nullable=False),
    Column("color", String(7), nullable=False),
    Column("description", Text),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Column("deleted_at", String(32), index=True),  # NULL = visible
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


class CategoryStore:
    """Repository for Category entities."""

    def __init__(self, db_url: str | None = None) -> None:
        self.engine: Engine = create_store_engine(db_url or get_settings().database_url)
        _metadata.create_all(self.engine)

    def create_default_categories(self, user_id: str) -> list[Category]:
        """Insert DEFAULT_CATEGORIES for user_id in one transaction.

        Returns the created categories, or [] if the insert failed.
        """
        now = _now_iso()
        rows = [
            {
                "id": str(uuid.uuid4()),
                "user_id": user_id,
                "created_at": now,
                "updated_at": now,
                "deleted_at": None,
                **default,
            }
            for default in DEFAULT_CATEGORIES
        ]
        try:
            with self.engine.begin() as conn:
                conn.execute(categories_table.insert(), rows)
        except SQLAlchemyError:
            logger.exception("Failed to create default categories for user %s", user_id)
            return []
        return [Category(**row) for row in rows]

    def find_all(self, user_id: str) -> list[Category]:
        """Return the user's visible categories, oldest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                categories_table.select()
                .where((categories_table.c.user_id == user_id) & (categories_table.c.deleted_at.is_(None)))
                .order_by(categories_table.c.created_at.asc())
            ).fetchall()
        return [_row_to_category(r) for r in rows]

    def find_one(self, category_id: str, user_id: str) -> Category:
        """Return one category, enforcing visibility and ownership.

        Raises NotFound if missing or soft-deleted, Forbidden if owned by
        another user.
        """
        with self.engine.connect() as conn:
            row = conn.execute(categories_table.select().where(categories_table.c.id == category_id)).fetchone()
        if row is None or row.deleted_at is not None:
            raise NotFound("Category not found")
        if row.user_id != user_id:
            raise Forbidden("You do not have permission to access this category")
        return _row_to_category(row)

    def create(self, category: Category) -> Category:
        now = _now_iso()
        category_id = str(uuid.uuid4())
        with self.engine.begin() as conn:
            conn.execute(
                categories_table.insert().values(
                    id=category_id,
                    user_id=category.user_id,
                    name=category.name,
                    color=category.color,
                    description=category.description,
                    created_at=now,
                    updated_at=now,
                )
            )
        return self.find_one(category_id, category.user_id)

    def update(self, category_id: str, user_id: str, **fields) -> Category:
        """Update name, color and/or description on an owned category.

        Only the keywords passed are written. description=None clears the
        description; name and color are NOT NULL columns and reject None.
        """
        self.find_one(category_id, user_id)
        values = {k: v for k, v in fields.items() if k in _UPDATABLE}
        if any(values.get(k, "") is None for k in ("name", "color")):
            raise BadRequest("name and color cannot be null")
        if values:
            values["updated_at"] = _now_iso()
            with self.engine.begin() as conn:
                conn.execute(categories_table.update().where(categories_table.c.id == category_id).values(**values))
        return self.find_one(category_id, user_id)

    def remove(self, category_id: str, user_id: str) -> None:
        """Soft delete an owned category."""
        self.find_one(category_id, user_id)
        now = _now_iso()
        with self.engine.begin() as conn:
            conn.execute(
                categories_table.update().where(categories_table.c.id == category_id).values(deleted_at=now, updated_at=now)
            )

    def close(self) -> None:
        self.engine.dispose()


def _row_to_category(row) -> Category:
    return Category(
        id=row.id,
        user_id=row.user_id,
        name=row.name,
        color=row.color,
        description=row.description,
        created_at=row.created_at,
        updated_at=row.updated_at,
        deleted_at=row.deleted_at,
    )
