"""
categories/models.py -- Domain dataclass for task categories.

Pure data container. Ownership checks and soft deletion live in
categories/store.py.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Category:
    """A user-owned label for grouping tasks.

    color is a #RRGGBB hex string. deleted_at is set on soft delete; rows
    with deleted_at set are invisible to every read path.
    """

    user_id: str
    name: str
    color: str
    id: str | None = None
    description: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    deleted_at: str | None = None
