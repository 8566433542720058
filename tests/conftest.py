"""
tests/conftest.py -- Shared test fixtures for taskauth unit and integration tests.

This module provides:
  - db_url: a fresh named shared-memory SQLite URI per test
  - user_store / session_store / category_store / task_store: stores bound
    to db_url
  - manager: a SessionManager wired to those stores
  - api_client: TestClient over the real app with a patched lifespan

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool, and because the
stores each open their own engine. Plain :memory: DBs are
per-connection and would present a blank schema to each of them. The named
URI format (file:name?mode=memory&cache=shared&uri=true) shares one
in-memory instance across all connections in the same process.

Environment must be set before any auth/core import:
  DEBUG          -- dev mode so Settings accepts the test configuration
  SECRET_KEY     -- fixed, so get_settings.cache_clear() never rotates it
  BCRYPT_ROUNDS  -- minimum cost keeps the suite fast
  ALLOWED_HOSTS  -- TestClient sends Host: testserver
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set environment before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SECRET_KEY", "test-secret-key-0123456789abcdef0123456789abcdef")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.sessions import SessionManager
from auth.store import SessionStore, UserStore
from categories.store import CategoryStore
from tasks.store import TaskStore

PASSWORD = "pw123456"


# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def db_url() -> str:
    """Unique shared-memory database per test so no state leaks between tests."""
    return f"sqlite:///file:taskauth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


@pytest.fixture
def user_store(db_url: str) -> Generator[UserStore, None, None]:
    store = UserStore(db_url)
    yield store
    store.close()


@pytest.fixture
def session_store(db_url: str) -> Generator[SessionStore, None, None]:
    store = SessionStore(db_url)
    yield store
    store.close()


@pytest.fixture
def category_store(db_url: str) -> Generator[CategoryStore, None, None]:
    store = CategoryStore(db_url)
    yield store
    store.close()


@pytest.fixture
def task_store(db_url: str, category_store: CategoryStore) -> Generator[TaskStore, None, None]:
    store = TaskStore(db_url, categories=category_store)
    yield store
    store.close()


@pytest.fixture
def manager(user_store: UserStore, session_store: SessionStore, category_store: CategoryStore) -> SessionManager:
    return SessionManager(user_store, session_store, category_store)


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------


def _patch_lifespan(manager: SessionManager, category_store: CategoryStore, task_store: TaskStore):
    """Return an async context manager that replaces the real lifespan.

    Wires the per-test stores into app.state so routes see the isolated
    database rather than settings.database_url.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = manager.users
        app.state.session_store = manager.sessions
        app.state.category_store = category_store
        app.state.task_store = task_store
        app.state.session_manager = manager
        yield

    return test_lifespan


@pytest.fixture
def api_client(
    manager: SessionManager, category_store: CategoryStore, task_store: TaskStore
) -> Generator[TestClient, None, None]:
    """Yield a TestClient over the real app backed by this test's stores."""
    app.router.lifespan_context = _patch_lifespan(manager, category_store, task_store)
    with TestClient(app, raise_server_exceptions=True) as client:
        yield client


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def register_and_login(
    client: TestClient,
    email: str = "a@x.com",
    password: str = PASSWORD,
    platform: str = "WEB",
    device_label: str | None = None,
) -> dict:
    """Register (ignoring 409 for repeat calls) and log in; return the login body."""
    client.post("/auth/register", json={"email": email, "password": password})
    body = {"email": email, "password": password, "platform": platform}
    if device_label is not None:
        body["deviceLabel"] = device_label
    resp = client.post("/auth/login", json=body)
    assert resp.status_code == 200, resp.text
    return resp.json()


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
