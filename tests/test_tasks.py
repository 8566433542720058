"""Unit tests for tasks/store.py -- ownership-scoped task CRUD, filters and stats."""

from datetime import datetime, timedelta, timezone

import pytest

from auth.errors import BadRequest, Forbidden, NotFound
from categories.models import Category
from tasks.models import Task, TaskFilters, TaskPriority, TaskStatus

ALICE = "alice-user-id"
BOB = "bob-user-id"

DAY = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def _task(store, user_id: str = ALICE, title: str = "Write report", **kwargs) -> Task:
    return store.create(Task(user_id=user_id, title=title, **kwargs))


def _category(category_store, user_id: str = ALICE, name: str = "Work") -> Category:
    return category_store.create(Category(user_id=user_id, name=name, color="#3B82F6"))


# ---------------------------------------------------------------------------
# CRUD and ownership
# ---------------------------------------------------------------------------


def test_create_applies_defaults(task_store):
    created = _task(task_store)
    assert created.id
    assert created.status == TaskStatus.PENDIENTE
    assert created.priority == TaskPriority.MEDIA
    assert created.tags == []
    assert created.category is None
    assert created.created_at == created.updated_at


def test_create_round_trips_fields(task_store, category_store):
    work = _category(category_store)
    created = _task(
        task_store,
        description="Quarterly numbers",
        priority=TaskPriority.URGENTE,
        due_date=DAY,
        estimated_time=90,
        tags=["finance", "q1"],
        category_id=work.id,
    )
    found = task_store.find_one(created.id, ALICE)
    assert found.description == "Quarterly numbers"
    assert found.priority == TaskPriority.URGENTE
    assert found.due_date == DAY
    assert found.estimated_time == 90
    assert found.tags == ["finance", "q1"]
    assert (found.category.id, found.category.name, found.category.color) == (work.id, "Work", "#3B82F6")


def test_naive_due_date_is_stored_as_utc(task_store):
    created = _task(task_store, due_date=datetime(2026, 3, 1, 9, 0))
    assert created.due_date == DAY


def test_find_one_missing(task_store):
    with pytest.raises(NotFound):
        task_store.find_one("missing", ALICE)


def test_find_one_other_owner_is_forbidden(task_store):
    created = _task(task_store)
    with pytest.raises(Forbidden):
        task_store.find_one(created.id, BOB)


def test_update_partial(task_store):
    created = _task(task_store, description="draft", tags=["a"])
    updated = task_store.update(created.id, ALICE, title="Final report", priority=TaskPriority.ALTA)
    assert updated.title == "Final report"
    assert updated.priority == TaskPriority.ALTA
    assert updated.description == "draft"
    assert updated.tags == ["a"]
    assert updated.updated_at >= created.updated_at


def test_update_explicit_none_clears_nullable_fields(task_store, category_store):
    work = _category(category_store)
    created = _task(task_store, description="draft", due_date=DAY, category_id=work.id)
    updated = task_store.update(created.id, ALICE, description=None, due_date=None, category_id=None)
    assert updated.description is None
    assert updated.due_date is None
    assert updated.category_id is None
    assert updated.category is None


def test_update_rejects_null_required_fields(task_store):
    created = _task(task_store)
    with pytest.raises(BadRequest):
        task_store.update(created.id, ALICE, title=None)
    assert task_store.find_one(created.id, ALICE).title == "Write report"


def test_update_ignores_unknown_fields(task_store):
    created = _task(task_store)
    updated = task_store.update(created.id, ALICE, user_id=BOB, deleted_at="2026-01-01")
    assert updated.user_id == ALICE
    assert updated.deleted_at is None


def test_update_other_owner_is_forbidden(task_store):
    created = _task(task_store)
    with pytest.raises(Forbidden):
        task_store.update(created.id, BOB, title="Mine now")
    assert task_store.find_one(created.id, ALICE).title == "Write report"


def test_update_status(task_store):
    created = _task(task_store)
    updated = task_store.update_status(created.id, ALICE, TaskStatus.EN_PROGRESO)
    assert updated.status == TaskStatus.EN_PROGRESO


def test_remove_is_soft(task_store):
    created = _task(task_store)
    task_store.remove(created.id, ALICE)
    assert task_store.find_all(ALICE).total == 0
    with pytest.raises(NotFound):
        task_store.find_one(created.id, ALICE)
    with pytest.raises(NotFound):
        task_store.remove(created.id, ALICE)


def test_remove_other_owner_is_forbidden(task_store):
    created = _task(task_store)
    with pytest.raises(Forbidden):
        task_store.remove(created.id, BOB)
    assert task_store.find_all(ALICE).total == 1


# ---------------------------------------------------------------------------
# Category validation
# ---------------------------------------------------------------------------


def test_create_with_missing_category_is_bad_request(task_store):
    with pytest.raises(BadRequest, match="Category not found"):
        _task(task_store, category_id="00000000-0000-0000-0000-000000000000")
    assert task_store.find_all(ALICE).total == 0


def test_create_with_foreign_category_is_bad_request(task_store, category_store):
    bobs = _category(category_store, user_id=BOB)
    with pytest.raises(BadRequest, match="does not belong"):
        _task(task_store, category_id=bobs.id)


def test_create_with_deleted_category_is_bad_request(task_store, category_store):
    work = _category(category_store)
    category_store.remove(work.id, ALICE)
    with pytest.raises(BadRequest):
        _task(task_store, category_id=work.id)


def test_update_validates_category(task_store, category_store):
    created = _task(task_store)
    bobs = _category(category_store, user_id=BOB)
    with pytest.raises(BadRequest):
        task_store.update(created.id, ALICE, category_id=bobs.id)
    assert task_store.find_one(created.id, ALICE).category_id is None


# ---------------------------------------------------------------------------
# Listing: filters and pagination
# ---------------------------------------------------------------------------


def test_find_all_scoped_to_owner(task_store):
    _task(task_store, title="mine")
    _task(task_store, user_id=BOB, title="theirs")
    page = task_store.find_all(ALICE)
    assert [t.title for t in page.data] == ["mine"]
    assert page.total == 1


def test_find_all_orders_by_due_date_with_undated_last(task_store):
    _task(task_store, title="undated")
    _task(task_store, title="later", due_date=DAY + timedelta(days=2))
    _task(task_store, title="sooner", due_date=DAY)
    assert [t.title for t in task_store.find_all(ALICE).data] == ["sooner", "later", "undated"]


def test_filter_by_status_and_priority(task_store):
    _task(task_store, title="a", status=TaskStatus.COMPLETADA, priority=TaskPriority.ALTA)
    _task(task_store, title="b", status=TaskStatus.COMPLETADA, priority=TaskPriority.BAJA)
    _task(task_store, title="c", priority=TaskPriority.ALTA)
    page = task_store.find_all(ALICE, TaskFilters(status=TaskStatus.COMPLETADA, priority=TaskPriority.ALTA))
    assert [t.title for t in page.data] == ["a"]


def test_filter_by_category(task_store, category_store):
    work = _category(category_store)
    _task(task_store, title="filed", category_id=work.id)
    _task(task_store, title="loose")
    page = task_store.find_all(ALICE, TaskFilters(category_id=work.id))
    assert [t.title for t in page.data] == ["filed"]


def test_filter_by_due_date_range_is_inclusive(task_store):
    for offset in range(5):
        _task(task_store, title=f"d{offset}", due_date=DAY + timedelta(days=offset))
    _task(task_store, title="undated")
    filters = TaskFilters(start_date=DAY + timedelta(days=1), end_date=DAY + timedelta(days=3))
    assert [t.title for t in task_store.find_all(ALICE, filters).data] == ["d1", "d2", "d3"]


def test_search_matches_title_or_description_case_insensitively(task_store):
    _task(task_store, title="Call the Plumber")
    _task(task_store, title="Groceries", description="milk, eggs, plumbing tape")
    _task(task_store, title="Gym")
    page = task_store.find_all(ALICE, TaskFilters(search="PLUMB"))
    assert sorted(t.title for t in page.data) == ["Call the Plumber", "Groceries"]


def test_search_treats_wildcards_literally(task_store):
    _task(task_store, title="100% done")
    _task(task_store, title="1000 lines")
    page = task_store.find_all(ALICE, TaskFilters(search="0%"))
    assert [t.title for t in page.data] == ["100% done"]


def test_filter_by_any_tag(task_store):
    _task(task_store, title="a", tags=["home", "weekend"])
    _task(task_store, title="b", tags=["work"])
    _task(task_store, title="c", tags=["homework"])
    page = task_store.find_all(ALICE, TaskFilters(tags=["home", "work"]))
    assert sorted(t.title for t in page.data) == ["a", "b"]


def test_pagination(task_store):
    for i in range(5):
        _task(task_store, title=f"t{i}", due_date=DAY + timedelta(hours=i))
    page = task_store.find_all(ALICE, TaskFilters(page=2, limit=2))
    assert [t.title for t in page.data] == ["t2", "t3"]
    assert (page.total, page.page, page.limit, page.total_pages) == (5, 2, 2, 3)

    last = task_store.find_all(ALICE, TaskFilters(page=3, limit=2))
    assert [t.title for t in last.data] == ["t4"]


def test_empty_page(task_store):
    page = task_store.find_all(ALICE)
    assert page.data == []
    assert (page.total, page.total_pages) == (0, 0)


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------


def test_stats_counts_and_rates(task_store, category_store):
    work = _category(category_store)
    _task(task_store, status=TaskStatus.COMPLETADA, priority=TaskPriority.ALTA, actual_time=1440, category_id=work.id)
    _task(task_store, status=TaskStatus.COMPLETADA, actual_time=2880, category_id=work.id)
    _task(task_store, status=TaskStatus.EN_PROGRESO, priority=TaskPriority.ALTA, category_id=work.id)
    _task(task_store, status=TaskStatus.PENDIENTE, priority=TaskPriority.BAJA)
    _task(task_store, user_id=BOB, status=TaskStatus.COMPLETADA)

    stats = task_store.stats(ALICE)
    assert stats.total == 4
    assert stats.by_status == {"PENDIENTE": 1, "EN_PROGRESO": 1, "COMPLETADA": 2, "CANCELADA": 0}
    assert stats.by_priority == {"BAJA": 1, "MEDIA": 1, "ALTA": 2, "URGENTE": 0}
    assert stats.completion_rate == 50.0
    assert stats.average_completion_time == pytest.approx(1.5)
    assert [(c.category_id, c.category_name, c.count) for c in stats.by_category] == [
        (work.id, "Work", 3),
        (None, None, 1),
    ]


def test_stats_average_ignores_completed_tasks_without_actual_time(task_store):
    _task(task_store, status=TaskStatus.COMPLETADA, actual_time=720)
    _task(task_store, status=TaskStatus.COMPLETADA)
    _task(task_store, status=TaskStatus.PENDIENTE, actual_time=9999)
    stats = task_store.stats(ALICE)
    assert stats.average_completion_time == pytest.approx(0.5)
    assert stats.completion_rate == pytest.approx(66.67)


def test_stats_excludes_deleted_tasks(task_store):
    kept = _task(task_store, status=TaskStatus.COMPLETADA)
    gone = _task(task_store)
    task_store.remove(gone.id, ALICE)
    stats = task_store.stats(ALICE)
    assert stats.total == 1
    assert stats.completion_rate == 100.0
    assert task_store.find_one(kept.id, ALICE)


def test_stats_without_tasks(task_store):
    stats = task_store.stats(ALICE)
    assert stats.total == 0
    assert stats.completion_rate == 0.0
    assert stats.average_completion_time is None
    assert stats.by_category == []


def test_stats_created_at_range(task_store):
    _task(task_store)
    past = datetime.now(timezone.utc) - timedelta(days=1)
    future = datetime.now(timezone.utc) + timedelta(days=1)
    assert task_store.stats(ALICE, start=past, end=future).total == 1
    assert task_store.stats(ALICE, start=future).total == 0
    assert task_store.stats(ALICE, end=past).total == 0
