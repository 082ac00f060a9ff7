from datetime import timedelta
from decimal import Decimal
import math

import pytest
from sqlalchemy.exc import OperationalError

from taskmanager.errors import InvalidReference, NotFound, StorageFailure, ValidationError
from taskmanager.models import Task
from taskmanager.schemas.task import MAX_PAGE


def _failing_commit(*args, **kwargs):
    raise OperationalError("COMMIT", {}, Exception("disk I/O error"))


def test_create_minimal_task_defaults(task_store, clock):
    task = task_store.create({"title": "Buy milk", "priority": 1})

    assert task.priority_text == "Low"
    assert task.is_completed is False
    assert task.category_name == "Uncategorized"
    assert task.category_color is None
    assert task.due_status == "none"
    assert task.notifications_enabled is True
    assert task.created_at == clock.now
    assert task.updated_at == clock.now


def test_task_due_yesterday_is_overdue(task_store, clock):
    task = task_store.create({"title": "Pay rent", "dueDate": clock.now - timedelta(days=1)})

    assert task.is_overdue is True
    assert task.is_due_soon is False
    assert task.due_status == "overdue"


def test_task_due_in_a_few_hours_is_due_soon(task_store, clock):
    task = task_store.create({"title": "Call back", "dueDate": clock.now + timedelta(hours=3)})
    assert task.is_due_soon is True
    assert task.is_overdue is False

    clock.advance(hours=4)
    assert task_store.get_by_id(task.id).due_status == "overdue"


def test_round_trip_preserves_every_input_field(task_store, work, clock):
    due = clock.now + timedelta(days=5)
    created = task_store.create(
        {
            "title": "  Quarterly report  ",
            "description": "  numbers for Q3 ",
            "priority": 3,
            "categoryId": work.id,
            "dueDate": due,
            "estimatedHours": Decimal("2.50"),
            "notificationsEnabled": False,
        }
    )
    fetched = task_store.get_by_id(created.id)

    assert fetched == created
    assert fetched.title == "Quarterly report"
    assert fetched.description == "numbers for Q3"
    assert fetched.priority == 3
    assert fetched.priority_text == "High"
    assert fetched.category_id == work.id
    assert fetched.category_name == "Work"
    assert fetched.category_color == "#3B82F6"
    assert fetched.due_date == due
    assert fetched.estimated_hours == 2.5
    assert fetched.notifications_enabled is False


def test_invalid_input_writes_nothing(task_store):
    with pytest.raises(ValidationError) as exc_info:
        task_store.create({"title": " ", "priority": 4})
    assert {field for field, _ in exc_info.value.errors} == {"title", "priority"}
    assert task_store.list_all() == []


def test_create_rejects_missing_or_inactive_category(task_store, category_store, work):
    with pytest.raises(InvalidReference) as exc_info:
        task_store.create({"title": "Orphan", "categoryId": 999})
    assert "999" in exc_info.value.detail

    category_store.update(work.id, {"name": "Work", "isActive": False})
    with pytest.raises(InvalidReference):
        task_store.create({"title": "Late", "categoryId": work.id})


def test_list_all_orders_by_priority_then_recency(task_store, clock):
    low = task_store.create({"title": "low", "priority": 1})
    clock.advance(minutes=1)
    high_old = task_store.create({"title": "high old", "priority": 3})
    clock.advance(minutes=1)
    medium = task_store.create({"title": "medium", "priority": 2})
    clock.advance(minutes=1)
    high_new = task_store.create({"title": "high new", "priority": 3})

    ids = [task.id for task in task_store.list_all()]
    assert ids == [high_new.id, high_old.id, medium.id, low.id]


def test_list_all_can_exclude_completed(task_store):
    done = task_store.create({"title": "done"})
    open_task = task_store.create({"title": "open"})
    task_store.toggle_completion(done.id)

    assert [task.id for task in task_store.list_all(include_completed=False)] == [open_task.id]
    assert len(task_store.list_all(include_completed=True)) == 2


def test_update_overwrites_mutable_fields_only(task_store, work, clock):
    task = task_store.create({"title": "Draft", "description": "v1", "categoryId": work.id, "estimatedHours": 3})
    task_store.toggle_completion(task.id)
    clock.advance(hours=1)

    updated = task_store.update(task.id, {"title": "Final", "priority": 2})

    assert updated.title == "Final"
    assert updated.description is None
    assert updated.category_id is None
    assert updated.category_name == "Uncategorized"
    assert updated.estimated_hours is None
    assert updated.priority == 2
    assert updated.is_completed is True
    assert updated.created_at == task.created_at
    assert updated.updated_at == clock.now


def test_update_missing_or_deleted_task_is_not_found(task_store):
    with pytest.raises(NotFound):
        task_store.update(404, {"title": "nope"})

    task = task_store.create({"title": "gone"})
    task_store.delete(task.id)
    with pytest.raises(NotFound):
        task_store.update(task.id, {"title": "still gone"})


def test_update_with_unknown_category_is_invalid_reference(task_store):
    task = task_store.create({"title": "Draft"})
    with pytest.raises(InvalidReference):
        task_store.update(task.id, {"title": "Draft", "categoryId": 77})


def test_toggle_twice_restores_original_state(task_store, clock):
    task = task_store.create({"title": "Flip"})
    clock.advance(minutes=10)

    toggled = task_store.toggle_completion(task.id)
    assert toggled.is_completed is True
    assert toggled.updated_at == clock.now

    assert task_store.toggle_completion(task.id).is_completed is False
    with pytest.raises(NotFound):
        task_store.toggle_completion(999)


def test_delete_is_soft_and_hides_task(task_store, session, clock):
    task = task_store.create({"title": "Temp"})
    clock.advance(minutes=1)

    assert task_store.delete(task.id) is True
    assert task_store.exists(task.id) is False
    with pytest.raises(NotFound):
        task_store.get_by_id(task.id)
    with pytest.raises(NotFound):
        task_store.delete(task.id)

    row = session.get(Task, task.id)
    assert row.is_deleted is True
    assert row.deleted_at == clock.now


def test_restore_then_delete_stamps_fresh_deleted_at(task_store, session, clock):
    task = task_store.create({"title": "Come back"})
    task_store.delete(task.id)
    first_deleted_at = session.get(Task, task.id).deleted_at

    clock.advance(hours=2)
    restored = task_store.restore(task.id)
    assert restored.id == task.id
    row = session.get(Task, task.id)
    assert row.is_deleted is False
    assert row.deleted_at is None

    clock.advance(hours=1)
    task_store.delete(task.id)
    row = session.get(Task, task.id)
    assert row.is_deleted is True
    assert row.deleted_at == clock.now
    assert row.deleted_at > first_deleted_at


def test_restore_requires_a_deleted_task(task_store):
    task = task_store.create({"title": "Alive"})
    with pytest.raises(NotFound):
        task_store.restore(task.id)
    with pytest.raises(NotFound):
        task_store.restore(31337)


def test_cleanup_removes_only_old_deleted_tasks(task_store, session, clock):
    old = task_store.create({"title": "old"})
    recent = task_store.create({"title": "recent"})
    live = task_store.create({"title": "live"})

    task_store.delete(old.id)
    clock.advance(days=20)
    task_store.delete(recent.id)
    clock.advance(days=11)

    assert task_store.cleanup_deleted() == 1
    assert session.get(Task, old.id) is None
    assert session.get(Task, recent.id) is not None
    assert task_store.exists(live.id) is True

    assert task_store.cleanup_deleted(days_old=5) == 1
    assert session.get(Task, recent.id) is None

    with pytest.raises(ValidationError):
        task_store.cleanup_deleted(days_old=-1)


def test_search_matches_title_or_description_case_insensitively(task_store):
    task_store.create({"title": "Buy MILK"})
    task_store.create({"title": "Groceries", "description": "eggs and milk"})
    task_store.create({"title": "Gym"})

    result = task_store.search({"searchTerm": "Milk"})
    assert result.total_count == 2
    assert {task.title for task in result.tasks} == {"Buy MILK", "Groceries"}


def test_search_term_wildcards_are_literal(task_store):
    task_store.create({"title": "50% done"})
    task_store.create({"title": "500 items"})

    result = task_store.search({"searchTerm": "50%"})
    assert [task.title for task in result.tasks] == ["50% done"]


def test_search_filters_are_combined(task_store, work, clock):
    task_store.create({"title": "A", "priority": 3, "categoryId": work.id, "estimatedHours": 1})
    task_store.create({"title": "B", "priority": 3, "categoryId": work.id})
    task_store.create({"title": "C", "priority": 1, "categoryId": work.id, "estimatedHours": 2})
    done = task_store.create({"title": "D", "priority": 3, "estimatedHours": 4})
    task_store.toggle_completion(done.id)

    result = task_store.search({"priority": 3, "categoryId": work.id, "hasEstimate": True})
    assert [task.title for task in result.tasks] == ["A"]

    result = task_store.search({"isCompleted": True})
    assert [task.title for task in result.tasks] == ["D"]

    result = task_store.search({"hasEstimate": False})
    assert [task.title for task in result.tasks] == ["B"]


def test_search_by_dates_and_overdue(task_store, clock):
    start = clock.now
    overdue = task_store.create({"title": "late", "dueDate": start - timedelta(days=2)})
    clock.advance(days=1)
    upcoming = task_store.create({"title": "soon", "dueDate": start + timedelta(days=3)})
    clock.advance(days=1)
    task_store.create({"title": "undated"})

    result = task_store.search({"isOverdue": True})
    assert [task.id for task in result.tasks] == [overdue.id]

    result = task_store.search({"isOverdue": False})
    assert overdue.id not in {task.id for task in result.tasks}
    assert result.total_count == 2

    result = task_store.search({"dueAfter": start, "dueBefore": start + timedelta(days=5)})
    assert [task.id for task in result.tasks] == [upcoming.id]

    result = task_store.search({"createdAfter": start + timedelta(hours=1), "createdBefore": start + timedelta(days=1)})
    assert [task.id for task in result.tasks] == [upcoming.id]


def test_search_pagination_over_45_tasks(task_store):
    for number in range(45):
        task_store.create({"title": f"Task {number}"})

    page = task_store.search({"pageSize": 20, "page": 3})
    assert len(page.tasks) == 5
    assert page.total_count == 45
    assert page.total_pages == math.ceil(45 / 20) == 3
    assert page.has_next_page is False
    assert page.has_previous_page is True

    first = task_store.search({"pageSize": 20, "page": 1})
    assert first.has_next_page is True
    assert first.has_previous_page is False

    beyond = task_store.search({"pageSize": 20, "page": 4})
    assert beyond.tasks == []
    assert beyond.total_count == 45


def test_search_with_no_matches_has_zero_pages(task_store):
    result = task_store.search({"searchTerm": "nothing"})
    assert result.total_count == 0
    assert result.total_pages == 0
    assert result.has_next_page is False


def test_bulk_update_skips_unknown_ids(task_store):
    first = task_store.create({"title": "one", "priority": 2})
    second = task_store.create({"title": "two"})

    count = task_store.bulk_update([first.id, second.id, 999], {"isCompleted": True})

    assert count == 2
    assert task_store.get_by_id(first.id).is_completed is True
    assert task_store.get_by_id(second.id).is_completed is True
    assert task_store.get_by_id(first.id).priority == 2


def test_bulk_update_applies_only_present_fields(task_store, work, clock):
    task = task_store.create({"title": "keep", "description": "as is", "priority": 1, "estimatedHours": 5})
    clock.advance(minutes=3)

    assert task_store.bulk_update([task.id], {"priority": 3, "categoryId": work.id}) == 1

    updated = task_store.get_by_id(task.id)
    assert updated.priority == 3
    assert updated.category_name == "Work"
    assert updated.description == "as is"
    assert updated.estimated_hours == 5.0
    assert updated.updated_at == clock.now


def test_bulk_update_validates_patch_and_ids(task_store):
    task = task_store.create({"title": "x"})
    with pytest.raises(InvalidReference):
        task_store.bulk_update([task.id], {"categoryId": 42})
    with pytest.raises(ValidationError):
        task_store.bulk_update([task.id], {"priority": 9})
    with pytest.raises(ValidationError):
        task_store.bulk_update([], {"isCompleted": True})


def test_bulk_delete_counts_only_live_tasks(task_store):
    first = task_store.create({"title": "one"})
    second = task_store.create({"title": "two"})
    third = task_store.create({"title": "three"})
    task_store.delete(third.id)

    assert task_store.bulk_delete([first.id, second.id, third.id, 1000]) == 2
    assert task_store.list_all() == []


def test_statistics_rows_add_up(task_store, category_store, work, clock):
    home = category_store.create({"name": "Home"})
    category_store.create({"name": "Empty"})

    done = task_store.create({"title": "report", "categoryId": work.id, "estimatedHours": "2.5"})
    task_store.toggle_completion(done.id)
    task_store.create(
        {
            "title": "deploy",
            "priority": 3,
            "categoryId": work.id,
            "estimatedHours": "1.25",
            "dueDate": clock.now - timedelta(days=1),
        }
    )
    task_store.create({"title": "laundry", "categoryId": home.id, "dueDate": clock.now + timedelta(hours=5)})
    loose = task_store.create({"title": "misc"})
    task_store.toggle_completion(loose.id)
    removed = task_store.create({"title": "removed", "categoryId": home.id})
    task_store.delete(removed.id)

    rows = task_store.statistics()
    labels = [row.category for row in rows]
    assert labels == ["Total", "Home", "Work", "Uncategorized"]

    total = rows[0]
    assert total.total_tasks == 4
    assert total.completed_tasks == 2
    assert total.pending_tasks == 2
    assert total.total_tasks == total.completed_tasks + total.pending_tasks
    assert total.high_priority_pending == 1
    assert total.overdue_tasks == 1
    assert total.due_soon_tasks == 1
    assert total.completion_percentage == 50.0
    assert sum(row.total_tasks for row in rows[1:]) == total.total_tasks

    work_row = rows[2]
    assert work_row.total_tasks == 2
    assert work_row.total_estimated_hours == 3.75
    assert work_row.completed_estimated_hours == 2.5
    assert work_row.completion_percentage == 50.0

    assert rows[3].completion_percentage == 100.0


def test_statistics_on_empty_store(task_store):
    rows = task_store.statistics()
    assert len(rows) == 1
    assert rows[0].category == "Total"
    assert rows[0].total_tasks == 0
    assert rows[0].completion_percentage == 0.0


def test_list_by_priority_and_date_range(task_store, clock):
    first = task_store.create({"title": "first", "priority": 2})
    clock.advance(days=2)
    second = task_store.create({"title": "second", "priority": 2})
    task_store.create({"title": "other", "priority": 1})

    assert [task.id for task in task_store.list_by_priority(2)] == [second.id, first.id]
    with pytest.raises(ValidationError):
        task_store.list_by_priority(4)

    start = clock.now - timedelta(days=2)
    in_range = task_store.list_by_date_range(start, start)
    assert [task.id for task in in_range] == [first.id]
    with pytest.raises(ValidationError):
        task_store.list_by_date_range(clock.now, start)


def test_exists_reflects_visibility(task_store):
    task = task_store.create({"title": "here"})
    assert task_store.exists(task.id) is True
    assert task_store.exists(task.id + 1) is False


def test_timestamps_round_trip_as_naive_utc(task_store, session, clock):
    task = task_store.create({"title": "Stamp", "dueDate": clock.now + timedelta(days=2)})
    task_store.delete(task.id)
    session.expire_all()

    row = session.get(Task, task.id)
    assert row.created_at == clock.now
    assert row.created_at.tzinfo is None
    assert row.deleted_at == clock.now
    assert row.due_date == clock.now + timedelta(days=2)


def test_search_with_huge_page_number_returns_empty_page(task_store):
    task_store.create({"title": "only"})

    result = task_store.search({"page": 10**19, "pageSize": 20})
    assert result.tasks == []
    assert result.total_count == 1
    assert result.page == MAX_PAGE
    assert result.has_next_page is False


def test_bulk_update_commit_failure_changes_nothing(task_store, session, monkeypatch):
    first = task_store.create({"title": "one"})
    second = task_store.create({"title": "two"})

    monkeypatch.setattr(session, "commit", _failing_commit)
    with pytest.raises(StorageFailure):
        task_store.bulk_update([first.id, second.id], {"isCompleted": True, "priority": 3})
    monkeypatch.undo()

    for task_id in (first.id, second.id):
        task = task_store.get_by_id(task_id)
        assert task.is_completed is False
        assert task.priority == 1


def test_bulk_delete_commit_failure_changes_nothing(task_store, session, monkeypatch):
    first = task_store.create({"title": "one"})
    second = task_store.create({"title": "two"})

    monkeypatch.setattr(session, "commit", _failing_commit)
    with pytest.raises(StorageFailure):
        task_store.bulk_delete([first.id, second.id])
    monkeypatch.undo()

    assert sorted(task.id for task in task_store.list_all()) == sorted([first.id, second.id])
