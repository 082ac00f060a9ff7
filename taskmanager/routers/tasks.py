from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends, Query, Response, status
from sqlmodel import Session

from ..clock import Clock, get_clock
from ..config import CLEANUP_RETENTION_DAYS
from ..database import get_db
from ..schemas.task import (
    BulkDeleteResult,
    BulkTaskOperation,
    BulkTaskUpdate,
    BulkUpdateResult,
    PagedTasks,
    TaskCreate,
    TaskRead,
    TaskSearch,
    TaskStatistics,
    TaskUpdate,
)
from ..services.category_store import CategoryStore
from ..services.task_store import TaskStore

router = APIRouter()


def get_task_store(db: Session = Depends(get_db), clock: Clock = Depends(get_clock)) -> TaskStore:
    return TaskStore(db, categories=CategoryStore(db, clock), clock=clock)


@router.get("/tasks", response_model=List[TaskRead])
def get_tasks(
    include_completed: bool = Query(True, alias="includeCompleted"),
    store: TaskStore = Depends(get_task_store),
):
    """Get all live tasks, most urgent and most recent first."""
    return store.list_all(include_completed=include_completed)


@router.post("/tasks", response_model=TaskRead, status_code=status.HTTP_201_CREATED)
def create_task(task: TaskCreate, store: TaskStore = Depends(get_task_store)):
    """Create a new task."""
    return store.create(task)


@router.post("/tasks/search", response_model=PagedTasks)
def search_tasks(criteria: TaskSearch, store: TaskStore = Depends(get_task_store)):
    """Search tasks with filtering and pagination."""
    return store.search(criteria)


@router.get("/tasks/statistics", response_model=List[TaskStatistics])
def get_task_statistics(store: TaskStore = Depends(get_task_store)):
    return store.statistics()


@router.patch("/tasks/bulk", response_model=BulkUpdateResult)
def bulk_update_tasks(payload: BulkTaskUpdate, store: TaskStore = Depends(get_task_store)):
    """Apply the same partial update to several tasks at once."""
    updated = store.bulk_update(payload.task_ids, payload)
    return BulkUpdateResult(updated_count=updated, message=f"{updated} tasks updated successfully")


@router.delete("/tasks/bulk", response_model=BulkDeleteResult)
def bulk_delete_tasks(payload: BulkTaskOperation, store: TaskStore = Depends(get_task_store)):
    deleted = store.bulk_delete(payload.task_ids)
    return BulkDeleteResult(deleted_count=deleted, message=f"{deleted} tasks deleted successfully")


@router.delete("/tasks/cleanup", response_model=BulkDeleteResult)
def cleanup_deleted_tasks(
    days_old: int = Query(CLEANUP_RETENTION_DAYS, alias="daysOld"),
    store: TaskStore = Depends(get_task_store),
):
    """Permanently remove tasks soft deleted more than ``daysOld`` days ago."""
    deleted = store.cleanup_deleted(days_old=days_old)
    return BulkDeleteResult(deleted_count=deleted, message=f"{deleted} tasks permanently deleted")


@router.get("/tasks/priority/{priority}", response_model=List[TaskRead])
def get_tasks_by_priority(priority: int, store: TaskStore = Depends(get_task_store)):
    return store.list_by_priority(priority)


@router.get("/tasks/date-range", response_model=List[TaskRead])
def get_tasks_by_date_range(
    start_date: datetime = Query(..., alias="startDate"),
    end_date: datetime = Query(..., alias="endDate"),
    store: TaskStore = Depends(get_task_store),
):
    """Get tasks created between two calendar dates, inclusive."""
    return store.list_by_date_range(start_date, end_date)


@router.get("/tasks/{task_id}", response_model=TaskRead)
def get_task(task_id: int, store: TaskStore = Depends(get_task_store)):
    return store.get_by_id(task_id)


@router.put("/tasks/{task_id}", response_model=TaskRead)
def update_task(task_id: int, task_update: TaskUpdate, store: TaskStore = Depends(get_task_store)):
    """Replace every mutable field of a task."""
    return store.update(task_id, task_update)


@router.patch("/tasks/{task_id}/toggle", response_model=TaskRead)
def toggle_task_completion(task_id: int, store: TaskStore = Depends(get_task_store)):
    return store.toggle_completion(task_id)


@router.patch("/tasks/{task_id}/restore", response_model=TaskRead)
def restore_task(task_id: int, store: TaskStore = Depends(get_task_store)):
    """Bring back a soft deleted task."""
    return store.restore(task_id)


@router.delete("/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_task(task_id: int, store: TaskStore = Depends(get_task_store)):
    """Soft delete a task."""
    store.delete(task_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
