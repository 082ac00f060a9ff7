import logging
from datetime import datetime, time, timedelta
from typing import Any, Iterable, List, Optional

from sqlalchemy import and_, case, func, not_, or_
from sqlalchemy.orm import selectinload
from sqlmodel import Session, select

from ..clock import Clock, to_naive_utc, utcnow
from ..errors import InvalidReference, NotFound, ValidationError
from ..models import Category, Priority, Task, completion_percentage
from ..models.task import DUE_SOON_WINDOW
from ..schemas.base import validate_input
from ..schemas.task import (
    PRIORITY_MESSAGE,
    UNCATEGORIZED,
    BulkTaskOperation,
    PagedTasks,
    TaskCreate,
    TaskPatch,
    TaskRead,
    TaskSearch,
    TaskStatistics,
    TaskUpdate,
)
from .base import storage_errors
from .category_store import CategoryStore

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 30
TOTAL_LABEL = "Total"


def _not_deleted():
    return Task.is_deleted.is_(False)


def _overdue(now: datetime):
    return and_(Task.due_date.is_not(None), Task.due_date < now, Task.is_completed.is_(False))


def _due_soon(now: datetime):
    return and_(
        Task.due_date.is_not(None),
        Task.due_date >= now,
        Task.due_date <= now + DUE_SOON_WINDOW,
        Task.is_completed.is_(False),
    )


def _urgent_first(query):
    # Highest priority first, newest first within a priority.
    return query.order_by(Task.priority.desc(), Task.created_at.desc(), Task.id.desc())


class TaskStore:
    """Persistence and retrieval of tasks.

    Every read path filters out soft-deleted rows except ``restore`` and
    ``cleanup_deleted``, which only look at deleted ones. Derived fields
    (overdue, due soon, category name) are computed from the injected clock
    at read time and never stored.
    """

    def __init__(self, session: Session, categories: Optional[CategoryStore] = None, clock: Clock = utcnow):
        self._session = session
        self._clock = clock
        self._categories = categories or CategoryStore(session, clock)

    # ---- retrieval ----

    def list_all(self, include_completed: bool = True) -> List[TaskRead]:
        logger.debug("Retrieving all tasks. include_completed=%s", include_completed)
        query = select(Task).options(selectinload(Task.category)).where(_not_deleted())
        if not include_completed:
            query = query.where(Task.is_completed.is_(False))
        return self._fetch(_urgent_first(query), "listing tasks")

    def get_by_id(self, task_id: int) -> TaskRead:
        task = self._find(task_id, "fetching")
        return self._enrich(task, self._clock())

    def exists(self, task_id: int) -> bool:
        with storage_errors(self._session, f"checking task {task_id}"):
            found = self._session.exec(select(Task.id).where(Task.id == task_id, _not_deleted())).first()
        return found is not None

    def list_by_priority(self, priority: int) -> List[TaskRead]:
        if priority not in {p.value for p in Priority}:
            raise ValidationError([("priority", PRIORITY_MESSAGE)])
        query = (
            select(Task)
            .options(selectinload(Task.category))
            .where(_not_deleted(), Task.priority == priority)
            .order_by(Task.created_at.desc(), Task.id.desc())
        )
        return self._fetch(query, f"listing tasks with priority {priority}")

    def list_by_date_range(self, start: datetime, end: datetime) -> List[TaskRead]:
        """Tasks created on any calendar day from ``start`` to ``end`` inclusive."""
        first_day = to_naive_utc(start).date()
        last_day = to_naive_utc(end).date()
        if first_day > last_day:
            raise ValidationError([("startDate", "Start date must not be after end date")])
        lower = datetime.combine(first_day, time.min)
        upper = datetime.combine(last_day + timedelta(days=1), time.min)
        query = (
            select(Task)
            .options(selectinload(Task.category))
            .where(_not_deleted(), Task.created_at >= lower, Task.created_at < upper)
            .order_by(Task.created_at.desc(), Task.id.desc())
        )
        return self._fetch(query, "listing tasks by date range")

    # ---- mutation ----

    def create(self, data: Any) -> TaskRead:
        payload = validate_input(TaskCreate, data)
        self._ensure_category(payload.category_id)

        now = self._clock()
        task = Task(
            **payload.model_dump(),
            is_completed=False,
            is_deleted=False,
            created_at=now,
            updated_at=now,
        )
        self._commit(f"creating task {payload.title!r}", task)
        logger.info("Created task with ID %s", task.id)
        return self._enrich(task, now)

    def update(self, task_id: int, data: Any) -> TaskRead:
        task = self._find(task_id, "updating")
        payload = validate_input(TaskUpdate, data)
        self._ensure_category(payload.category_id)

        now = self._clock()
        for field, value in payload.model_dump().items():
            setattr(task, field, value)
        task.mark_updated(now)
        self._commit(f"updating task {task_id}", task)
        logger.info("Updated task with ID %s", task_id)
        return self._enrich(task, now)

    def toggle_completion(self, task_id: int) -> TaskRead:
        task = self._find(task_id, "toggling")
        now = self._clock()
        task.toggle_completion(now)
        self._commit(f"toggling task {task_id}", task)
        logger.info("Toggled task %s; is_completed=%s", task_id, task.is_completed)
        return self._enrich(task, now)

    def delete(self, task_id: int) -> bool:
        task = self._find(task_id, "deleting")
        task.mark_deleted(self._clock())
        self._commit(f"deleting task {task_id}")
        logger.info("Soft deleted task with ID %s", task_id)
        return True

    def restore(self, task_id: int) -> TaskRead:
        with storage_errors(self._session, f"fetching deleted task {task_id}"):
            task = self._session.exec(select(Task).where(Task.id == task_id, Task.is_deleted.is_(True))).first()
        if task is None:
            logger.warning("Deleted task with ID %s not found for restore", task_id)
            raise NotFound(f"Deleted task with ID {task_id} was not found")

        now = self._clock()
        task.restore(now)
        self._commit(f"restoring task {task_id}", task)
        logger.info("Restored task with ID %s", task_id)
        return self._enrich(task, now)

    def cleanup_deleted(self, days_old: int = DEFAULT_RETENTION_DAYS) -> int:
        """Permanently remove tasks soft deleted more than ``days_old`` days ago.

        Irreversible. Returns the number of rows removed.
        """
        if days_old < 0:
            raise ValidationError([("daysOld", "Retention must be zero or more days")])
        cutoff = self._clock() - timedelta(days=days_old)
        with storage_errors(self._session, "cleaning up deleted tasks"):
            expired = self._session.exec(
                select(Task).where(
                    Task.is_deleted.is_(True),
                    Task.deleted_at.is_not(None),
                    Task.deleted_at < cutoff,
                )
            ).all()
            for task in expired:
                self._session.delete(task)
            self._session.commit()
        logger.info("Permanently deleted %d tasks deleted before %s", len(expired), cutoff.isoformat())
        return len(expired)

    # ---- search ----

    def search(self, criteria: Any = None) -> PagedTasks:
        search = validate_input(TaskSearch, criteria or {})
        now = self._clock()
        conditions = [_not_deleted()]

        if search.search_term:
            term = search.search_term.lower()
            conditions.append(
                or_(
                    func.lower(Task.title).contains(term, autoescape=True),
                    func.lower(Task.description).contains(term, autoescape=True),
                )
            )
        if search.is_completed is not None:
            conditions.append(Task.is_completed.is_(search.is_completed))
        if search.priority is not None:
            conditions.append(Task.priority == search.priority)
        if search.category_id is not None:
            conditions.append(Task.category_id == search.category_id)
        if search.created_after is not None:
            conditions.append(Task.created_at >= search.created_after)
        if search.created_before is not None:
            conditions.append(Task.created_at <= search.created_before)
        if search.due_after is not None:
            conditions.append(Task.due_date >= search.due_after)
        if search.due_before is not None:
            conditions.append(Task.due_date <= search.due_before)
        if search.is_overdue is not None:
            conditions.append(_overdue(now) if search.is_overdue else not_(_overdue(now)))
        if search.has_estimate is not None:
            conditions.append(
                Task.estimated_hours.is_not(None) if search.has_estimate else Task.estimated_hours.is_(None)
            )

        query = (
            _urgent_first(select(Task).options(selectinload(Task.category)).where(*conditions))
            .offset((search.page - 1) * search.page_size)
            .limit(search.page_size)
        )
        with storage_errors(self._session, "searching tasks"):
            total_count = self._session.exec(select(func.count(Task.id)).where(*conditions)).one()
            tasks = self._session.exec(query).all()

        logger.debug("Search %r matched %d tasks", search.search_term, total_count)
        return PagedTasks.build(
            tasks=[self._enrich(task, now) for task in tasks],
            total_count=total_count,
            page=search.page,
            page_size=search.page_size,
        )

    # ---- bulk ----

    def bulk_update(self, task_ids: Iterable[int], patch: Any) -> int:
        """Apply the fields present in ``patch`` to every listed live task.

        Unknown or deleted ids are skipped. All rows commit together.
        """
        ids = self._check_ids(task_ids)
        changes = validate_input(TaskPatch, patch).changes()
        self._ensure_category(changes.get("category_id"))

        now = self._clock()
        with storage_errors(self._session, "bulk updating tasks"):
            tasks = self._session.exec(select(Task).where(Task.id.in_(ids), _not_deleted())).all()
            for task in tasks:
                for field, value in changes.items():
                    setattr(task, field, value)
                task.mark_updated(now)
            self._session.commit()
        logger.info("Bulk updated %d of %d requested tasks", len(tasks), len(ids))
        return len(tasks)

    def bulk_delete(self, task_ids: Iterable[int]) -> int:
        ids = self._check_ids(task_ids)
        now = self._clock()
        with storage_errors(self._session, "bulk deleting tasks"):
            tasks = self._session.exec(select(Task).where(Task.id.in_(ids), _not_deleted())).all()
            for task in tasks:
                task.mark_deleted(now)
            self._session.commit()
        logger.info("Bulk deleted %d of %d requested tasks", len(tasks), len(ids))
        return len(tasks)

    # ---- statistics ----

    def statistics(self) -> List[TaskStatistics]:
        """A "Total" row followed by one row per category that has live tasks."""
        now = self._clock()
        completed = Task.is_completed.is_(True)
        measures = (
            func.count(Task.id),
            func.sum(case((completed, 1), else_=0)),
            func.sum(case((and_(Task.priority == Priority.HIGH.value, Task.is_completed.is_(False)), 1), else_=0)),
            func.sum(case((_overdue(now), 1), else_=0)),
            func.sum(case((_due_soon(now), 1), else_=0)),
            func.sum(Task.estimated_hours),
            func.sum(case((completed, Task.estimated_hours), else_=None)),
        )
        with storage_errors(self._session, "computing task statistics"):
            total = self._session.exec(select(*measures).where(_not_deleted())).one()
            grouped = self._session.exec(
                select(Category.name, *measures)
                .select_from(Task)
                .outerjoin(Category, Task.category_id == Category.id)
                .where(_not_deleted())
                .group_by(Category.id, Category.name)
            ).all()

        rows = [_statistics_row(TOTAL_LABEL, total)]
        named = sorted((row for row in grouped if row[0] is not None), key=lambda row: row[0])
        unnamed = [row for row in grouped if row[0] is None]
        rows.extend(_statistics_row(row[0], row[1:]) for row in named)
        rows.extend(_statistics_row(UNCATEGORIZED, row[1:]) for row in unnamed)
        return rows

    # ---- helpers ----

    def _find(self, task_id: int, action: str) -> Task:
        with storage_errors(self._session, f"{action} task {task_id}"):
            task = self._session.exec(select(Task).where(Task.id == task_id, _not_deleted())).first()
        if task is None:
            logger.warning("Task with ID %s not found for %s", task_id, action)
            raise NotFound(f"Task with ID {task_id} was not found")
        return task

    def _fetch(self, query, action: str) -> List[TaskRead]:
        now = self._clock()
        with storage_errors(self._session, action):
            tasks = self._session.exec(query).all()
        return [self._enrich(task, now) for task in tasks]

    def _commit(self, action: str, task: Optional[Task] = None) -> None:
        with storage_errors(self._session, action):
            if task is not None:
                self._session.add(task)
            self._session.commit()
            if task is not None:
                self._session.refresh(task)

    def _ensure_category(self, category_id: Optional[int]) -> None:
        if category_id is not None and not self._categories.is_active(category_id):
            logger.warning("Rejected reference to missing or inactive category %s", category_id)
            raise InvalidReference(category_id)

    @staticmethod
    def _check_ids(task_ids: Iterable[int]) -> List[int]:
        operation = validate_input(BulkTaskOperation, {"taskIds": list(task_ids)})
        return list(dict.fromkeys(operation.task_ids))

    def _enrich(self, task: Task, now: datetime) -> TaskRead:
        with storage_errors(self._session, f"loading category for task {task.id}"):
            return TaskRead.from_task(task, now)


def _statistics_row(label: str, values) -> TaskStatistics:
    total, completed, high_pending, overdue, due_soon, hours, completed_hours = values
    total = total or 0
    completed = completed or 0
    return TaskStatistics(
        category=label,
        total_tasks=total,
        completed_tasks=completed,
        pending_tasks=total - completed,
        high_priority_pending=high_pending or 0,
        overdue_tasks=overdue or 0,
        due_soon_tasks=due_soon or 0,
        total_estimated_hours=round(float(hours or 0), 2),
        completed_estimated_hours=round(float(completed_hours or 0), 2),
        completion_percentage=completion_percentage(completed, total),
    )
