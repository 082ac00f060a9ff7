import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from ..clock import Clock, utcnow
from ..errors import NotFound, ValidationError
from ..models import Category, Task, completion_percentage
from ..schemas.base import validate_input
from ..schemas.category import CategoryCreate, CategoryRead, CategoryUpdate
from .base import storage_errors

logger = logging.getLogger(__name__)


class CategoryStore:
    """Category lookups enriched with per-category task counts."""

    def __init__(self, session: Session, clock: Clock = utcnow):
        self._session = session
        self._clock = clock

    def list_active(self) -> List[CategoryRead]:
        logger.debug("Fetching all active categories")
        with storage_errors(self._session, "listing categories"):
            categories = self._session.exec(
                select(Category).where(Category.is_active.is_(True)).order_by(Category.name.asc())
            ).all()
            counts = self._task_counts()
        logger.debug("Retrieved %d active categories", len(categories))
        return [self._enrich(category, counts) for category in categories]

    def get_by_id(self, category_id: int) -> CategoryRead:
        with storage_errors(self._session, f"fetching category {category_id}"):
            category = self._session.exec(
                select(Category).where(Category.id == category_id, Category.is_active.is_(True))
            ).first()
            if category is None:
                logger.warning("Category with ID %s not found or inactive", category_id)
                raise NotFound(f"Category with ID {category_id} was not found")
            counts = self._task_counts(category_id)
        return self._enrich(category, counts)

    def is_active(self, category_id: int) -> bool:
        with storage_errors(self._session, f"checking category {category_id}"):
            found = self._session.exec(
                select(Category.id).where(Category.id == category_id, Category.is_active.is_(True))
            ).first()
        return found is not None

    def create(self, data: Any) -> CategoryRead:
        payload = validate_input(CategoryCreate, data)
        self._ensure_unique_name(payload.name)

        category = Category(**payload.model_dump(), created_at=self._clock())
        self._save(category, f"creating category {payload.name!r}")
        logger.info("Created category %s with ID %s", category.name, category.id)
        return self._enrich(category, {})

    def update(self, category_id: int, data: Any) -> CategoryRead:
        category = self._get_any(category_id)
        payload = validate_input(CategoryUpdate, data)
        self._ensure_unique_name(payload.name, exclude_id=category_id)

        changes = payload.model_dump()
        if changes["is_active"] is None:
            del changes["is_active"]
        for field, value in changes.items():
            setattr(category, field, value)
        self._save(category, f"updating category {category_id}")
        logger.info("Updated category with ID %s", category_id)
        with storage_errors(self._session, f"counting tasks for category {category_id}"):
            counts = self._task_counts(category_id)
        return self._enrich(category, counts)

    def delete(self, category_id: int) -> bool:
        """Remove a category; tasks that referenced it become uncategorized."""
        category = self._get_any(category_id)
        now = self._clock()
        with storage_errors(self._session, f"deleting category {category_id}"):
            tasks = list(category.tasks)
            for task in tasks:
                task.category = None
                task.mark_updated(now)
            self._session.delete(category)
            self._session.commit()
        logger.info("Deleted category %s; %d tasks uncategorized", category_id, len(tasks))
        return True

    def _get_any(self, category_id: int) -> Category:
        with storage_errors(self._session, f"fetching category {category_id}"):
            category = self._session.get(Category, category_id)
        if category is None:
            logger.warning("Category with ID %s not found", category_id)
            raise NotFound(f"Category with ID {category_id} was not found")
        return category

    def _ensure_unique_name(self, name: str, exclude_id: Optional[int] = None) -> None:
        query = select(Category.id).where(Category.name == name)
        if exclude_id is not None:
            query = query.where(Category.id != exclude_id)
        with storage_errors(self._session, "checking category name"):
            taken = self._session.exec(query).first()
        if taken is not None:
            raise _duplicate_name(name)

    def _save(self, category: Category, action: str) -> None:
        name = category.name
        with storage_errors(self._session, action):
            self._session.add(category)
            try:
                self._session.commit()
            except IntegrityError as exc:
                # Another writer took the name between the check and the commit.
                self._session.rollback()
                raise _duplicate_name(name) from exc
            self._session.refresh(category)

    def _task_counts(self, category_id: Optional[int] = None) -> Dict[int, Tuple[int, int]]:
        query = (
            select(
                Task.category_id,
                func.count(Task.id),
                func.sum(case((Task.is_completed.is_(True), 1), else_=0)),
            )
            .where(Task.is_deleted.is_(False), Task.category_id.is_not(None))
            .group_by(Task.category_id)
        )
        if category_id is not None:
            query = query.where(Task.category_id == category_id)
        return {row[0]: (row[1], row[2] or 0) for row in self._session.exec(query).all()}

    @staticmethod
    def _enrich(category: Category, counts: Dict[int, Tuple[int, int]]) -> CategoryRead:
        active, completed = counts.get(category.id, (0, 0))
        return CategoryRead(
            **category.model_dump(),
            active_task_count=active,
            completed_task_count=completed,
            completion_percentage=completion_percentage(completed, active),
        )


def _duplicate_name(name: str) -> ValidationError:
    return ValidationError([("name", f"A category named '{name}' already exists")])
