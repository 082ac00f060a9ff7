from datetime import datetime
from decimal import Decimal
import math
from typing import List, Optional

from pydantic import Field, field_validator

from ..clock import to_naive_utc
from ..models.task import DueStatus, Priority, Task as TaskModel, due_status, priority_text
from .base import ApiModel, strip_optional_text, strip_text

MAX_PAGE_SIZE = 100
MAX_PAGE = 2**31 - 1
PRIORITY_MESSAGE = "Priority must be 1 (Low), 2 (Medium), or 3 (High)"
UNCATEGORIZED = "Uncategorized"


def _check_priority(value: Optional[int]) -> Optional[int]:
    if value is not None and value not in {p.value for p in Priority}:
        raise ValueError(PRIORITY_MESSAGE)
    return value


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    return to_naive_utc(value) if value is not None else None


class TaskBase(ApiModel):
    """Mutable task fields shared by create and update.

    Titles and descriptions are trimmed before length checks; a blank
    description is stored as absent.
    """
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    priority: int = Priority.LOW.value
    category_id: Optional[int] = Field(default=None, ge=1)
    due_date: Optional[datetime] = None
    estimated_hours: Optional[Decimal] = Field(
        default=None, gt=0, le=Decimal("999.99"), max_digits=5, decimal_places=2
    )
    notifications_enabled: bool = True

    normalize_title = field_validator("title", mode="before")(strip_text)
    normalize_description = field_validator("description", mode="before")(strip_optional_text)
    validate_priority = field_validator("priority")(_check_priority)
    normalize_due_date = field_validator("due_date")(_naive_utc)


class TaskCreate(TaskBase):
    """Schema for creating new tasks."""
    pass


class TaskUpdate(TaskBase):
    """Schema for updating existing tasks. Every mutable field is overwritten."""
    pass


class TaskPatch(ApiModel):
    """Partial update applied by bulk operations; omitted or null fields are left alone."""
    is_completed: Optional[bool] = None
    priority: Optional[int] = None
    category_id: Optional[int] = Field(default=None, ge=1)
    due_date: Optional[datetime] = None
    estimated_hours: Optional[Decimal] = Field(
        default=None, gt=0, le=Decimal("999.99"), max_digits=5, decimal_places=2
    )
    notifications_enabled: Optional[bool] = None

    validate_priority = field_validator("priority")(_check_priority)
    normalize_due_date = field_validator("due_date")(_naive_utc)

    def changes(self) -> dict:
        return self.model_dump(include=set(TaskPatch.model_fields), exclude_unset=True, exclude_none=True)


class BulkTaskOperation(ApiModel):
    task_ids: List[int] = Field(min_length=1)


class BulkTaskUpdate(TaskPatch):
    task_ids: List[int] = Field(min_length=1)


class BulkUpdateResult(ApiModel):
    updated_count: int
    message: str


class BulkDeleteResult(ApiModel):
    deleted_count: int
    message: str


class TaskSearch(ApiModel):
    """Search criteria. Every provided filter narrows the result (logical AND)."""
    search_term: Optional[str] = Field(default=None, max_length=100)
    is_completed: Optional[bool] = None
    priority: Optional[int] = None
    category_id: Optional[int] = Field(default=None, ge=1)
    created_after: Optional[datetime] = None
    created_before: Optional[datetime] = None
    due_before: Optional[datetime] = None
    due_after: Optional[datetime] = None
    is_overdue: Optional[bool] = None
    has_estimate: Optional[bool] = None
    page: int = 1
    page_size: int = 20

    normalize_search_term = field_validator("search_term", mode="before")(strip_optional_text)
    validate_priority = field_validator("priority")(_check_priority)
    normalize_dates = field_validator(
        "created_after", "created_before", "due_before", "due_after"
    )(_naive_utc)

    @field_validator("page")
    @classmethod
    def clamp_page(cls, value: int) -> int:
        return min(max(1, value), MAX_PAGE)

    @field_validator("page_size")
    @classmethod
    def clamp_page_size(cls, value: int) -> int:
        return min(max(1, value), MAX_PAGE_SIZE)


class TaskRead(ApiModel):
    """Task as returned to clients, enriched with fields derived at read time."""
    id: int
    title: str
    description: Optional[str] = None
    is_completed: bool
    priority: int
    priority_text: str
    category_id: Optional[int] = None
    category_name: str = UNCATEGORIZED
    category_color: Optional[str] = None
    due_date: Optional[datetime] = None
    estimated_hours: Optional[float] = None
    notifications_enabled: bool = True
    is_overdue: bool = False
    is_due_soon: bool = False
    due_status: str = DueStatus.NONE.value
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_task(cls, task: TaskModel, now: datetime) -> "TaskRead":
        category = task.category
        status = due_status(task.due_date, task.is_completed, now)
        return cls(
            id=task.id,
            title=task.title,
            description=task.description,
            is_completed=task.is_completed,
            priority=task.priority,
            priority_text=priority_text(task.priority),
            category_id=task.category_id,
            category_name=category.name if category is not None else UNCATEGORIZED,
            category_color=category.color if category is not None else None,
            due_date=task.due_date,
            estimated_hours=float(task.estimated_hours) if task.estimated_hours is not None else None,
            notifications_enabled=task.notifications_enabled,
            is_overdue=status is DueStatus.OVERDUE,
            is_due_soon=status is DueStatus.DUE_SOON,
            due_status=status.value,
            created_at=task.created_at,
            updated_at=task.updated_at,
        )


class PagedTasks(ApiModel):
    tasks: List[TaskRead]
    total_count: int
    page: int
    page_size: int
    total_pages: int
    has_next_page: bool
    has_previous_page: bool

    @classmethod
    def build(cls, tasks: List[TaskRead], total_count: int, page: int, page_size: int) -> "PagedTasks":
        total_pages = math.ceil(total_count / page_size)
        return cls(
            tasks=tasks,
            total_count=total_count,
            page=page,
            page_size=page_size,
            total_pages=total_pages,
            has_next_page=page < total_pages,
            has_previous_page=page > 1,
        )


class TaskStatistics(ApiModel):
    category: str
    total_tasks: int = 0
    completed_tasks: int = 0
    pending_tasks: int = 0
    high_priority_pending: int = 0
    overdue_tasks: int = 0
    due_soon_tasks: int = 0
    total_estimated_hours: float = 0.0
    completed_estimated_hours: float = 0.0
    completion_percentage: float = 0.0
