from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional
import enum

from ..clock import utcnow

DUE_SOON_WINDOW = timedelta(hours=24)


class Priority(int, enum.Enum):
    LOW = 1
    MEDIUM = 2
    HIGH = 3


PRIORITY_LABELS = {
    Priority.LOW: "Low",
    Priority.MEDIUM: "Medium",
    Priority.HIGH: "High",
}


class DueStatus(str, enum.Enum):
    NONE = "none"
    OVERDUE = "overdue"
    DUE_SOON = "due_soon"
    NORMAL = "normal"


class Task(SQLModel, table=True):
    """Task model for todo items.

    Rows are soft deleted: ``is_deleted`` and ``deleted_at`` are always set
    and cleared together through ``mark_deleted``/``restore``.
    """
    __tablename__ = "tasks"
    __table_args__ = (
        Index("ix_tasks_is_deleted_created_at", "is_deleted", "created_at"),
        Index("ix_tasks_is_completed_is_deleted", "is_completed", "is_deleted"),
        Index("ix_tasks_status_priority", "is_completed", "priority", "is_deleted"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str = Field(max_length=200, index=True)
    description: Optional[str] = Field(default=None, max_length=1000)
    is_completed: bool = Field(default=False)
    priority: int = Field(default=Priority.LOW.value)
    category_id: Optional[int] = Field(
        default=None,
        sa_column=Column(Integer, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True),
    )
    due_date: Optional[datetime] = Field(default=None, index=True, sa_type=DateTime())
    estimated_hours: Optional[Decimal] = Field(default=None, max_digits=5, decimal_places=2, index=True)
    notifications_enabled: bool = Field(default=True)
    # Naive UTC, stored as plain DateTime.
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime())
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime())
    is_deleted: bool = Field(default=False)
    deleted_at: Optional[datetime] = Field(default=None, sa_type=DateTime())

    # Relationship to category (never owning)
    category: Optional["Category"] = Relationship(back_populates="tasks")

    def mark_updated(self, now: datetime) -> None:
        self.updated_at = now

    def mark_deleted(self, now: datetime) -> None:
        self.is_deleted = True
        self.deleted_at = now
        self.mark_updated(now)

    def restore(self, now: datetime) -> None:
        self.is_deleted = False
        self.deleted_at = None
        self.mark_updated(now)

    def toggle_completion(self, now: datetime) -> None:
        self.is_completed = not self.is_completed
        self.mark_updated(now)


def priority_text(priority: int) -> str:
    try:
        return PRIORITY_LABELS[Priority(priority)]
    except ValueError:
        return "Unknown"


def due_status(due_date: Optional[datetime], is_completed: bool, now: datetime) -> DueStatus:
    """Classify a due date relative to ``now``.

    Overdue wins over due soon, so a task is never both.
    """
    if due_date is None:
        return DueStatus.NONE
    if not is_completed:
        if due_date < now:
            return DueStatus.OVERDUE
        if due_date <= now + DUE_SOON_WINDOW:
            return DueStatus.DUE_SOON
    return DueStatus.NORMAL


def completion_percentage(completed: int, total: int) -> float:
    if total == 0:
        return 0.0
    return round(completed / total * 100, 2)
