from .category import Category
from .task import Task, Priority, DueStatus, priority_text, due_status, completion_percentage

# Export all models for easy importing
__all__ = [
    "Category",
    "Task",
    "Priority",
    "DueStatus",
    "priority_text",
    "due_status",
    "completion_percentage",
]
