from .category import CategoryCreate, CategoryRead, CategoryUpdate
from .task import (
    BulkDeleteResult,
    BulkTaskOperation,
    BulkTaskUpdate,
    BulkUpdateResult,
    PagedTasks,
    TaskCreate,
    TaskPatch,
    TaskRead,
    TaskSearch,
    TaskStatistics,
    TaskUpdate,
)
