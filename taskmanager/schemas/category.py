from datetime import datetime
import re
from typing import Any, Optional

from pydantic import Field, field_validator

from .base import ApiModel, strip_optional_text, strip_text

HEX_COLOR = re.compile(r"^#[0-9A-F]{6}$")


def _normalize_color(value: Any) -> Any:
    value = strip_optional_text(value)
    if isinstance(value, str):
        return value.upper()
    return value


class CategoryBase(ApiModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    color: Optional[str] = None

    normalize_name = field_validator("name", mode="before")(strip_text)
    normalize_description = field_validator("description", mode="before")(strip_optional_text)
    normalize_color = field_validator("color", mode="before")(_normalize_color)

    @field_validator("color")
    @classmethod
    def validate_color(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not HEX_COLOR.match(value):
            raise ValueError("Color must be a valid hex color code (e.g., #FF5733)")
        return value


class CategoryCreate(CategoryBase):
    pass


class CategoryUpdate(CategoryBase):
    # Left unchanged when omitted.
    is_active: Optional[bool] = None


class CategoryRead(ApiModel):
    """Category enriched with counts over its non-deleted tasks."""
    id: int
    name: str
    description: Optional[str] = None
    color: Optional[str] = None
    is_active: bool
    created_at: datetime
    active_task_count: int = 0
    completed_task_count: int = 0
    completion_percentage: float = 0.0
