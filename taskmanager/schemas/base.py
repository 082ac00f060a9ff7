from typing import Any, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from ..errors import ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)
REQUEST_SECTIONS = {"body", "query", "path"}


class ApiModel(BaseModel):
    """Base schema: camelCase on the wire, snake_case in Python."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


def strip_text(value: Any) -> Any:
    """Trim strings; leave everything else for the field's own validation."""
    if isinstance(value, str):
        return value.strip()
    return value


def strip_optional_text(value: Any) -> Any:
    """Trim strings and collapse blank ones to None."""
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def error_pairs(errors: list) -> list:
    """Turn pydantic error dicts into (field, reason) pairs."""
    pairs = []
    for error in errors:
        loc = [str(part) for part in error.get("loc", ())]
        if loc and loc[0] in REQUEST_SECTIONS:
            loc = loc[1:]
        field = ".".join(loc) or "body"
        reason = error.get("msg", "Invalid value")
        if reason.startswith("Value error, "):
            reason = reason[len("Value error, "):]
        pairs.append((field, reason))
    return pairs


def validate_input(model: Type[ModelT], data: Any, detail: Optional[str] = None) -> ModelT:
    """Validate ``data`` against ``model`` and raise the domain ValidationError on failure.

    Already-validated instances are passed through untouched.
    """
    if isinstance(data, model):
        return data
    if isinstance(data, BaseModel):
        data = data.model_dump(exclude_unset=True)
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(error_pairs(exc.errors()), detail=detail) from exc
