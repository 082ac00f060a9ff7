from typing import List, Optional, Tuple


class TaskManagerError(Exception):
    """Base class for errors surfaced to API clients.

    Every error carries a short ``title`` and a longer ``detail`` string,
    plus the HTTP status the request layer should answer with.
    """

    status_code = 500
    title = "Internal Server Error"

    def __init__(self, detail: str, title: Optional[str] = None):
        super().__init__(detail)
        self.detail = detail
        if title is not None:
            self.title = title

    def to_dict(self) -> dict:
        return {"title": self.title, "detail": self.detail, "status": self.status_code}


class ValidationError(TaskManagerError):
    """One or more field-level constraint violations."""

    status_code = 400
    title = "Validation Failed"

    def __init__(self, errors: List[Tuple[str, str]], detail: Optional[str] = None):
        self.errors = list(errors)
        if detail is None:
            fields = ", ".join(sorted({field for field, _ in self.errors}))
            detail = f"Invalid value for: {fields}" if fields else "Invalid input"
        super().__init__(detail)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["errors"] = [{"field": field, "reason": reason} for field, reason in self.errors]
        return data


class NotFound(TaskManagerError):
    status_code = 404
    title = "Not Found"


class InvalidReference(TaskManagerError):
    """A supplied category id does not resolve to an active category."""

    status_code = 400
    title = "Invalid Reference"

    def __init__(self, category_id: int):
        self.category_id = category_id
        super().__init__(f"Category with ID {category_id} does not exist or is inactive")


class StorageFailure(TaskManagerError):
    """The store was unavailable or a write failed to commit."""

    status_code = 500
    title = "Storage Failure"
