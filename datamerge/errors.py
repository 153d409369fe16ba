from __future__ import annotations


class DatamergeError(Exception):
    """Base class for errors datamerge lets escape to the caller."""


class ExportError(DatamergeError):
    def __init__(self, path, cause: Exception | None = None) -> None:
        message = f"Could not write {path}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)
        self.path = path
        self.cause = cause


class DuplicateHeaderError(DatamergeError):
    def __init__(self, duplicates: list[str]) -> None:
        super().__init__(
            "Duplicate output headers: " + ", ".join(duplicates)
            + ". Rename the columns or choose another duplicate-header policy."
        )
        self.duplicates = duplicates


class PlanError(DatamergeError):
    pass
