"""Exception hierarchy for the project tracker."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from .validation import FieldError


class ProjectTrackerError(Exception):
    """Base exception for project tracker errors."""

    pass


class ValidationError(ProjectTrackerError):
    """Data does not conform to its schema."""

    def __init__(self, message: str, errors: Optional[List["FieldError"]] = None):
        self.errors = list(errors or [])
        if self.errors:
            detail = "; ".join(f"{e.path}: {e.message}" for e in self.errors)
            message = f"{message} ({detail})"
        super().__init__(message)


class UnknownKindError(ValidationError):
    """Item kind is not registered."""

    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"Unknown item kind: {kind!r}")


class CorruptDataError(ProjectTrackerError):
    """Canonical data file cannot be parsed or fails validation."""

    def __init__(self, path: Path, message: str, errors: Optional[List["FieldError"]] = None):
        self.path = path
        self.errors = list(errors or [])
        if self.errors:
            message = f"{message} ({'; '.join(f'{e.path}: {e.message}' for e in self.errors)})"
        super().__init__(f"Corrupt project data at {path}: {message}")


class StorageError(ProjectTrackerError):
    """Filesystem failure while reading or writing project data."""

    def __init__(self, path: Path, message: str):
        self.path = path
        super().__init__(f"{message}: {path}")
