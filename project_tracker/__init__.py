"""Project tracker - validated, file-backed store for features, bugs and tasks."""

from .config import StoreConfig
from .dashboard import DashboardService, normalize_fields
from .errors import (
    CorruptDataError,
    ProjectTrackerError,
    StorageError,
    UnknownKindError,
    ValidationError,
)
from .models import Bug, Feature, GenericItem, NotFound, ProjectData, ProjectMetadata, ProjectSummary, Task
from .store import RecordStore
from .validation import FieldError, ValidationResult, validate

__all__ = [
    "RecordStore",
    "DashboardService",
    "StoreConfig",
    "Feature",
    "Bug",
    "Task",
    "GenericItem",
    "ProjectData",
    "ProjectMetadata",
    "ProjectSummary",
    "NotFound",
    "FieldError",
    "ValidationResult",
    "validate",
    "normalize_fields",
    "ProjectTrackerError",
    "ValidationError",
    "UnknownKindError",
    "CorruptDataError",
    "StorageError",
]
