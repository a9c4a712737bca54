"""Data models for the project tracker.

This module contains the record types persisted in ``project-data.json``
(features, bugs and tasks sharing a common base shape), the project
aggregate that holds them, and the result types returned by the store.
Attributes are snake_case in Python and camelCase on disk.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar, Dict, List, Optional, Type

from .schemas import KINDS, get_kind

COMPLETED_STATUSES = ("completed", "resolved", "closed")
HIGH_PRIORITIES = ("critical", "high")


ITEM_MODELS: Dict[str, Type["BaseItem"]] = {}


def item_model(kind: str) -> Callable[[Type["BaseItem"]], Type["BaseItem"]]:
    """Class decorator registering the model used for ``kind`` records."""

    def decorator(cls: Type["BaseItem"]) -> Type["BaseItem"]:
        cls.KIND = kind
        ITEM_MODELS[kind] = cls
        return cls

    return decorator


def _put_optional(data: Dict[str, Any], key: str, value: Any) -> None:
    if value is not None:
        data[key] = value


@dataclass(slots=True, kw_only=True)
class BaseItem:
    """Fields shared by every tracked item."""

    KIND: ClassVar[str] = ""

    id: str
    title: str
    description: str
    status: str
    priority: str
    tags: List[str] = field(default_factory=list)
    created_at: str
    updated_at: str
    assignee: Optional[str] = None

    @property
    def type(self) -> str:
        return self.KIND

    def _base_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "tags": list(self.tags),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        _put_optional(data, "assignee", self.assignee)
        return data

    @staticmethod
    def _base_kwargs(data: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "id": data["id"],
            "title": data["title"],
            "description": data["description"],
            "status": data["status"],
            "priority": data["priority"],
            "tags": list(data.get("tags", [])),
            "created_at": data["createdAt"],
            "updated_at": data["updatedAt"],
            "assignee": data.get("assignee"),
        }

    def is_completed(self) -> bool:
        return self.status in COMPLETED_STATUSES

    def is_high_priority(self) -> bool:
        return self.priority in HIGH_PRIORITIES


@item_model("feature")
@dataclass(slots=True, kw_only=True)
class Feature(BaseItem):
    """A planned piece of product functionality."""

    acceptance_criteria: List[str] = field(default_factory=list)
    epic: Optional[str] = None
    story_points: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data = self._base_dict()
        data["acceptanceCriteria"] = list(self.acceptance_criteria)
        _put_optional(data, "epic", self.epic)
        _put_optional(data, "storyPoints", self.story_points)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Feature":
        return cls(
            **cls._base_kwargs(data),
            acceptance_criteria=list(data.get("acceptanceCriteria", [])),
            epic=data.get("epic"),
            story_points=data.get("storyPoints"),
        )


@item_model("bug")
@dataclass(slots=True, kw_only=True)
class Bug(BaseItem):
    """A defect report."""

    severity: str
    reproducible: bool
    steps_to_reproduce: List[str] = field(default_factory=list)
    environment: str
    resolution: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = self._base_dict()
        data["severity"] = self.severity
        data["reproducible"] = self.reproducible
        data["stepsToReproduce"] = list(self.steps_to_reproduce)
        data["environment"] = self.environment
        _put_optional(data, "resolution", self.resolution)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Bug":
        return cls(
            **cls._base_kwargs(data),
            severity=data["severity"],
            reproducible=data["reproducible"],
            steps_to_reproduce=list(data.get("stepsToReproduce", [])),
            environment=data["environment"],
            resolution=data.get("resolution"),
        )


@item_model("task")
@dataclass(slots=True, kw_only=True)
class Task(BaseItem):
    """A unit of work, optionally with a due date and time tracking."""

    subtasks: List[str] = field(default_factory=list)
    due_date: Optional[str] = None
    estimated_hours: Optional[float] = None
    actual_hours: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data = self._base_dict()
        data["subtasks"] = list(self.subtasks)
        _put_optional(data, "dueDate", self.due_date)
        _put_optional(data, "estimatedHours", self.estimated_hours)
        _put_optional(data, "actualHours", self.actual_hours)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        return cls(
            **cls._base_kwargs(data),
            subtasks=list(data.get("subtasks", [])),
            due_date=data.get("dueDate"),
            estimated_hours=data.get("estimatedHours"),
            actual_hours=data.get("actualHours"),
        )


BASE_FIELDS = ("id", "type", "title", "description", "status", "priority", "tags", "createdAt", "updatedAt", "assignee")


@dataclass(slots=True, kw_only=True)
class GenericItem(BaseItem):
    """Record of a kind registered without a dedicated model class.

    Kind-specific fields are kept verbatim in ``extra`` so they survive a
    load and save.
    """

    kind: str
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def type(self) -> str:
        return self.kind

    def to_dict(self) -> Dict[str, Any]:
        data = self._base_dict()
        data.update(copy.deepcopy(self.extra))
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GenericItem":
        return cls(
            **cls._base_kwargs(data),
            kind=data["type"],
            extra={key: copy.deepcopy(value) for key, value in data.items() if key not in BASE_FIELDS},
        )


def model_for(kind: str) -> Type[BaseItem]:
    """Model class for ``kind``; kinds without a registered model use :class:`GenericItem`."""
    get_kind(kind)
    return ITEM_MODELS.get(kind, GenericItem)


def item_from_dict(data: Dict[str, Any]) -> BaseItem:
    """Build the model for a validated record, dispatching on its ``type``."""
    return model_for(data.get("type")).from_dict(data)


@dataclass(slots=True)
class ProjectMetadata:
    """Descriptive block stored alongside the collections."""

    project_name: str
    version: str
    last_updated: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "projectName": self.project_name,
            "version": self.version,
            "lastUpdated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProjectMetadata":
        return cls(
            project_name=data["projectName"],
            version=data["version"],
            last_updated=data["lastUpdated"],
        )


@dataclass(slots=True)
class ProjectData:
    """The persisted aggregate: one collection per registered kind plus metadata."""

    metadata: ProjectMetadata
    collections: Dict[str, List[BaseItem]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for spec in KINDS.values():
            self.collections.setdefault(spec.collection, [])

    @property
    def features(self) -> List[Feature]:
        return self.collections["features"]

    @property
    def bugs(self) -> List[Bug]:
        return self.collections["bugs"]

    @property
    def tasks(self) -> List[Task]:
        return self.collections["tasks"]

    def items_of(self, kind: str) -> List[BaseItem]:
        """Return the live collection holding ``kind`` records."""
        return self.collections[get_kind(kind).collection]

    def all_items(self) -> List[BaseItem]:
        return [item for items in self.collections.values() for item in items]

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            collection: [item.to_dict() for item in items] for collection, items in self.collections.items()
        }
        data["metadata"] = self.metadata.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProjectData":
        """Create from a validated aggregate."""
        collections: Dict[str, List[BaseItem]] = {}
        for spec in KINDS.values():
            model = model_for(spec.kind)
            collections[spec.collection] = [model.from_dict(item) for item in data.get(spec.collection, [])]
        return cls(metadata=ProjectMetadata.from_dict(data["metadata"]), collections=collections)


@dataclass(frozen=True, slots=True)
class NotFound:
    """Expected outcome when an update targets an id that does not exist."""

    kind: str
    item_id: str

    def __bool__(self) -> bool:
        return False

    @property
    def message(self) -> str:
        return f"{self.kind.capitalize()} '{self.item_id}' not found"

    def to_dict(self) -> Dict[str, str]:
        return {"kind": self.kind, "id": self.item_id, "message": self.message}


@dataclass(slots=True)
class ProjectSummary:
    """Dashboard statistics across all collections."""

    project_name: str
    total_items: int = 0
    completed: int = 0
    in_progress: int = 0
    high_priority: int = 0
    counts: Dict[str, int] = field(default_factory=dict)
    recent: List[BaseItem] = field(default_factory=list)
    high_priority_open: List[BaseItem] = field(default_factory=list)
    last_updated: str = ""

    RECENT_LIMIT: ClassVar[int] = 5

    @classmethod
    def from_project_data(cls, data: ProjectData) -> "ProjectSummary":
        items = data.all_items()
        recent = sorted(items, key=lambda item: item.updated_at, reverse=True)[: cls.RECENT_LIMIT]
        open_urgent = [item for item in items if item.is_high_priority() and not item.is_completed()]
        # sorted() is stable, so equal priorities keep collection order
        open_urgent = sorted(open_urgent, key=lambda item: HIGH_PRIORITIES.index(item.priority))
        return cls(
            project_name=data.metadata.project_name,
            total_items=len(items),
            completed=sum(1 for item in items if item.is_completed()),
            in_progress=sum(1 for item in items if item.status == "in-progress"),
            high_priority=sum(1 for item in items if item.is_high_priority()),
            counts={collection: len(values) for collection, values in data.collections.items()},
            recent=recent,
            high_priority_open=open_urgent[: cls.RECENT_LIMIT],
            last_updated=data.metadata.last_updated,
        )

    def get_completion_rate(self) -> float:
        """Get completion rate as percentage."""
        if self.total_items == 0:
            return 0.0
        return (self.completed / self.total_items) * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "project_name": self.project_name,
            "total_items": self.total_items,
            "completed": self.completed,
            "in_progress": self.in_progress,
            "high_priority": self.high_priority,
            "completion_rate": self.get_completion_rate(),
            "counts": dict(self.counts),
            "recent": [item.to_dict() for item in self.recent],
            "high_priority_open": [item.to_dict() for item in self.high_priority_open],
            "last_updated": self.last_updated,
        }
