"""JSON Schema definitions for tracked items and the project aggregate.

Each item kind is registered as a :class:`KindSpec` that ties together the
``type`` discriminant, the collection it lives in, its status values and its
schema. The aggregate schema is derived from the registry, so adding a kind
only needs a schema and a :func:`register_kind` call.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from .errors import UnknownKindError

PRIORITIES: Tuple[str, ...] = ("low", "medium", "high", "critical")
SEVERITIES: Tuple[str, ...] = ("low", "medium", "high", "critical")

FEATURE_STATUSES: Tuple[str, ...] = ("backlog", "planning", "in-progress", "testing", "completed")
BUG_STATUSES: Tuple[str, ...] = ("open", "in-progress", "resolved", "closed", "wont-fix")
TASK_STATUSES: Tuple[str, ...] = ("todo", "in-progress", "blocked", "completed")

# Fields callers can never change once an item exists.
IMMUTABLE_FIELDS: Tuple[str, ...] = ("id", "type", "createdAt")

_STRING_LIST = {"type": "array", "items": {"type": "string"}}

BASE_ITEM_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["id", "type", "title", "description", "status", "priority", "tags", "createdAt", "updatedAt"],
    "properties": {
        "id": {"type": "string", "minLength": 1},
        "type": {"type": "string"},
        "status": {"type": "string"},
        "title": {"type": "string", "minLength": 1, "maxLength": 200},
        "description": {"type": "string", "maxLength": 2000},
        "priority": {"enum": list(PRIORITIES)},
        "assignee": {"type": "string"},
        "tags": _STRING_LIST,
        "createdAt": {"type": "string", "format": "date-time"},
        "updatedAt": {"type": "string", "format": "date-time"},
    },
    "additionalProperties": False,
}


def extend_base_schema(
    kind: str,
    statuses: Tuple[str, ...],
    properties: Dict[str, Any],
    required: List[str],
) -> Dict[str, Any]:
    """Build an item schema from the base shape plus kind-specific fields."""
    schema = copy.deepcopy(BASE_ITEM_SCHEMA)
    schema["properties"].update(
        {
            "type": {"const": kind},
            "status": {"enum": list(statuses)},
            **copy.deepcopy(properties),
        }
    )
    schema["required"] = schema["required"] + [name for name in required if name not in schema["required"]]
    return schema


FEATURE_SCHEMA = extend_base_schema(
    "feature",
    FEATURE_STATUSES,
    {
        "epic": {"type": "string"},
        "storyPoints": {"type": "number", "minimum": 1, "maximum": 21},
        "acceptanceCriteria": _STRING_LIST,
    },
    ["acceptanceCriteria"],
)

BUG_SCHEMA = extend_base_schema(
    "bug",
    BUG_STATUSES,
    {
        "severity": {"enum": list(SEVERITIES)},
        "reproducible": {"type": "boolean"},
        "stepsToReproduce": _STRING_LIST,
        "environment": {"type": "string"},
        "resolution": {"type": "string"},
    },
    ["severity", "reproducible", "stepsToReproduce", "environment"],
)

TASK_SCHEMA = extend_base_schema(
    "task",
    TASK_STATUSES,
    {
        "dueDate": {"type": "string", "format": "date"},
        "estimatedHours": {"type": "number", "minimum": 0},
        "actualHours": {"type": "number", "minimum": 0},
        "subtasks": _STRING_LIST,
    },
    ["subtasks"],
)

METADATA_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["projectName", "version", "lastUpdated"],
    "properties": {
        "projectName": {"type": "string", "minLength": 1},
        "version": {"type": "string"},
        "lastUpdated": {"type": "string", "format": "date-time"},
    },
    "additionalProperties": False,
}


@dataclass(frozen=True)
class KindSpec:
    """Registration of one item kind."""

    kind: str
    collection: str
    statuses: Tuple[str, ...]
    schema: Dict[str, Any]


KINDS: Dict[str, KindSpec] = {}
_project_data_schema: Optional[Dict[str, Any]] = None


def register_kind(spec: KindSpec) -> KindSpec:
    """Register an item kind and invalidate the cached aggregate schema."""
    global _project_data_schema
    KINDS[spec.kind] = spec
    _project_data_schema = None
    return spec


register_kind(KindSpec("feature", "features", FEATURE_STATUSES, FEATURE_SCHEMA))
register_kind(KindSpec("bug", "bugs", BUG_STATUSES, BUG_SCHEMA))
register_kind(KindSpec("task", "tasks", TASK_STATUSES, TASK_SCHEMA))


def get_kind(kind: str) -> KindSpec:
    """Return the registration for ``kind`` or raise :class:`UnknownKindError`."""
    try:
        return KINDS[kind]
    except (KeyError, TypeError):
        raise UnknownKindError(kind) from None


def schema_for_kind(kind: str) -> Dict[str, Any]:
    return get_kind(kind).schema


def project_data_schema() -> Dict[str, Any]:
    """Schema for the whole persisted aggregate."""
    global _project_data_schema
    if _project_data_schema is None:
        properties: Dict[str, Any] = {
            spec.collection: {"type": "array", "items": spec.schema} for spec in KINDS.values()
        }
        properties["metadata"] = METADATA_SCHEMA
        _project_data_schema = {
            "type": "object",
            "required": [spec.collection for spec in KINDS.values()] + ["metadata"],
            "properties": properties,
            "additionalProperties": False,
        }
    return _project_data_schema

