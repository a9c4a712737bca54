"""Dashboard-facing facade over the record store.

The dashboard speaks in messages (``loadData``, ``createItem``, ...) carrying
raw form values. :class:`DashboardService` normalizes those values, calls the
store and reports every outcome as a JSON-friendly result dict, so the
presentation layer never has to catch store exceptions itself.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .config import StoreConfig
from .errors import CorruptDataError, ProjectTrackerError, StorageError, ValidationError
from .models import NotFound
from .store import RecordStore

logger = logging.getLogger("project_tracker.dashboard")

# Form fields entered as one entry per line.
MULTILINE_FIELDS: Dict[str, str] = {
    "feature": "acceptanceCriteria",
    "bug": "stepsToReproduce",
    "task": "subtasks",
}


def normalize_fields(kind: str, fields: Dict[str, Any]) -> Dict[str, Any]:
    """Convert raw form values into record fields.

    ``tags`` given as a comma-separated string and the kind's multi-line list
    field given as a newline-separated string are split into lists, dropping
    empty entries. Everything else is passed through unchanged.
    """
    normalized = dict(fields)

    tags = normalized.get("tags")
    if isinstance(tags, str):
        normalized["tags"] = [tag.strip() for tag in tags.split(",") if tag.strip()]

    list_field = MULTILINE_FIELDS.get(kind)
    if list_field and isinstance(normalized.get(list_field), str):
        normalized[list_field] = [line.strip() for line in normalized[list_field].splitlines() if line.strip()]

    return normalized


def _label(kind: str) -> str:
    return kind.capitalize() if isinstance(kind, str) else "Item"


class DashboardService:
    """Relays dashboard actions to a :class:`RecordStore`."""

    def __init__(self, root: Union[Path, str], config: Optional[StoreConfig] = None):
        self.store = RecordStore(root, config=config)

    # ------------------------------------------------------------------
    # Result helpers
    # ------------------------------------------------------------------

    def _failure(self, action: str, error: ProjectTrackerError) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "success": False,
            "error": f"Failed to {action}: {error}",
        }
        if isinstance(error, ValidationError):
            result["errors"] = [e.to_dict() for e in error.errors]
            result["suggestion"] = "Correct the listed fields and try again"
        elif isinstance(error, CorruptDataError):
            result["errors"] = [e.to_dict() for e in error.errors]
            result["suggestion"] = f"Restore {error.path} from a backup or import a valid export"
        elif isinstance(error, StorageError):
            result["suggestion"] = f"Check that {error.path} is accessible, then retry"
        logger.warning(result["error"])
        return result

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def initialize(self) -> Dict[str, Any]:
        try:
            created = self.store.initialize()
        except ProjectTrackerError as e:
            return self._failure("initialize project", e)
        return {
            "success": True,
            "created": created,
            "data_path": str(self.store.data_path),
            "message": "Project initialized" if created else "Project already initialized",
        }

    def load_data(self) -> Dict[str, Any]:
        try:
            data = self.store.load()
        except ProjectTrackerError as e:
            return self._failure("load project data", e)
        return {"success": True, "data": data.to_dict()}

    def summary(self) -> Dict[str, Any]:
        try:
            summary = self.store.summary()
        except ProjectTrackerError as e:
            return self._failure("summarize project", e)
        return {"success": True, "summary": summary.to_dict()}

    def get_items(self, kind: str, status: Optional[str] = None) -> Dict[str, Any]:
        try:
            items = self.store.get_items(kind, status=status)
        except ProjectTrackerError as e:
            return self._failure(f"list {kind} items", e)
        return {
            "success": True,
            "items": [item.to_dict() for item in items],
            "total_count": len(items),
            "filters_applied": {"kind": kind, "status": status},
        }

    def get_item(self, kind: str, item_id: str) -> Dict[str, Any]:
        try:
            item = self.store.get_item(kind, item_id)
        except ProjectTrackerError as e:
            return self._failure(f"get {kind}", e)
        if item is None:
            return {"success": False, "error": NotFound(kind, item_id).message}
        return {"success": True, "item": item.to_dict()}

    def create_item(self, kind: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        try:
            item = self.store.create_item(kind, normalize_fields(kind, fields))
        except ProjectTrackerError as e:
            return self._failure(f"create {kind}", e)
        return {
            "success": True,
            "item": item.to_dict(),
            "message": f"{_label(kind)} created successfully!",
        }

    def update_item(self, kind: str, item_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        try:
            result = self.store.update_item(kind, item_id, normalize_fields(kind, fields))
        except ProjectTrackerError as e:
            return self._failure(f"update {kind}", e)
        if isinstance(result, NotFound):
            return {"success": False, "not_found": True, "error": result.message}
        return {
            "success": True,
            "item": result.to_dict(),
            "message": f"{_label(kind)} updated successfully!",
        }

    def delete_item(self, kind: str, item_id: str) -> Dict[str, Any]:
        try:
            deleted = self.store.delete_item(kind, item_id)
        except ProjectTrackerError as e:
            return self._failure(f"delete {kind}", e)
        if not deleted:
            return {"success": False, "not_found": True, "error": NotFound(kind, item_id).message}
        return {"success": True, "message": f"{_label(kind)} deleted successfully!"}

    def export_data(self) -> Dict[str, Any]:
        try:
            path = self.store.export_data()
        except ProjectTrackerError as e:
            return self._failure("export data", e)
        return {"success": True, "path": str(path), "message": f"Data exported to {path}"}

    def import_data(self, path: Union[Path, str], confirm: bool = False) -> Dict[str, Any]:
        """Replace all project data with the contents of ``path``.

        Import is destructive, so nothing happens unless ``confirm`` is True.
        """
        if not confirm:
            return {
                "success": False,
                "requires_confirmation": True,
                "message": "Importing replaces all existing project data. Repeat with confirm=True to proceed.",
            }
        try:
            data = self.store.import_data(path)
        except ProjectTrackerError as e:
            return self._failure("import data", e)
        return {
            "success": True,
            "counts": {collection: len(items) for collection, items in data.collections.items()},
            "message": "Data imported successfully!",
        }

    # ------------------------------------------------------------------
    # Message relay
    # ------------------------------------------------------------------

    def handle_message(self, message: Dict[str, Any]) -> Dict[str, Any]:
        """Dispatch one dashboard message of the form ``{"command": ..., "data": {...}}``."""
        command = message.get("command")
        payload = dict(message.get("data") or {})

        if command == "loadData":
            return self.load_data()
        if command == "createItem":
            kind = payload.pop("type", None)
            return self.create_item(kind, payload)
        if command == "updateItem":
            kind = payload.pop("type", None)
            item_id = payload.pop("id", None)
            return self.update_item(kind, item_id, payload)
        if command == "deleteItem":
            return self.delete_item(payload.get("type"), payload.get("id"))
        if command == "exportData":
            return self.export_data()
        if command == "importData":
            return self.import_data(payload.get("path", ""), confirm=bool(payload.get("confirm", False)))

        logger.warning(f"Unknown dashboard command: {command!r}")
        return {"success": False, "error": f"Unknown command: {command!r}"}
