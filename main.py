"""MCP server exposing the project tracker's dashboard operations."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from project_tracker import DashboardService, StoreConfig

mcp = FastMCP("project-tracker")

PROJECT_ROOT_ENV = "PROJECT_TRACKER_ROOT"


def _candidate_bases() -> List[Path]:
    cwd = Path.cwd().resolve()
    return [cwd, *cwd.parents]


def _locate_project_root(config: StoreConfig) -> Optional[Path]:
    """Nearest directory at or above the working directory holding the data folder."""
    for base in _candidate_bases():
        if (base / config.data_dir_name).is_dir():
            return base
    return None


def _resolve_root(root: Optional[str], config: StoreConfig, *, allow_cwd: bool = False) -> Path:
    if root:
        resolved = Path(root).expanduser().resolve()
        if not resolved.exists():
            raise ValueError(f"Provided root '{root}' does not exist.")
        return resolved

    env_root = os.getenv(PROJECT_ROOT_ENV)
    if env_root:
        env_path = Path(env_root).expanduser().resolve()
        if not env_path.exists():
            raise ValueError(
                f"Environment variable {PROJECT_ROOT_ENV} points to '{env_root}', which does not exist."
            )
        return env_path

    detected_root = _locate_project_root(config)
    if detected_root:
        return detected_root

    if allow_cwd:
        return Path.cwd().resolve()

    raise ValueError(
        f"No '{config.data_dir_name}' folder found. Run initialize_project, provide the 'root' argument, "
        f"or set the {PROJECT_ROOT_ENV} environment variable."
    )


def _service(root: Optional[str], *, allow_cwd: bool = False) -> DashboardService:
    config = StoreConfig.from_env()
    return DashboardService(_resolve_root(root, config, allow_cwd=allow_cwd), config=config)


@mcp.tool()
def initialize_project(root: Optional[str] = None) -> Dict[str, Any]:
    """Create the project's data folder and an empty dataset. Safe to call repeatedly."""

    return _service(root, allow_cwd=True).initialize()


@mcp.tool()
def load_data(root: Optional[str] = None) -> Dict[str, Any]:
    """Return the full project dataset: features, bugs, tasks and metadata."""

    return _service(root).load_data()


@mcp.tool()
def project_summary(root: Optional[str] = None) -> Dict[str, Any]:
    """Dashboard statistics: totals, completion, recent activity and open high-priority items."""

    return _service(root).summary()


@mcp.tool()
def get_items(kind: str, status: Optional[str] = None, root: Optional[str] = None) -> Dict[str, Any]:
    """List items of one kind ('feature', 'bug' or 'task'), optionally filtered by status."""

    return _service(root).get_items(kind, status=status)


@mcp.tool()
def get_item(kind: str, item_id: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Fetch a single item by kind and id."""

    return _service(root).get_item(kind, item_id)


@mcp.tool()
def create_item(kind: str, fields: Dict[str, Any], root: Optional[str] = None) -> Dict[str, Any]:
    """Create a feature, bug or task. Tags may be comma-separated and list fields newline-separated."""

    return _service(root).create_item(kind, fields)


@mcp.tool()
def update_item(kind: str, item_id: str, fields: Dict[str, Any], root: Optional[str] = None) -> Dict[str, Any]:
    """Update fields of an existing item. id, type and createdAt cannot be changed."""

    return _service(root).update_item(kind, item_id, fields)


@mcp.tool()
def delete_item(kind: str, item_id: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Delete an item by kind and id."""

    return _service(root).delete_item(kind, item_id)


@mcp.tool()
def export_data(root: Optional[str] = None) -> Dict[str, Any]:
    """Write a timestamped snapshot of all project data and return its path."""

    return _service(root).export_data()


@mcp.tool()
def import_data(path: str, confirm: bool = False, root: Optional[str] = None) -> Dict[str, Any]:
    """Replace ALL project data with the contents of an exported file.
    This is destructive and irreversible; pass confirm=True only after the user agrees."""

    return _service(root).import_data(path, confirm=confirm)


@mcp.resource("project-tracker://summary")
def resource_summary() -> str:
    """Plain-text overview of the detected project."""

    try:
        service = _service(None)
    except ValueError as e:
        return str(e)

    result = service.summary()
    if not result["success"]:
        return result["error"]

    summary = result["summary"]
    lines = [
        f"Project: {summary['project_name']}",
        f"Items: {summary['total_items']} "
        f"({summary['counts'].get('features', 0)} features, "
        f"{summary['counts'].get('bugs', 0)} bugs, "
        f"{summary['counts'].get('tasks', 0)} tasks)",
        f"Completed: {summary['completed']}  In progress: {summary['in_progress']}  "
        f"High priority: {summary['high_priority']}",
    ]
    if summary["high_priority_open"]:
        lines.append("")
        lines.append("Open high-priority items:")
        for item in summary["high_priority_open"]:
            lines.append(f"- [{item['priority']}] {item['type']} {item['id']}: {item['title']}")
    return "\n".join(lines)


if __name__ == "__main__":
    mcp.run(transport="stdio")
