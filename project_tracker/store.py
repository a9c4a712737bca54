"""File-backed record store for a single project.

The store owns ``<root>/.project-manager/``. Every mutation is a full
load -> mutate -> validate -> save cycle over ``project-data.json``, and every
save writes a timestamped backup and prunes old ones. All public operations
for one data directory are serialized through a shared re-entrant lock, so
concurrent callers in the same process cannot lose each other's writes.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .config import StoreConfig
from .errors import CorruptDataError, StorageError, ValidationError
from .models import BaseItem, NotFound, ProjectData, ProjectMetadata, ProjectSummary, item_from_dict
from .schemas import IMMUTABLE_FIELDS, get_kind
from .tracker_logging import (
    StoreEvents,
    log_error_with_context,
    log_operation,
    log_performance,
    store_events,
)
from .validation import FieldError, validate_item, validate_project_data

logger = logging.getLogger("project_tracker.store")

BACKUP_PREFIX = "backup-"
EXPORT_PREFIX = "export-"

# One lock per resolved data directory, shared by every store bound to it.
_STORE_LOCKS: Dict[Path, threading.RLock] = {}
_STORE_LOCKS_GUARD = threading.Lock()


def _lock_for(data_path: Path) -> threading.RLock:
    with _STORE_LOCKS_GUARD:
        lock = _STORE_LOCKS.get(data_path)
        if lock is None:
            lock = _STORE_LOCKS[data_path] = threading.RLock()
        return lock


def _timestamp(moment: Optional[datetime] = None) -> str:
    """Format an aware UTC datetime as an RFC 3339 string with millisecond precision."""
    moment = moment or datetime.now(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _parse_timestamp(value: str) -> Optional[datetime]:
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _generate_item_id(existing: set) -> str:
    """Generate an id of the form ``<epoch-millis>-<9 hex chars>`` not in ``existing``."""
    while True:
        candidate = f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"
        if candidate not in existing:
            return candidate


def _dumps(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False)


def _file_mode() -> int:
    """Mode a plain ``open(path, "w")`` would give a new file under the current umask."""
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


# mkstemp creates 0600 files and os.replace keeps that mode.
_FILE_MODE = _file_mode()


def _write_atomic(path: Path, content: str) -> None:
    """Write ``content`` to ``path`` via a temp file in the same directory and ``os.replace``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(tmp_path, _FILE_MODE)
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def _stamp_of(path: Path, prefix: str) -> int:
    try:
        return int(path.name[len(prefix):-len(".json")])
    except ValueError:
        return -1


def _find_index(items: List[BaseItem], item_id: str) -> Optional[int]:
    for index, item in enumerate(items):
        if item.id == item_id:
            return index
    return None


class RecordStore:
    """Validated CRUD, backup and export/import over one project's data file."""

    def __init__(
        self,
        project_root: Union[Path, str],
        config: Optional[StoreConfig] = None,
        events: Optional[StoreEvents] = None,
    ):
        self.root = Path(project_root).resolve()
        self.config = config or StoreConfig()
        self.data_path = self.root / self.config.data_dir_name
        self.data_file = self.data_path / self.config.data_file_name
        self.events = events or store_events
        self._lock = _lock_for(self.data_path)
        self._last_file_stamp = 0

    def __repr__(self) -> str:
        return f"RecordStore({str(self.root)!r})"

    # ------------------------------------------------------------------
    # Dataset lifecycle
    # ------------------------------------------------------------------

    def is_initialized(self) -> bool:
        return self.data_file.is_file()

    @log_performance("initialize")
    def initialize(self) -> bool:
        """Create the data directory and an empty dataset if none exists.

        Safe to call repeatedly; an existing dataset is never touched.

        Returns:
            True if a new dataset was written, False if one already existed

        Raises:
            StorageError: If the data directory cannot be created
        """
        with self._lock:
            try:
                self.data_path.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                log_error_with_context(e, {"operation": "initialize", "data_path": str(self.data_path)})
                raise StorageError(self.data_path, f"Could not create data directory ({e})") from e

            if self.data_file.exists():
                logger.debug(f"Project data already present at {self.data_file}")
                return False

            data = ProjectData(
                metadata=ProjectMetadata(
                    project_name=self.root.name or "project",
                    version=self.config.initial_version,
                    last_updated=_timestamp(),
                )
            )
            self.save(data)

        logger.info(f"Initialized project data at {self.data_file}")
        self.events.emit("project_initialized", data_path=str(self.data_path))
        return True

    @log_performance("load")
    def load(self) -> ProjectData:
        """Read, parse and validate the canonical dataset.

        Raises:
            StorageError: If the data file cannot be read
            CorruptDataError: If the file is not valid JSON or fails validation
        """
        with self._lock:
            try:
                raw = self.data_file.read_text(encoding="utf-8")
            except FileNotFoundError as e:
                raise StorageError(self.data_file, "Project data not found; initialize the project first") from e
            except UnicodeDecodeError as e:
                raise CorruptDataError(self.data_file, f"not valid UTF-8 ({e})") from None
            except OSError as e:
                log_error_with_context(e, {"operation": "load", "data_file": str(self.data_file)})
                raise StorageError(self.data_file, f"Failed to read project data ({e})") from e

            try:
                payload = json.loads(raw)
            except json.JSONDecodeError as e:
                raise CorruptDataError(self.data_file, f"invalid JSON ({e})") from None

            result = validate_project_data(payload)
            if not result.valid:
                raise CorruptDataError(self.data_file, "schema validation failed", result.errors)

            return ProjectData.from_dict(payload)

    @log_performance("save")
    def save(self, data: ProjectData) -> None:
        """Validate and persist ``data``, then write a backup and prune old ones.

        ``data.metadata.last_updated`` is stamped with the current time, or with
        the incoming or on-disk stamp if either is later, so the persisted value
        never moves backwards.

        Raises:
            ValidationError: If ``data`` fails aggregate validation; nothing is written
            StorageError: If the data file or its backup cannot be written
        """
        with self._lock:
            payload = data.to_dict()
            result = validate_project_data(payload)
            if not result.valid:
                raise ValidationError("Refusing to write invalid project data", result.errors)

            stamp = self._next_last_updated(data.metadata.last_updated, self._persisted_last_updated())
            data.metadata.last_updated = stamp
            payload["metadata"]["lastUpdated"] = stamp
            content = _dumps(payload)

            try:
                _write_atomic(self.data_file, content)
            except OSError as e:
                log_error_with_context(e, {"operation": "save", "data_file": str(self.data_file)})
                raise StorageError(self.data_file, f"Failed to write project data ({e})") from e

            backup_path = self._stamped_path(BACKUP_PREFIX)
            try:
                _write_atomic(backup_path, content)
            except OSError as e:
                log_error_with_context(e, {"operation": "save", "backup_path": str(backup_path)})
                raise StorageError(backup_path, f"Failed to write backup ({e})") from e

            self._prune_backups()

        self.events.emit("data_saved", data_path=str(self.data_path), last_updated=stamp)

    def _persisted_last_updated(self) -> Optional[str]:
        """The ``lastUpdated`` stamp of the dataset currently on disk, if readable."""
        try:
            payload = json.loads(self.data_file.read_text(encoding="utf-8"))
            stamp = payload["metadata"]["lastUpdated"]
        except (OSError, ValueError, KeyError, TypeError):
            return None
        return stamp if isinstance(stamp, str) else None

    def _next_last_updated(self, *previous: Optional[str]) -> str:
        """Latest of now and ``previous``, so the persisted stamp never moves backwards."""
        now = datetime.now(timezone.utc)
        latest, latest_stamp = now, None
        for stamp in previous:
            moment = _parse_timestamp(stamp) if stamp else None
            if moment is not None and moment > latest:
                latest, latest_stamp = moment, stamp
        return latest_stamp or _timestamp(now)

    # ------------------------------------------------------------------
    # Backups and stamped files
    # ------------------------------------------------------------------

    def _stamped_path(self, prefix: str) -> Path:
        """Return ``<prefix><epoch-millis>.json``, bumping the stamp past any earlier file."""
        stamp = max(int(time.time() * 1000), self._last_file_stamp + 1)
        path = self.data_path / f"{prefix}{stamp}.json"
        while path.exists():
            stamp += 1
            path = self.data_path / f"{prefix}{stamp}.json"
        self._last_file_stamp = stamp
        return path

    def list_backups(self) -> List[Path]:
        """Backup files, newest first (by timestamp, then filename)."""
        if not self.data_path.is_dir():
            return []
        backups = [path for path in self.data_path.glob(f"{BACKUP_PREFIX}*.json") if path.is_file()]
        return sorted(backups, key=lambda path: (_stamp_of(path, BACKUP_PREFIX), path.name), reverse=True)

    def _prune_backups(self) -> None:
        """Delete all but the newest backups. Failures are logged, never raised."""
        try:
            stale = self.list_backups()[self.config.backup_retention:]
        except OSError as e:
            logger.warning(f"Failed to list backups in {self.data_path}: {e}")
            return

        for path in stale:
            try:
                path.unlink()
                logger.debug(f"Pruned backup {path.name}")
            except OSError as e:
                logger.warning(f"Failed to prune backup {path}: {e}")

    # ------------------------------------------------------------------
    # Item CRUD
    # ------------------------------------------------------------------

    @log_performance("create_item")
    def create_item(self, kind: str, fields: Dict[str, Any]) -> BaseItem:
        """Create a ``kind`` record from ``fields`` and persist it.

        The store assigns ``id``, ``type``, ``createdAt`` and ``updatedAt``.
        Fields set to None are treated as absent.

        Raises:
            UnknownKindError: If ``kind`` is not registered
            ValidationError: If the assembled record fails its schema; nothing is written
        """
        get_kind(kind)
        if not isinstance(fields, dict):
            raise ValidationError(f"Invalid {kind} data", [FieldError("(root)", "fields must be an object")])
        if fields.get("type") not in (None, kind):
            raise ValidationError(
                f"Invalid {kind} data",
                [FieldError("type", f"{fields['type']!r} does not match item kind {kind!r}")],
            )

        with self._lock, log_operation("create_item", kind=kind):
            data = self.load()
            collection = data.items_of(kind)

            now = _timestamp()
            record = {key: value for key, value in fields.items() if value is not None}
            record.update(
                id=_generate_item_id({item.id for item in collection}),
                type=kind,
                createdAt=now,
                updatedAt=now,
            )

            result = validate_item(kind, record)
            if not result.valid:
                raise ValidationError(f"Invalid {kind} data", result.errors)

            item = item_from_dict(record)
            collection.append(item)
            self.save(data)

        self.events.emit("item_created", data_path=str(self.data_path), kind=kind, item_id=item.id)
        return item

    @log_performance("update_item")
    def update_item(self, kind: str, item_id: str, fields: Dict[str, Any]) -> Union[BaseItem, NotFound]:
        """Merge ``fields`` onto an existing record and persist it.

        ``id``, ``type`` and ``createdAt`` in ``fields`` are ignored. A field set
        to None is removed, which only validates for optional fields.

        Returns:
            The updated record, or a falsy :class:`NotFound` if no record has ``item_id``

        Raises:
            UnknownKindError: If ``kind`` is not registered
            ValidationError: If the merged record fails its schema; nothing is written
        """
        get_kind(kind)
        if not isinstance(fields, dict):
            raise ValidationError(f"Invalid {kind} update", [FieldError("(root)", "fields must be an object")])

        with self._lock, log_operation("update_item", kind=kind, item_id=item_id):
            data = self.load()
            collection = data.items_of(kind)
            index = _find_index(collection, item_id)
            if index is None:
                logger.info(f"{kind} '{item_id}' not found for update")
                return NotFound(kind, item_id)

            ignored = sorted(key for key in fields if key in IMMUTABLE_FIELDS)
            if ignored:
                logger.debug(f"Ignoring immutable fields {ignored} in update of {kind} '{item_id}'")

            merged = collection[index].to_dict()
            for key, value in fields.items():
                if key in IMMUTABLE_FIELDS:
                    continue
                if value is None:
                    merged.pop(key, None)
                else:
                    merged[key] = value
            merged["updatedAt"] = _timestamp()

            result = validate_item(kind, merged)
            if not result.valid:
                raise ValidationError(f"Invalid {kind} update", result.errors)

            item = item_from_dict(merged)
            collection[index] = item
            self.save(data)

        self.events.emit("item_updated", data_path=str(self.data_path), kind=kind, item_id=item_id)
        return item

    @log_performance("delete_item")
    def delete_item(self, kind: str, item_id: str) -> bool:
        """Remove a record. Returns False if no record has ``item_id``."""
        get_kind(kind)
        with self._lock, log_operation("delete_item", kind=kind, item_id=item_id):
            data = self.load()
            collection = data.items_of(kind)
            index = _find_index(collection, item_id)
            if index is None:
                logger.info(f"{kind} '{item_id}' not found for deletion")
                return False

            del collection[index]
            self.save(data)

        self.events.emit("item_deleted", data_path=str(self.data_path), kind=kind, item_id=item_id)
        return True

    def get_items(self, kind: str, status: Optional[str] = None) -> List[BaseItem]:
        """Records of ``kind``, optionally only those with ``status``."""
        get_kind(kind)
        items = self.load().items_of(kind)
        if status is not None:
            items = [item for item in items if item.status == status]
        return list(items)

    def get_item(self, kind: str, item_id: str) -> Optional[BaseItem]:
        for item in self.get_items(kind):
            if item.id == item_id:
                return item
        return None

    def summary(self) -> ProjectSummary:
        return ProjectSummary.from_project_data(self.load())

    # ------------------------------------------------------------------
    # Export / import
    # ------------------------------------------------------------------

    @log_performance("export_data")
    def export_data(self) -> Path:
        """Write a pretty-printed snapshot to ``export-<epoch-millis>.json``.

        Raises:
            StorageError: If the snapshot cannot be written
        """
        with self._lock:
            data = self.load()
            export_path = self._stamped_path(EXPORT_PREFIX)
            try:
                _write_atomic(export_path, _dumps(data.to_dict()))
            except OSError as e:
                log_error_with_context(e, {"operation": "export_data", "export_path": str(export_path)})
                raise StorageError(export_path, f"Failed to write export ({e})") from e

        logger.info(f"Exported project data to {export_path}")
        self.events.emit("data_exported", data_path=str(self.data_path), path=str(export_path))
        return export_path

    @log_performance("import_data")
    def import_data(self, file_path: Union[Path, str]) -> ProjectData:
        """Replace the whole dataset with the aggregate stored in ``file_path``.

        This is a destructive replace, not a merge. On any failure the current
        dataset is left untouched.

        Raises:
            StorageError: If the file cannot be read or the dataset cannot be written
            ValidationError: If the file is not JSON or not a valid aggregate
        """
        source = Path(file_path)
        try:
            raw = source.read_text(encoding="utf-8")
        except OSError as e:
            log_error_with_context(e, {"operation": "import_data", "source": str(source)})
            raise StorageError(source, f"Failed to read import file ({e})") from e
        except UnicodeDecodeError as e:
            raise ValidationError("Invalid import data", [FieldError("(root)", f"not valid UTF-8: {e}")]) from None

        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValidationError("Invalid import data", [FieldError("(root)", f"invalid JSON: {e}")]) from None

        result = validate_project_data(payload)
        if not result.valid:
            raise ValidationError("Invalid import data", result.errors)

        data = ProjectData.from_dict(payload)
        with self._lock, log_operation("import_data", source=str(source)):
            self.save(data)

        self.events.emit("data_imported", data_path=str(self.data_path), source=str(source))
        return data
