"""Configuration for the project tracker store."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List

DATA_DIR_ENV = "PROJECT_TRACKER_DATA_DIR"
BACKUP_RETENTION_ENV = "PROJECT_TRACKER_BACKUP_RETENTION"


@dataclass(frozen=True)
class StoreConfig:
    """Where and how a project's data is persisted."""

    data_dir_name: str = ".project-manager"
    data_file_name: str = "project-data.json"
    backup_retention: int = 5
    initial_version: str = "1.0.0"

    def validate(self) -> List[str]:
        """Validate configuration values. Returns list of error messages."""
        errors: List[str] = []

        if not self.data_dir_name or not self.data_dir_name.strip():
            errors.append("Data directory name is required")
        elif os.sep in self.data_dir_name or (os.altsep and os.altsep in self.data_dir_name):
            errors.append("Data directory name must be a single path component")

        if not self.data_file_name.endswith(".json"):
            errors.append("Data file name must end with .json")
        elif self.data_file_name.startswith(("backup-", "export-")):
            errors.append("Data file name must not use the backup- or export- prefix")

        if self.backup_retention < 1:
            errors.append("Backup retention must be at least 1")

        return errors

    @classmethod
    def from_env(cls) -> "StoreConfig":
        """Build a config from defaults overridden by environment variables.

        Raises:
            ValueError: If an override is malformed or the result is invalid
        """
        kwargs = {}

        data_dir = os.getenv(DATA_DIR_ENV)
        if data_dir:
            kwargs["data_dir_name"] = data_dir

        retention = os.getenv(BACKUP_RETENTION_ENV)
        if retention:
            try:
                kwargs["backup_retention"] = int(retention)
            except ValueError:
                raise ValueError(f"{BACKUP_RETENTION_ENV} must be an integer, got {retention!r}") from None

        config = cls(**kwargs)
        errors = config.validate()
        if errors:
            raise ValueError(f"Invalid configuration: {'; '.join(errors)}")
        return config
