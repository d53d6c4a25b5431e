"""
Permission Store
----------------
Per-project, per-function tool approval decisions that outlive the process.

Rules:
- Only ALWAYS and NEVER persist; ONCE is transient and rejected
- No record means "ask the user"
- Records are keyed by (absolute project path, function name)
- Writes are atomic: a crash never leaves a half-written file
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional
import logging
import os
import threading

import yaml


DEFAULT_PERMISSIONS_FILE = "~/.seekcli/permissions.yaml"


class PermissionLevel(str, Enum):
    """User decision for a function in a project."""
    ONCE = "once"       # This call only; never stored
    ALWAYS = "always"   # Execute without asking in this project
    NEVER = "never"     # Block without asking in this project


@dataclass
class PermissionRecord:
    """A stored decision."""
    function_name: str
    project_path: str
    level: PermissionLevel
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for storage (keyed by project and function outside)."""
        return {
            "level": self.level.value,
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(
        cls,
        function_name: str,
        project_path: str,
        data: Dict[str, Any]
    ) -> "PermissionRecord":
        """Deserialize from storage."""
        updated_at = data.get("updated_at")
        return cls(
            function_name=function_name,
            project_path=project_path,
            level=PermissionLevel(data["level"]),
            updated_at=(
                datetime.fromisoformat(updated_at) if updated_at
                else datetime.now(timezone.utc)
            ),
        )


def normalize_project(project_path: str) -> str:
    """Projects are identified by absolute, resolved path."""
    return str(Path(project_path).expanduser().resolve())


class PermissionStore:
    """
    Thread-safe permission storage backed by a YAML file.

    With path=None the store is memory-only (used by tests and
    when persistence is disabled in config).
    """

    def __init__(self, path: Optional[str] = DEFAULT_PERMISSIONS_FILE):
        self._path = Path(path).expanduser() if path else None
        self._records: Dict[str, Dict[str, PermissionRecord]] = {}
        self._lock = threading.Lock()
        self._logger = logging.getLogger("seekcli.security.permissions")

        if self._path is not None:
            self._load()

    @property
    def path(self) -> Optional[Path]:
        return self._path

    def _load(self) -> None:
        """Load records from disk. A corrupt file is logged and ignored."""
        if not self._path.exists():
            self._logger.debug(f"No permissions file at {self._path}")
            return

        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            self._logger.error(f"Failed to load permissions from {self._path}: {e}")
            return

        if not isinstance(data, dict):
            self._logger.error(f"Ignoring permissions file {self._path}: not a mapping")
            return

        projects = data.get("projects") or {}
        if not isinstance(projects, dict):
            self._logger.error(
                f"Ignoring permissions file {self._path}: 'projects' is not a mapping"
            )
            return

        loaded = 0
        for project, functions in projects.items():
            if functions is None:
                continue
            if not isinstance(functions, dict):
                self._logger.warning(f"Skipping permissions for {project}: not a mapping")
                continue
            for function_name, record_data in functions.items():
                try:
                    record = PermissionRecord.from_dict(function_name, project, record_data)
                except (AttributeError, KeyError, ValueError, TypeError) as e:
                    self._logger.warning(
                        f"Skipping bad permission record {project}:{function_name}: {e}"
                    )
                    continue
                if record.level == PermissionLevel.ONCE:
                    continue
                self._records.setdefault(project, {})[function_name] = record
                loaded += 1

        self._logger.info(f"Loaded {loaded} permission record(s) from {self._path}")

    def _save(self) -> None:
        """Write all records atomically. Caller holds the lock."""
        if self._path is None:
            return

        data = {
            "projects": {
                project: {name: record.to_dict() for name, record in functions.items()}
                for project, functions in self._records.items()
                if functions
            }
        }

        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, sort_keys=True)
        os.replace(tmp_path, self._path)

    def check_permission(self, function_name: str, project_path: str) -> Optional[PermissionLevel]:
        """Return the stored level, or None if the user must be asked."""
        project = normalize_project(project_path)
        with self._lock:
            record = self._records.get(project, {}).get(function_name)
        return record.level if record else None

    def set_permission(
        self,
        function_name: str,
        project_path: str,
        level: PermissionLevel
    ) -> PermissionRecord:
        """
        Persist a decision.

        Raises:
            ValueError: for ONCE, which is never stored
            OSError: if the file cannot be written
        """
        level = PermissionLevel(level)
        if level == PermissionLevel.ONCE:
            raise ValueError("ONCE permissions are not persisted")

        project = normalize_project(project_path)
        record = PermissionRecord(
            function_name=function_name,
            project_path=project,
            level=level,
        )

        with self._lock:
            self._records.setdefault(project, {})[function_name] = record
            self._save()

        self._logger.info(f"Set permission {function_name}={level.value} for {project}")
        return record

    def list_permissions(self, project_path: str) -> List[PermissionRecord]:
        """All stored decisions for a project, sorted by function name."""
        project = normalize_project(project_path)
        with self._lock:
            records = list(self._records.get(project, {}).values())
        return sorted(records, key=lambda r: r.function_name)

    def clear_permission(self, function_name: str, project_path: str) -> bool:
        """Forget one decision. Returns True if one existed."""
        project = normalize_project(project_path)
        with self._lock:
            functions = self._records.get(project, {})
            if function_name not in functions:
                return False
            del functions[function_name]
            self._save()

        self._logger.info(f"Cleared permission {function_name} for {project}")
        return True

    def clear_all(self, project_path: str) -> int:
        """Forget every decision for a project. Returns the count removed."""
        project = normalize_project(project_path)
        with self._lock:
            count = len(self._records.pop(project, {}))
            if count:
                self._save()

        self._logger.info(f"Cleared {count} permission(s) for {project}")
        return count
