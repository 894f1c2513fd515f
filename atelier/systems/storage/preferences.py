"""Simple key-value preference store backed by one JSON file."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from atelier.core.errors import FileOperationError
from atelier.systems.storage.atomic import write_json_atomic
from atelier.utils.logging import get_logger

logger = get_logger("storage.preferences")

# Keys
KEY_CATEGORIES = "categories"
KEY_STATUSES = "statuses"
KEY_PROJECT_FOLDERS = "project_folders"
KEY_LEGACY_FOLDER_GRANT = "projects_folder_bookmark"


class PreferenceStore:
    """Persisted preferences, written through on every change.

    Values must be JSON-serializable. An unreadable file is logged and
    treated as empty so the application still starts.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._values: dict[str, Any] = self._load()

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            logger.info("No preferences found, using defaults.")
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load preferences from {self.path}: {e}. Using defaults.")
            return {}
        if not isinstance(data, dict):
            logger.error(f"Preferences file {self.path} is not an object. Using defaults.")
            return {}
        return data

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def __contains__(self, key: str) -> bool:
        return key in self._values

    def set(self, key: str, value: Any) -> None:
        previous = self._values.get(key)
        had_key = key in self._values
        self._values[key] = value
        try:
            self._save()
        except FileOperationError:
            if had_key:
                self._values[key] = previous
            else:
                self._values.pop(key, None)
            raise

    def remove(self, key: str) -> None:
        if key not in self._values:
            return
        previous = self._values.pop(key)
        try:
            self._save()
        except FileOperationError:
            self._values[key] = previous
            raise

    def _save(self) -> None:
        try:
            write_json_atomic(self.path, self._values)
        except OSError as e:
            raise FileOperationError.wrap("save preferences to", self.path, e) from e
