"""
Project registry persistence.

The registry is a single JSON array of projects stored in the application
data directory. The same format is used for user-chosen export and import
files.
"""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

from pydantic import TypeAdapter, ValidationError

from atelier.core.errors import FileOperationError, RegistryDecodeError, ResourceNotFoundError
from atelier.core.models.project import Project
from atelier.systems.storage.atomic import write_text_atomic
from atelier.utils.logging import get_logger

logger = get_logger("storage.persistence")

_PROJECT_LIST = TypeAdapter(list[Project])


def dump_projects(projects: Sequence[Project]) -> str:
    """Serialize projects to the registry JSON format (ISO-8601 timestamps)."""
    return _PROJECT_LIST.dump_json(list(projects), indent=2).decode("utf-8")


def parse_projects(text: str | bytes, source: str | Path) -> list[Project]:
    """Parse a registry document.

    Raises:
        RegistryDecodeError: If the document is not a valid project array
            or contains the same id twice
    """
    try:
        projects = _PROJECT_LIST.validate_json(text)
    except ValidationError as e:
        raise RegistryDecodeError(
            f"'{source}' is not a valid project file ({e.error_count()} error(s))",
        ) from e

    seen: set = set()
    for project in projects:
        if project.id in seen:
            raise RegistryDecodeError(f"'{source}' lists project {project.id} more than once")
        seen.add(project.id)
    return projects


class PersistenceStore:
    """Reads and writes the central project registry.

    Usage:
        store = PersistenceStore(config.registry_path)
        projects = store.load()
        store.save(projects)
    """

    def __init__(self, path: str | Path, make_backup: bool = True):
        self.path = Path(path)
        self.make_backup = make_backup

    def save(self, projects: Sequence[Project]) -> None:
        """Atomically replace the registry file.

        Raises:
            FileOperationError: If the file cannot be written; the previous
                registry is left intact
        """
        self._write(self.path, projects, make_backup=self.make_backup)
        logger.info(f"Saved {len(projects)} project(s) to {self.path}")

    def load(self) -> list[Project]:
        """Load the registry.

        Returns:
            An empty list on first run (no file yet)

        Raises:
            RegistryDecodeError: If the file exists but is malformed
            FileOperationError: If the file exists but cannot be read
        """
        if not self.path.exists():
            logger.info("No project registry found, starting with an empty list")
            return []

        projects = parse_projects(self._read(self.path), self.path)
        logger.info(f"Loaded {len(projects)} project(s) from {self.path}")
        return projects

    def export_to(self, projects: Sequence[Project], destination: str | Path) -> Path:
        destination = Path(destination)
        self._write(destination, projects, make_backup=False)
        logger.info(f"Exported {len(projects)} project(s) to {destination}")
        return destination

    def import_from(self, source: str | Path) -> list[Project]:
        source = Path(source)
        if not source.is_file():
            raise ResourceNotFoundError(f"Import file not found: {source}", title="Import failed")
        projects = parse_projects(self._read(source), source)
        logger.info(f"Read {len(projects)} project(s) from {source}")
        return projects

    # ========== Internals ==========

    @staticmethod
    def _read(path: Path) -> bytes:
        try:
            return path.read_bytes()
        except OSError as e:
            raise FileOperationError.wrap("read", path, e) from e

    @staticmethod
    def _write(path: Path, projects: Sequence[Project], make_backup: bool) -> None:
        try:
            write_text_atomic(path, dump_projects(projects), make_backup=make_backup)
        except OSError as e:
            raise FileOperationError.wrap("save", path, e) from e
