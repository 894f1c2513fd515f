"""
Directory scanning for project roots.

These functions block on filesystem I/O and are meant to run in a worker
thread (``asyncio.to_thread``). They never touch the store: they take a
snapshot of what is already known and return plain results that the store
applies on its own thread.
"""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Sequence
from uuid import UUID

from atelier.core.errors import AtelierError
from atelier.core.models.project import Project
from atelier.systems.storage.file_io import (
    DEFAULT_REQUIRED_SUBFOLDERS,
    METADATA_FILENAME,
    list_subdirectories,
    looks_like_project,
    read_project_metadata,
)
from atelier.utils.logging import get_logger, log_error

logger = get_logger("projects.scanner")


@dataclass
class ScanResult:
    """What a scan found under one root directory.

    Attributes:
        root: Directory that was scanned
        projects: Projects built from the folders found
        relocated: Known project ids whose folder was found at a new path
        failures: Number of folders that could not be read
        cancelled: True when the scan stopped early
    """

    root: Path
    projects: list[Project] = field(default_factory=list)
    relocated: dict[UUID, Path] = field(default_factory=dict)
    failures: int = 0
    cancelled: bool = False


def normalize_path(path: str | Path) -> str:
    return os.path.normcase(os.path.abspath(str(path)))


def _skip_duplicate(result: ScanResult, folder: Path, project_id: UUID) -> None:
    # Copied project folders carry the same metadata id; the first one wins.
    logger.warning(f"Skipping {folder}: project id {project_id} already seen in this scan")
    result.failures += 1


def scan_directory(
    root: Path,
    known: Mapping[UUID, Optional[str]],
    metadata_filename: str = METADATA_FILENAME,
    required: Sequence[str] = DEFAULT_REQUIRED_SUBFOLDERS,
    threshold: int = 3,
    stop: threading.Event | None = None,
) -> ScanResult:
    """Lightweight scan: read the metadata file of every subdirectory.

    Folders without a metadata file are skipped. A folder whose metadata id
    belongs to a known project whose recorded folder no longer exists is
    reported in ``relocated``.

    Args:
        root: Root directory to enumerate
        known: Snapshot of known project ids and their recorded folder paths

    Raises:
        ResourceNotFoundError / FileOperationError: If ``root`` cannot be listed
    """
    result = ScanResult(root=root)
    seen: set[UUID] = set()
    for folder in list_subdirectories(root):
        if stop is not None and stop.is_set():
            result.cancelled = True
            break
        try:
            metadata = read_project_metadata(folder, metadata_filename)
            if metadata is None:
                continue
            if metadata.id in seen:
                _skip_duplicate(result, folder, metadata.id)
                continue
            seen.add(metadata.id)
            if metadata.id in known:
                recorded = known[metadata.id]
                if recorded is None or (
                    normalize_path(recorded) != normalize_path(folder) and not Path(recorded).is_dir()
                ):
                    result.relocated[metadata.id] = folder
                continue
            structured = looks_like_project(folder, required, threshold)
            result.projects.append(metadata.to_project(folder, has_folder_structure=structured))
        except AtelierError as e:
            result.failures += 1
            log_error(logger, "read project folder", e, {"folder": str(folder)})

    logger.info(
        f"Scanned {root}: {len(result.projects)} new, "
        f"{len(result.relocated)} relocated, {result.failures} failure(s)"
    )
    return result


def discover_candidates(
    root: Path,
    known_paths: set[str],
    metadata_filename: str = METADATA_FILENAME,
    required: Sequence[str] = DEFAULT_REQUIRED_SUBFOLDERS,
    threshold: int = 3,
    stop: threading.Event | None = None,
) -> ScanResult:
    """Find folders under ``root`` that look like untracked projects.

    A folder qualifies when it is not already referenced by a known project
    and at least ``threshold`` of the ``required`` subfolders exist. Its
    metadata file is used when present, otherwise the folder name becomes the
    title.

    Args:
        known_paths: Normalized folder paths of the projects already tracked
    """
    result = ScanResult(root=root)
    seen: set[UUID] = set()
    for folder in list_subdirectories(root):
        if stop is not None and stop.is_set():
            result.cancelled = True
            break
        if normalize_path(folder) in known_paths:
            continue
        if not looks_like_project(folder, required, threshold):
            logger.debug(f"Skipping {folder.name}: not a project skeleton")
            continue

        project = None
        try:
            metadata = read_project_metadata(folder, metadata_filename)
            if metadata is not None:
                project = metadata.to_project(folder, has_folder_structure=True)
        except AtelierError as e:
            result.failures += 1
            log_error(logger, "read project metadata", e, {"folder": str(folder)})

        if project is None:
            project = Project(title=folder.name, root_folder_path=str(folder), has_folder_structure=True)
        if project.id in seen:
            _skip_duplicate(result, folder, project.id)
            continue
        seen.add(project.id)
        result.projects.append(project)

    logger.info(f"Discovered {len(result.projects)} untracked project(s) in {root}")
    return result
