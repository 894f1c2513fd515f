"""
Filesystem operations for Atelier projects.

Stateless helpers for the project folder skeleton, folder renames and
deletes, per-project metadata files and locating the latest dated file in a
folder. Every OS-level failure is raised as a :class:`FileOperationError`
so callers can surface it instead of crashing.
"""

from __future__ import annotations

import json
import re
import shutil
import unicodedata
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Sequence

from pydantic import ValidationError

from atelier.core.errors import FileOperationError, RegistryDecodeError, ResourceNotFoundError
from atelier.core.models.project import Project, ProjectMetadata
from atelier.systems.storage.atomic import write_text_atomic


# ============================================================================
# Constants
# ============================================================================


DEFAULT_SUBFOLDERS: tuple[str, ...] = (
    "00 IN",
    "01 ASSETS",
    "02 AI",
    "03 3D",
    "04 AUDIO",
    "05 AEP",
    "06 CAVALRY",
    "07 OUTPUTS",
    "08 DELIVERABLES",
)

DEFAULT_REQUIRED_SUBFOLDERS: tuple[str, ...] = (
    "01 ASSETS",
    "05 AEP",
    "07 OUTPUTS",
    "08 DELIVERABLES",
)

METADATA_FILENAME = "project.json"
FALLBACK_FOLDER_NAME = "Project"

ILLEGAL_FOLDER_CHARS = frozenset('/\\?%*|"<>:')

_DATE_TOKEN = re.compile(r"(?<!\d)(\d{6})(?!\d)")


# ============================================================================
# Names
# ============================================================================


def sanitize_folder_name(title: str) -> str:
    """Turn a project title into a safe directory name.

    Illegal characters become ``-``, accents are folded to their base letter,
    control characters are dropped and surrounding whitespace and dots are
    trimmed. Never returns an empty string.

    Example:
        >>> sanitize_folder_name("Spot Été: v2")
        'Spot Ete- v2'
    """
    folded = unicodedata.normalize("NFKD", title or "")
    chars = []
    for ch in folded:
        if unicodedata.combining(ch):
            continue
        if ch in ILLEGAL_FOLDER_CHARS:
            chars.append("-")
        elif unicodedata.category(ch).startswith("C"):
            continue
        else:
            chars.append(ch)

    name = "".join(chars).strip().strip(".").strip()
    return name or FALLBACK_FOLDER_NAME


def unique_folder_name(parent: str | Path, name: str) -> str:
    """``name``, or ``name 2``, ``name 3``... whichever is free in ``parent``."""
    parent = Path(parent)
    candidate = name
    suffix = 2
    while (parent / candidate).exists():
        candidate = f"{name} {suffix}"
        suffix += 1
    return candidate


# ============================================================================
# Directories
# ============================================================================


def directory_exists(path: str | Path | None) -> bool:
    if path is None:
        return False
    return Path(path).is_dir()


def list_subdirectories(path: str | Path) -> list[Path]:
    """Immediate, non-hidden subdirectories of ``path`` sorted by name.

    Raises:
        ResourceNotFoundError: If ``path`` is not a directory
        FileOperationError: If the directory cannot be listed
    """
    root = Path(path)
    if not root.is_dir():
        raise ResourceNotFoundError(f"Folder not found: {root}", title="Folder not found")
    try:
        entries = [entry for entry in root.iterdir() if not entry.name.startswith(".") and entry.is_dir()]
    except OSError as e:
        raise FileOperationError.wrap("list", root, e) from e
    return sorted(entries, key=lambda entry: entry.name)


def create_project_skeleton(
    root: str | Path,
    name: str,
    subfolders: Iterable[str] = DEFAULT_SUBFOLDERS,
) -> Path:
    """Create ``root/name`` and its subfolders, keeping whatever already exists.

    Idempotent: running it again on a complete skeleton changes nothing.

    Returns:
        Path of the project directory
    """
    project_dir = Path(root) / name
    try:
        project_dir.mkdir(parents=True, exist_ok=True)
        for sub in subfolders:
            (project_dir / sub).mkdir(exist_ok=True)
    except OSError as e:
        raise FileOperationError.wrap("create the project folder", project_dir, e) from e
    return project_dir


def count_required_subfolders(path: str | Path, required: Sequence[str] = DEFAULT_REQUIRED_SUBFOLDERS) -> int:
    folder = Path(path)
    return sum(1 for sub in required if (folder / sub).is_dir())


def looks_like_project(
    path: str | Path,
    required: Sequence[str] = DEFAULT_REQUIRED_SUBFOLDERS,
    threshold: int = 3,
) -> bool:
    """True if at least ``threshold`` of the ``required`` subfolders exist."""
    return count_required_subfolders(path, required) >= threshold


def rename_folder(path: str | Path, new_name: str, metadata_filename: str = METADATA_FILENAME) -> Path:
    """Rename a directory in place and bring its metadata file along.

    The directory is moved first; if the metadata file was left behind at the
    old location (copy-then-delete moves across devices), it is moved after.

    Returns:
        New path of the directory
    """
    old = Path(path)
    new = old.with_name(new_name)
    if new == old:
        return old
    if not old.is_dir():
        raise ResourceNotFoundError(f"Project folder not found: {old}", title="Folder not found")
    if new.exists():
        raise FileOperationError(
            f"A folder named '{new_name}' already exists in {old.parent}",
            title="Rename failed",
        )

    try:
        shutil.move(str(old), str(new))
    except OSError as e:
        raise FileOperationError.wrap("rename", old, e) from e

    old_metadata = old / metadata_filename
    if old_metadata.exists():
        try:
            shutil.move(str(old_metadata), str(new / metadata_filename))
        except OSError as e:
            raise FileOperationError.wrap("move the metadata file", old_metadata, e) from e

    return new


def delete_directory(path: str | Path) -> None:
    folder = Path(path)
    if not folder.exists():
        raise ResourceNotFoundError(f"Folder not found: {folder}", title="Folder not found")
    try:
        shutil.rmtree(folder)
    except OSError as e:
        raise FileOperationError.wrap("delete", folder, e) from e


# ============================================================================
# Dated files
# ============================================================================


def parse_date_token(name: str) -> datetime | None:
    """Parse the first standalone six-digit YYMMDD token in ``name``."""
    match = _DATE_TOKEN.search(name)
    if match is None:
        return None
    try:
        return datetime.strptime(match.group(1), "%y%m%d")
    except ValueError:
        return None


def latest_dated_file(folder: str | Path, extension: str) -> Path | None:
    """Return the most relevant ``*.extension`` file in ``folder``.

    Files whose stem carries a parseable YYMMDD date win, newest first, ties
    broken by reverse filename order. Without any dated file, the most
    recently modified match is returned. None if nothing matches.
    """
    directory = Path(folder)
    suffix = "." + extension.lower().lstrip(".")
    try:
        candidates = [
            entry for entry in directory.iterdir()
            if entry.is_file() and not entry.name.startswith(".") and entry.suffix.lower() == suffix
        ]
    except OSError as e:
        raise FileOperationError.wrap("list", directory, e) from e

    if not candidates:
        return None

    dated = [(parse_date_token(entry.stem), entry) for entry in candidates]
    dated = [(date, entry) for date, entry in dated if date is not None]
    if dated:
        dated.sort(key=lambda item: (item[0], item[1].name), reverse=True)
        return dated[0][1]

    def mtime(entry: Path) -> float:
        try:
            return entry.stat().st_mtime
        except OSError:
            return float("-inf")

    return max(candidates, key=mtime)


# ============================================================================
# Per-project metadata
# ============================================================================


def metadata_path(folder: str | Path, filename: str = METADATA_FILENAME) -> Path:
    return Path(folder) / filename


def write_project_metadata(project: Project, filename: str = METADATA_FILENAME) -> Path:
    """Write the project's metadata file into its backing folder."""
    folder = project.root_folder
    if folder is None:
        raise ResourceNotFoundError(f"Project '{project.title}' has no folder", title="Folder not found")
    target = metadata_path(folder, filename)
    payload = project.model_dump_json(indent=2, exclude={"root_folder_path"})
    try:
        return write_text_atomic(target, payload)
    except OSError as e:
        raise FileOperationError.wrap("write", target, e) from e


def _read_metadata_text(folder: Path, filename: str) -> str | None:
    target = metadata_path(folder, filename)
    if not target.is_file():
        return None
    try:
        return target.read_text(encoding="utf-8")
    except OSError as e:
        raise FileOperationError.wrap("read", target, e) from e


def read_project_metadata(folder: str | Path, filename: str = METADATA_FILENAME) -> ProjectMetadata | None:
    """Read the lightweight identifying fields of a project folder.

    Returns:
        None when the folder has no metadata file

    Raises:
        RegistryDecodeError: If the file is malformed
    """
    text = _read_metadata_text(Path(folder), filename)
    if text is None:
        return None
    try:
        return ProjectMetadata.model_validate_json(text)
    except ValidationError as e:
        raise RegistryDecodeError(
            f"Malformed metadata file in {folder}: {e.error_count()} error(s)",
        ) from e


def read_full_metadata(folder: str | Path, filename: str = METADATA_FILENAME) -> dict[str, Any]:
    """Read every field of a project metadata file as a dict."""
    text = _read_metadata_text(Path(folder), filename)
    if text is None:
        raise ResourceNotFoundError(f"No metadata file in {folder}", title="Metadata not found")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise RegistryDecodeError(f"Malformed metadata file in {folder}: {e}") from e
    if not isinstance(data, dict):
        raise RegistryDecodeError(f"Malformed metadata file in {folder}: expected an object")
    return data
