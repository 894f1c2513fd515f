"""Shared builders for the Atelier test suite."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

from atelier.app.config import AtelierConfig
from atelier.app.state import AtelierState
from atelier.systems.storage.file_io import DEFAULT_REQUIRED_SUBFOLDERS


def make_state(base: Path, with_root: bool = True) -> tuple[AtelierState, Path]:
    """Build a fully wired state under ``base``.

    Returns:
        The state and the root folder registered as default (created even
        when ``with_root`` is False, but then not registered)
    """
    config = AtelierConfig(data_dir=base / "data", notes_debounce_seconds=0.05)
    state = AtelierState.create(config)
    root = base / "Projects"
    root.mkdir(parents=True, exist_ok=True)
    if with_root:
        state.folders.add_folder(root)
    return state, root


def make_project_dir(root: Path, name: str, subfolders: Iterable[str] = DEFAULT_REQUIRED_SUBFOLDERS) -> Path:
    folder = root / name
    folder.mkdir(parents=True)
    for sub in subfolders:
        (folder / sub).mkdir()
    return folder
