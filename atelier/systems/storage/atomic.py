"""
Atomic file writes.

Write to a temporary sibling, optionally keep a ``.bak`` of the previous
file, then ``os.replace`` into place so readers never see a half-written file.
"""

from __future__ import annotations

import json
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any

from atelier.utils.logging import get_logger

logger = get_logger("storage.atomic")


def write_text_atomic(path: str | Path, text: str, make_backup: bool = False) -> Path:
    """Replace ``path`` with ``text`` in a single rename.

    Raises:
        OSError: If the temporary file cannot be written or moved into place.
            The previous file, if any, is left untouched.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())

        if make_backup and path.exists():
            try:
                shutil.copy2(path, path.with_name(path.name + ".bak"))
            except OSError as e:
                logger.warning(f"Could not create backup of {path}: {e}")

        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise

    logger.debug(f"Wrote {path} ({path.stat().st_size} bytes)")
    return path


def write_json_atomic(path: str | Path, data: Any, make_backup: bool = False) -> Path:
    """Serialize ``data`` as pretty JSON and write it atomically."""
    text = json.dumps(data, indent=2, ensure_ascii=False, sort_keys=True, default=str)
    return write_text_atomic(path, text, make_backup=make_backup)
