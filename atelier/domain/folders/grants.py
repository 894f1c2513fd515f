"""
Access grants for root folders.

A grant is an opaque text blob recording where a directory was and which
filesystem object it was (device and inode). Resolving a grant yields the
live directory, follows a rename within the same parent, and reports when the
blob should be refreshed.
"""

from __future__ import annotations

import base64
import binascii
import json
import os
from dataclasses import dataclass
from pathlib import Path

from atelier.core.errors import FolderRevokedError, FolderStaleError, ResourceNotFoundError
from atelier.utils.logging import get_logger

logger = get_logger("folders.grants")

GRANT_VERSION = 1


@dataclass(frozen=True)
class ResolvedGrant:
    """Outcome of resolving a grant.

    Attributes:
        path: Live directory
        is_stale: True when the directory moved or was replaced; the caller
            should store ``create_grant(path)`` in place of the old blob
    """

    path: Path
    is_stale: bool = False


def create_grant(directory: str | Path) -> str:
    """Capture a grant for an existing, accessible directory.

    Raises:
        ResourceNotFoundError: If ``directory`` is not a directory
        FolderRevokedError: If the directory cannot be read
    """
    path = Path(directory).expanduser().resolve()
    if not path.is_dir():
        raise ResourceNotFoundError(f"Not a folder: {path}", title="Folder not found")
    _check_access(path)
    st = path.stat()
    payload = {"v": GRANT_VERSION, "path": str(path), "dev": st.st_dev, "ino": st.st_ino}
    return base64.urlsafe_b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")


def grant_path(grant: str) -> Path:
    """The path recorded in a grant, without touching the filesystem."""
    return Path(_decode(grant)["path"])


def resolve_grant(grant: str) -> ResolvedGrant:
    """Resolve a grant to a live directory.

    Raises:
        FolderStaleError: If the directory cannot be found any more
        FolderRevokedError: If it exists but cannot be accessed
    """
    data = _decode(grant)
    recorded = Path(data["path"])
    identity = (data.get("dev"), data.get("ino"))

    if recorded.is_dir():
        _check_access(recorded)
        st = recorded.stat()
        replaced = identity != (st.st_dev, st.st_ino)
        if replaced:
            logger.warning(f"Folder at {recorded} was replaced since the grant was created")
        return ResolvedGrant(recorded, is_stale=replaced)

    moved = _find_by_identity(recorded.parent, identity)
    if moved is not None:
        logger.warning(f"Folder moved from {recorded} to {moved}")
        _check_access(moved)
        return ResolvedGrant(moved, is_stale=True)

    raise FolderStaleError(f"The folder {recorded} no longer exists or was moved.")


def _decode(grant: str) -> dict:
    try:
        data = json.loads(base64.urlsafe_b64decode(grant.encode("ascii")))
    except (binascii.Error, UnicodeError, ValueError) as e:
        raise FolderStaleError("The stored folder reference is unreadable.") from e
    if not isinstance(data, dict) or not isinstance(data.get("path"), str):
        raise FolderStaleError("The stored folder reference is unreadable.")
    return data


def _check_access(path: Path) -> None:
    if not os.access(path, os.R_OK | os.X_OK):
        raise FolderRevokedError(f"Access to {path} was denied.")


def _find_by_identity(parent: Path, identity: tuple) -> Path | None:
    if None in identity or not parent.is_dir():
        return None
    try:
        with os.scandir(parent) as entries:
            for entry in entries:
                if not entry.is_dir(follow_symlinks=False):
                    continue
                st = entry.stat(follow_symlinks=False)
                if (st.st_dev, st.st_ino) == identity:
                    return Path(entry.path)
    except OSError as e:
        logger.debug(f"Could not search {parent} for a moved folder: {e}")
    return None
