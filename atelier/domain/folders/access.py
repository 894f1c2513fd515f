"""
Reference-counted access to root folders.

Several callers (the UI thread, a background scan) may need the same root
folder at once. Access is started on the first holder and released only when
the last holder stops, and every filesystem operation brackets its work with
:meth:`FolderAccessManager.access` so error paths release too.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator
from uuid import UUID

from atelier.core.errors import FolderAccessError
from atelier.core.models.folder import FolderReference
from atelier.domain.folders.grants import resolve_grant
from atelier.utils.logging import get_logger, log_error

logger = get_logger("folders.access")

FolderResolver = Callable[[FolderReference], Path]


def _resolve_directly(reference: FolderReference) -> Path:
    return resolve_grant(reference.grant).path


class FolderAccessManager:
    """Tracks who currently holds access to which folder reference.

    Thread-safe: background scans and the main context share one instance.

    Usage:
        with access_manager.access(folder) as root:
            create_project_skeleton(root, name)
    """

    def __init__(self, resolver: FolderResolver | None = None):
        self._resolver = resolver or _resolve_directly
        self._lock = threading.Lock()
        self._counts: dict[UUID, int] = {}
        self._held: dict[UUID, tuple[FolderReference, Path]] = {}

    def set_resolver(self, resolver: FolderResolver) -> None:
        self._resolver = resolver

    # ========== Queries ==========

    def is_active(self, reference_id: UUID) -> bool:
        with self._lock:
            return self._counts.get(reference_id, 0) > 0

    def holder_count(self, reference_id: UUID) -> int:
        with self._lock:
            return self._counts.get(reference_id, 0)

    def active_path(self, reference_id: UUID) -> Path | None:
        with self._lock:
            held = self._held.get(reference_id)
            return held[1] if held is not None else None

    # ========== Start / stop ==========

    def start_access(self, reference: FolderReference) -> bool:
        """Become a holder of ``reference``. False if it cannot be resolved."""
        try:
            self._start(reference)
        except FolderAccessError as e:
            log_error(logger, "start folder access", e, {"folder": reference.name})
            return False
        return True

    def stop_access(self, reference: FolderReference) -> None:
        """Give up one hold on ``reference``; releases at zero holders."""
        with self._lock:
            count = self._counts.get(reference.id, 0)
            if count == 0:
                logger.warning(f"stop_access without matching start for '{reference.name}'")
                return
            if count > 1:
                self._counts[reference.id] = count - 1
                return
            del self._counts[reference.id]
            _, path = self._held.pop(reference.id)
        self._release(reference, path)

    @contextmanager
    def access(self, reference: FolderReference) -> Iterator[Path]:
        """Hold ``reference`` for the duration of the block.

        Raises:
            FolderAccessError: If the folder cannot be resolved; nothing is held
        """
        path = self._start(reference)
        try:
            yield path
        finally:
            self.stop_access(reference)

    def release_all(self) -> None:
        """Drop every hold (application shutdown)."""
        with self._lock:
            held = list(self._held.values())
            self._counts.clear()
            self._held.clear()
        for reference, path in held:
            self._release(reference, path)

    # ========== Internals ==========

    def _start(self, reference: FolderReference) -> Path:
        with self._lock:
            count = self._counts.get(reference.id, 0)
            if count > 0:
                self._counts[reference.id] = count + 1
                return self._held[reference.id][1]

            path = self._resolver(reference)
            self._acquire(reference, path)
            self._held[reference.id] = (reference, path)
            self._counts[reference.id] = 1
            return path

    def _acquire(self, reference: FolderReference, path: Path) -> None:
        """Platform hook run when the first holder arrives."""
        logger.debug(f"Folder access started: {reference.name} ({path})")

    def _release(self, reference: FolderReference, path: Path) -> None:
        """Platform hook run when the last holder leaves."""
        logger.debug(f"Folder access stopped: {reference.name} ({path})")
