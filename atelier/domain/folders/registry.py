"""
Folder registry: the set of configured root folders.

Exactly one folder is the default whenever the registry is non-empty, and
the last remaining folder cannot be removed. Persisted as an ordered list in
the preference store; a single-folder grant left by older versions is
migrated once on load.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional
from uuid import UUID

from pydantic import TypeAdapter, ValidationError

from atelier.core import events
from atelier.core.errors import FolderAccessError, ResourceNotFoundError, ValidationFailedError
from atelier.core.event_bus import EventBus
from atelier.core.models.folder import FolderReference
from atelier.domain.folders.grants import create_grant, grant_path, resolve_grant
from atelier.systems.storage.preferences import (
    KEY_LEGACY_FOLDER_GRANT,
    KEY_PROJECT_FOLDERS,
    PreferenceStore,
)
from atelier.utils.logging import get_logger, log_error, log_operation

logger = get_logger("folders.registry")

_FOLDER_LIST = TypeAdapter(list[FolderReference])


class FolderRegistry:
    """CRUD over the configured root folders.

    Usage:
        registry = FolderRegistry(preferences)
        folder = registry.add_folder("/Volumes/Work/Projects")
        root = registry.resolve(registry.default_folder)
    """

    def __init__(self, preferences: PreferenceStore, bus: Optional[EventBus] = None):
        self._prefs = preferences
        self._bus = bus
        self._folders: list[FolderReference] = []
        self._load()

    # ========== Loading ==========

    def _load(self) -> None:
        raw = self._prefs.get(KEY_PROJECT_FOLDERS)
        if raw is not None:
            try:
                self._folders = _FOLDER_LIST.validate_python(raw)
            except ValidationError as e:
                log_error(logger, "load folder registry", e)
                self._folders = []
            self._folders = _with_single_default(self._folders)
            logger.info(f"Loaded {len(self._folders)} root folder(s)")
            if KEY_LEGACY_FOLDER_GRANT in self._prefs:
                self._prefs.remove(KEY_LEGACY_FOLDER_GRANT)
            return

        legacy = self._prefs.get(KEY_LEGACY_FOLDER_GRANT)
        if legacy is not None:
            self._migrate_legacy(legacy)

    def _migrate_legacy(self, legacy: object) -> None:
        if isinstance(legacy, str):
            try:
                name = grant_path(legacy).name or "Projects"
            except FolderAccessError as e:
                log_error(logger, "migrate legacy root folder", e)
            else:
                folder = FolderReference(name=name, grant=legacy, is_default=True)
                self._commit([folder])
                log_operation(logger, "Migrated legacy root folder", {"name": name})
                self._emit("migrate", folder.id)
        self._prefs.remove(KEY_LEGACY_FOLDER_GRANT)

    # ========== Queries ==========

    @property
    def folders(self) -> list[FolderReference]:
        return list(self._folders)

    @property
    def default_folder(self) -> FolderReference | None:
        return next((f for f in self._folders if f.is_default), None)

    def lookup(self, folder_id: UUID | None) -> FolderReference | None:
        if folder_id is None:
            return None
        return next((f for f in self._folders if f.id == folder_id), None)

    def __len__(self) -> int:
        return len(self._folders)

    def resolve(self, folder: FolderReference) -> Path:
        """Resolve a folder's grant, refreshing it if the folder moved.

        Raises:
            FolderStaleError / FolderRevokedError
        """
        resolved = resolve_grant(folder.grant)
        if resolved.is_stale:
            self._refresh_grant(folder, resolved.path)
        return resolved.path

    # ========== Mutations ==========

    def add_folder(
        self,
        directory: str | Path,
        name: str | None = None,
        set_as_default: bool = False,
    ) -> FolderReference:
        """Register a directory the user picked.

        The first folder is always made the default.

        Raises:
            ResourceNotFoundError: If ``directory`` is not a directory
            FolderRevokedError: If it cannot be read
            ValidationFailedError: If it is already registered
        """
        grant = create_grant(directory)
        path = grant_path(grant)
        for existing in self._folders:
            try:
                if grant_path(existing.grant) == path:
                    raise ValidationFailedError(
                        f"'{path}' is already registered as '{existing.name}'.",
                        title="Folder already added",
                    )
            except FolderAccessError:
                continue

        is_default = set_as_default or not self._folders
        folder = FolderReference(
            name=(name or "").strip() or path.name or str(path),
            grant=grant,
            is_default=is_default,
        )
        updated = [_copy(f, is_default=False) if is_default else f for f in self._folders]
        updated.append(folder)
        self._commit(updated)

        log_operation(logger, "Added root folder", {"name": folder.name, "default": is_default})
        self._emit("add", folder.id)
        return folder

    def remove_folder(self, folder_id: UUID) -> bool:
        """Remove a folder. Declines (returns False) for the last one."""
        folder = self._require(folder_id)
        if len(self._folders) <= 1:
            logger.warning(f"Refusing to remove '{folder.name}': it is the only root folder")
            self._emit("remove", folder.id, declined=True)
            return False

        remaining = [f for f in self._folders if f.id != folder_id]
        if folder.is_default:
            remaining[0] = _copy(remaining[0], is_default=True)
        self._commit(remaining)

        log_operation(logger, "Removed root folder", {"name": folder.name})
        self._emit("remove", folder.id)
        return True

    def set_default(self, folder_id: UUID) -> FolderReference:
        self._require(folder_id)
        updated = [_copy(f, is_default=(f.id == folder_id)) for f in self._folders]
        self._commit(updated)
        log_operation(logger, "Default root folder changed", {"id": folder_id})
        self._emit("set_default", folder_id)
        return self.lookup(folder_id)

    def rename(self, folder_id: UUID, new_name: str) -> FolderReference:
        self._require(folder_id)
        name = (new_name or "").strip()
        if not name:
            raise ValidationFailedError("A folder name cannot be empty.", title="Invalid name")
        updated = [_copy(f, name=name) if f.id == folder_id else f for f in self._folders]
        self._commit(updated)
        self._emit("rename", folder_id)
        return self.lookup(folder_id)

    # ========== Internals ==========

    def _require(self, folder_id: UUID) -> FolderReference:
        folder = self.lookup(folder_id)
        if folder is None:
            raise ResourceNotFoundError(f"Unknown root folder {folder_id}", title="Folder not found")
        return folder

    def _refresh_grant(self, folder: FolderReference, path: Path) -> None:
        try:
            grant = create_grant(path)
        except (FolderAccessError, ResourceNotFoundError) as e:
            log_error(logger, "refresh folder grant", e, {"folder": folder.name})
            return
        updated = [_copy(f, grant=grant) if f.id == folder.id else f for f in self._folders]
        self._commit(updated)
        folder.grant = grant
        logger.info(f"Refreshed grant for '{folder.name}' at {path}")

    def _commit(self, folders: list[FolderReference]) -> None:
        """Persist first, then swap in; a failed write leaves the registry as it was."""
        self._prefs.set(KEY_PROJECT_FOLDERS, _FOLDER_LIST.dump_python(folders, mode="json"))
        self._folders = folders

    def _emit(self, action: str, folder_id: UUID | None, declined: bool = False) -> None:
        if self._bus is None:
            return
        self._bus.publish_nowait(
            events.TOPIC_FOLDERS_CHANGED,
            events.create_folders_changed_event(
                action, str(folder_id) if folder_id else None, declined=declined
            ),
        )


def _copy(folder: FolderReference, **changes) -> FolderReference:
    return folder.model_copy(update=changes)


def _with_single_default(folders: list[FolderReference]) -> list[FolderReference]:
    if not folders:
        return folders
    default_id = next((f.id for f in folders if f.is_default), folders[0].id)
    return [f if f.is_default == (f.id == default_id) else _copy(f, is_default=(f.id == default_id)) for f in folders]
