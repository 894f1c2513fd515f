"""
Project store.

The single owner of the in-memory projects, categories and statuses. Every
mutation goes through a command method that validates, persists and only
then applies the change, so a failed write leaves the store as it was.

All mutations run on the thread that first used the store (the event loop
thread). Directory scans are the only work pushed to worker threads; their
results come back to the owner thread and are applied in one step.
"""

from __future__ import annotations

import asyncio
import re
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Iterator, Optional
from uuid import UUID

from pydantic import TypeAdapter, ValidationError

from atelier.core import events
from atelier.core.errors import (
    AtelierError,
    FileOperationError,
    FolderAccessError,
    RegistryDecodeError,
    ResourceNotFoundError,
    ValidationFailedError,
)
from atelier.core.event_bus import EventBus, EventPayload
from atelier.core.models import (
    ALL_CATEGORY_ID,
    DEFAULT_PROJECT_TITLE,
    NOT_STARTED_ID,
    SYSTEM_STATUS_IDS,
    Category,
    FolderReference,
    Project,
    ProjectStatus,
    ProjectTag,
    all_category,
    default_statuses,
    normalize_categories,
)
from atelier.domain.folders.access import FolderAccessManager
from atelier.domain.folders.grants import grant_path
from atelier.domain.folders.registry import FolderRegistry
from atelier.domain.projects.scanner import (
    ScanResult,
    discover_candidates,
    normalize_path,
    scan_directory,
)
from atelier.systems.storage.file_io import (
    create_project_skeleton,
    delete_directory,
    latest_dated_file,
    read_full_metadata,
    rename_folder,
    sanitize_folder_name,
    unique_folder_name,
    write_project_metadata,
)
from atelier.systems.storage.persistence import PersistenceStore
from atelier.systems.storage.preferences import KEY_CATEGORIES, KEY_STATUSES, PreferenceStore
from atelier.utils.logging import get_logger, log_error, log_operation

if TYPE_CHECKING:
    from atelier.app.config import AtelierConfig


logger = get_logger("projects.store")

_CATEGORY_LIST = TypeAdapter(list[Category])
_STATUS_LIST = TypeAdapter(list[ProjectStatus])

SCAN_MODE_SYNC = "sync"
SCAN_MODE_DISCOVER = "discover"


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass
class ScanReport:
    """Outcome of a scan as applied to the store."""

    mode: str
    root: Optional[Path] = None
    added: list[UUID] = field(default_factory=list)
    updated: list[UUID] = field(default_factory=list)
    failures: int = 0
    superseded: bool = False
    error: Optional[AtelierError] = None


class ProjectStore:
    """Central registry of projects, categories and statuses.

    Usage:
        store = ProjectStore(config, persistence, preferences, registry, access_manager, bus)
        store.load()
        project = store.add_project(title="Spot Été")
        report = await store.scan_or_sync()
    """

    def __init__(
        self,
        config: "AtelierConfig",
        persistence: PersistenceStore,
        preferences: PreferenceStore,
        registry: FolderRegistry,
        access_manager: FolderAccessManager,
        bus: EventBus | None = None,
    ):
        self.config = config
        self._persistence = persistence
        self._prefs = preferences
        self._registry = registry
        self._access = access_manager
        self._bus = bus

        self._projects: dict[UUID, Project] = {}
        self._categories: list[Category] = [all_category()]
        self._statuses: list[ProjectStatus] = default_statuses()
        self._index: dict[UUID, dict[UUID, None]] = {}
        self.selected_category_id: UUID = ALL_CATEGORY_ID
        self.selection: UUID | None = None

        self._revision = 0
        self._added_at: dict[UUID, int] = {}
        self._owner_thread: int | None = None

        self._scan_task: asyncio.Task | None = None
        self._scan_generation = 0
        self._scan_stop: threading.Event | None = None

    # ========== Queries ==========

    @property
    def projects(self) -> list[Project]:
        return list(self._projects.values())

    @property
    def categories(self) -> list[Category]:
        return list(self._categories)

    @property
    def statuses(self) -> list[ProjectStatus]:
        return list(self._statuses)

    @property
    def revision(self) -> int:
        """Incremented on every change to the project collection."""
        return self._revision

    @property
    def default_status(self) -> ProjectStatus:
        return next((s for s in self._statuses if s.id == NOT_STARTED_ID), self._statuses[0])

    @property
    def is_scanning(self) -> bool:
        return self._scan_task is not None and not self._scan_task.done()

    def project(self, project_id: UUID | None) -> Project | None:
        if project_id is None:
            return None
        return self._projects.get(project_id)

    def category(self, category_id: UUID | None) -> Category | None:
        return next((c for c in self._categories if c.id == category_id), None)

    def status(self, status_id: UUID | None) -> ProjectStatus | None:
        return next((s for s in self._statuses if s.id == status_id), None)

    def projects_in_category(self, category_id: UUID | None) -> list[Project]:
        """Members of a category. The "All" category lists every project."""
        if category_id is None or category_id == ALL_CATEGORY_ID:
            return self.projects
        return [self._projects[pid] for pid in self._index.get(category_id, {})]

    # ========== Loading ==========

    def load(self) -> None:
        """Load categories, statuses and projects; repair dangling references.

        A malformed registry file is reported and the store starts empty; the
        previous file survives as a ``.bak`` on the next save.
        """
        self._check_thread()
        self._categories = self._load_categories()
        self._statuses = self._load_statuses()

        try:
            projects = self._persistence.load()
        except (RegistryDecodeError, FileOperationError) as e:
            log_error(logger, "load project registry", e)
            self.report_error(e)
            projects = []

        self._projects = {}
        for project in projects:
            self._repair_references(project)
            project.is_editing = False
            self._projects[project.id] = project
        self._rebuild_index()
        self._added_at.clear()
        self.selection = None
        self._revision += 1

        log_operation(logger, "Loaded store", {
            "projects": len(self._projects),
            "categories": len(self._categories),
            "statuses": len(self._statuses),
        })
        self._emit_projects("load", self._projects)

    def _load_categories(self) -> list[Category]:
        raw = self._prefs.get(KEY_CATEGORIES)
        if raw is None:
            return [all_category()]
        try:
            return normalize_categories(_CATEGORY_LIST.validate_python(raw))
        except ValidationError as e:
            log_error(logger, "load categories", e)
            return [all_category()]

    def _load_statuses(self) -> list[ProjectStatus]:
        raw = self._prefs.get(KEY_STATUSES)
        if raw is None:
            return default_statuses()
        try:
            statuses = _STATUS_LIST.validate_python(raw)
        except ValidationError as e:
            log_error(logger, "load statuses", e)
            return default_statuses()
        if not statuses:
            logger.warning("Stored status list is empty, restoring defaults")
            return default_statuses()
        return sorted(statuses, key=lambda s: s.order)

    def _repair_references(self, project: Project) -> None:
        if self.status(project.status_id) is None:
            logger.warning(f"Project '{project.title}' had unknown status {project.status_id}")
            project.status_id = self.default_status.id
        if project.category_id is not None and self.category(project.category_id) is None:
            logger.warning(f"Project '{project.title}' had unknown category {project.category_id}")
            project.category_id = ALL_CATEGORY_ID

    # ========== Projects ==========

    def add_project(
        self,
        create_folder_structure: bool = True,
        target_folder: FolderReference | None = None,
        title: str | None = None,
    ) -> Project:
        """Create a project in the selected category and select it.

        A failure to create the folder skeleton is reported as an alert; the
        project is still created and tracked.

        Raises:
            FileOperationError: If the registry cannot be saved (nothing added)
        """
        self._check_thread()
        category_id = None if self.selected_category_id == ALL_CATEGORY_ID else self.selected_category_id
        project = Project(
            title=(title or "").strip() or DEFAULT_PROJECT_TITLE,
            category_id=category_id,
            status_id=self.default_status.id,
            is_editing=True,
        )

        if create_folder_structure:
            try:
                directory = self._realize_folder(project.title, target_folder)
            except AtelierError as e:
                log_error(logger, "create project folder", e, {"project": project.title})
                self.report_error(e, {"project_id": str(project.id)})
            else:
                project.root_folder_path = str(directory)
                project.has_folder_structure = True

        self._commit(added=[project])
        self._write_metadata(project)
        self.select(project.id)

        log_operation(logger, "Added project", {"title": project.title, "folder": project.root_folder_path})
        return project

    def remove_project(self, project_id: UUID, delete_folder_on_disk: bool = False) -> AtelierError | None:
        """Remove a project, optionally deleting its folder first.

        Returns:
            The folder deletion error, if any. The project is removed anyway.
        """
        self._check_thread()
        project = self._require_project(project_id)

        folder_error = None
        if delete_folder_on_disk and project.root_folder is not None:
            try:
                with self._folder_access(project.root_folder):
                    delete_directory(project.root_folder)
            except AtelierError as e:
                folder_error = e
                log_error(logger, "delete project folder", e, {"project": project.title})
                self.report_error(e, {"project_id": str(project.id)})

        self._commit(removed=[project_id])
        if self.selection == project_id:
            self.select(None)

        log_operation(logger, "Removed project", {
            "title": project.title,
            "folder_deleted": delete_folder_on_disk and folder_error is None,
        })
        return folder_error

    def select(self, project_id: UUID | None) -> None:
        self._check_thread()
        if project_id is not None:
            self._require_project(project_id)
        self.selection = project_id
        self._emit(
            events.TOPIC_PROJECT_SELECTED,
            events.create_project_selected_event(str(project_id) if project_id else None),
        )

    def assign(self, project_id: UUID, category_id: UUID | None) -> Project:
        """Move a project to a category (None or the "All" id for uncategorized)."""
        self._check_thread()
        project = self._require_project(project_id)
        target = category_id or ALL_CATEGORY_ID
        self._require_category(target)
        self._update(project, category_id=target)
        return project

    def set_status(self, project_id: UUID, status_id: UUID) -> Project:
        self._check_thread()
        project = self._require_project(project_id)
        self._require_status(status_id)
        self._update(project, status_id=status_id)
        return project

    def set_notes(self, project_id: UUID, notes: str) -> Project:
        self._check_thread()
        project = self._require_project(project_id)
        if project.notes != notes:
            self._update(project, notes=notes or "")
        return project

    def toggle_tag(self, project_id: UUID, tag: ProjectTag | str) -> Project:
        self._check_thread()
        project = self._require_project(project_id)
        try:
            tag = ProjectTag(tag)
        except ValueError as e:
            raise ValidationFailedError(f"Unknown tag '{tag}'.", title="Invalid tag") from e
        self._update(project, tags=set(project.tags) ^ {tag})
        return project

    # ========== Editing ==========

    def begin_editing(self, project_id: UUID) -> Project:
        self._check_thread()
        project = self._require_project(project_id)
        project.is_editing = True
        self._emit_projects("edit", [project_id])
        return project

    def cancel_editing(self, project_id: UUID) -> Project:
        self._check_thread()
        project = self._require_project(project_id)
        project.is_editing = False
        self._emit_projects("edit", [project_id])
        return project

    def commit_edit(
        self,
        project_id: UUID,
        title: str,
        details: str | None = None,
        tags: Iterable[ProjectTag | str] | None = None,
    ) -> Project:
        """Save an edit; renames the backing folder to follow the title.

        Raises:
            ValidationFailedError: If the title is empty
            FolderAccessError / FileOperationError: If the rename or the save
                fails; nothing is changed
        """
        self._check_thread()
        project = self._require_project(project_id)
        title = (title or "").strip()
        if not title:
            raise ValidationFailedError("A project needs a title.", title="Missing title")

        changes: dict = {"title": title, "is_editing": False}
        if details is not None:
            changes["details"] = details
        if tags is not None:
            try:
                changes["tags"] = {ProjectTag(tag) for tag in tags}
            except ValueError as e:
                raise ValidationFailedError(str(e), title="Invalid tag") from e

        old_folder = project.root_folder
        new_folder = None
        if old_folder is not None and old_folder.is_dir():
            wanted = sanitize_folder_name(title)
            if not _matches_folder_name(old_folder.name, wanted):
                with self._folder_access(old_folder):
                    new_folder = rename_folder(
                        old_folder,
                        unique_folder_name(old_folder.parent, wanted),
                        self.config.metadata_filename,
                    )
                changes["root_folder_path"] = str(new_folder)

        try:
            self._update(project, **changes)
        except AtelierError:
            if new_folder is not None:
                self._undo_rename(new_folder, old_folder)
            raise

        log_operation(logger, "Edited project", {"title": title, "folder": project.root_folder_path})
        return project

    def _undo_rename(self, current: Path, original: Path) -> None:
        try:
            with self._folder_access(current):
                rename_folder(current, original.name, self.config.metadata_filename)
        except AtelierError as e:
            log_error(logger, "restore renamed folder", e, {"folder": str(current)})

    def load_full_details(self, project_id: UUID) -> Project:
        """Read the full metadata file of a lightweight (scanned) project.

        Raises:
            ResourceNotFoundError: If the project has no folder or metadata file
            RegistryDecodeError: If the metadata file is malformed
        """
        self._check_thread()
        project = self._require_project(project_id)
        if project.is_fully_loaded:
            return project
        folder = project.root_folder
        if folder is None:
            raise ResourceNotFoundError(f"'{project.title}' has no folder.", title="Folder not found")

        with self._folder_access(folder):
            data = read_full_metadata(folder, self.config.metadata_filename)
        try:
            full = Project.model_validate({**data, "id": project.id, "root_folder_path": str(folder)})
        except ValidationError as e:
            raise RegistryDecodeError(f"Malformed metadata file in {folder}: {e.error_count()} error(s)") from e
        self._repair_references(full)

        staged = project.model_copy(update={
            "title": full.title,
            "details": full.details,
            "notes": full.notes,
            "tags": set(full.tags),
            "status_id": full.status_id,
            "category_id": full.category_id,
            "created_at": full.created_at,
            "updated_at": full.updated_at,
            "is_fully_loaded": True,
        })
        self._commit(staged={project.id: staged})
        return project

    # ========== Folders ==========

    def create_folder_structure(self, project_id: UUID, target_folder: FolderReference | None = None) -> Path:
        """Create the skeleton for a project that has none yet.

        A project whose folder already exists gets any missing subfolders.

        Raises:
            ResourceNotFoundError: If no root folder is configured
            FolderAccessError / FileOperationError: If creation fails
        """
        self._check_thread()
        project = self._require_project(project_id)
        existing = project.root_folder
        if existing is not None and existing.is_dir():
            with self._folder_access(existing):
                directory = create_project_skeleton(existing.parent, existing.name, self.config.skeleton.subfolders)
        else:
            directory = self._realize_folder(project.title, target_folder)

        self._update(project, root_folder_path=str(directory), has_folder_structure=True)
        log_operation(logger, "Created folder structure", {"title": project.title, "folder": str(directory)})
        return directory

    def project_subfolder(self, project_id: UUID, name: str) -> Path:
        """An existing skeleton subfolder of a project.

        Raises:
            ResourceNotFoundError: If the project or the subfolder has no folder
        """
        project = self._require_project(project_id)
        path = project.subfolder(name)
        if path is None:
            raise ResourceNotFoundError(f"'{project.title}' has no folder.", title="Folder not found")
        if not path.is_dir():
            raise ResourceNotFoundError(f"'{name}' was not found in {path.parent}.", title=f"{name} folder not found")
        return path

    def ae_folder(self, project_id: UUID) -> Path:
        return self.project_subfolder(project_id, self.config.skeleton.ae_subfolder)

    def assets_folder(self, project_id: UUID) -> Path:
        return self.project_subfolder(project_id, self.config.skeleton.assets_subfolder)

    def outputs_folder(self, project_id: UUID) -> Path:
        return self.project_subfolder(project_id, self.config.skeleton.outputs_subfolder)

    def latest_project_file(self, project_id: UUID) -> Path:
        """The newest dated project file in the AE folder.

        Raises:
            ResourceNotFoundError: "AE folder not found" or "No project file"
        """
        skeleton = self.config.skeleton
        try:
            folder = self.ae_folder(project_id)
        except ResourceNotFoundError as e:
            raise ResourceNotFoundError(e.message, title="AE folder not found") from e

        with self._folder_access(folder):
            latest = latest_dated_file(folder, skeleton.project_file_extension)
        if latest is None:
            raise ResourceNotFoundError(
                f"No .{skeleton.project_file_extension} file in {folder}.",
                title="No project file",
            )
        return latest

    def _realize_folder(self, title: str, target_folder: FolderReference | None) -> Path:
        folder = target_folder or self._registry.default_folder
        if folder is None:
            raise ResourceNotFoundError(
                "No project folder is configured. Add one in the settings first.",
                title="No project folder",
            )
        with self._access.access(folder) as root:
            name = unique_folder_name(root, sanitize_folder_name(title))
            return create_project_skeleton(root, name, self.config.skeleton.subfolders)

    @contextmanager
    def _folder_access(self, path: Path) -> Iterator[None]:
        """Hold the registered root folder that contains ``path``, if any."""
        owner = self._owning_folder(path)
        if owner is None:
            yield
            return
        with self._access.access(owner):
            yield

    def _owning_folder(self, path: Path) -> FolderReference | None:
        for folder in self._registry.folders:
            try:
                root = grant_path(folder.grant)
            except FolderAccessError:
                continue
            if Path(path).is_relative_to(root):
                return folder
        return None

    def _write_metadata(self, project: Project) -> None:
        folder = project.root_folder
        if folder is None or not folder.is_dir():
            return
        try:
            with self._folder_access(folder):
                write_project_metadata(project, self.config.metadata_filename)
        except AtelierError as e:
            log_error(logger, "write project metadata", e, {"project": project.title})

    # ========== Categories ==========

    def add_category(self, name: str = "New Category", system_image: str = "folder") -> Category:
        self._check_thread()
        category = Category(name=(name or "").strip() or "New Category", system_image=system_image)
        self._save_categories([*self._categories, category], "add", category.id)
        log_operation(logger, "Added category", {"name": category.name})
        return category

    def rename_category(self, category_id: UUID, name: str) -> Category:
        self._check_thread()
        category = self._require_category(category_id)
        if category.is_fixed:
            raise ValidationFailedError(f"The '{category.name}' category cannot be renamed.", title="Cannot rename")
        name = (name or "").strip()
        if not name:
            raise ValidationFailedError("A category name cannot be empty.", title="Invalid name")
        updated = [c.model_copy(update={"name": name}) if c.id == category_id else c for c in self._categories]
        self._save_categories(updated, "rename", category_id)
        return self.category(category_id)

    def remove_category(self, category_id: UUID) -> int:
        """Delete a category; its projects move to "All".

        Returns:
            Number of projects reassigned
        """
        self._check_thread()
        category = self._require_category(category_id)
        if category.is_fixed:
            raise ValidationFailedError(f"The '{category.name}' category cannot be deleted.", title="Cannot delete")

        previous = self._categories
        members = [p for p in self._projects.values() if p.category_id == category_id]
        self._save_categories([c for c in previous if c.id != category_id], "remove", category_id)
        try:
            self._commit(staged={p.id: self._stage(p, category_id=ALL_CATEGORY_ID) for p in members})
        except AtelierError:
            self._restore_preference(KEY_CATEGORIES, previous, _CATEGORY_LIST)
            self._categories = previous
            raise

        self._index.pop(category_id, None)
        if self.selected_category_id == category_id:
            self.selected_category_id = ALL_CATEGORY_ID
        for project in members:
            self._write_metadata(project)

        log_operation(logger, "Removed category", {"name": category.name, "reassigned": len(members)})
        return len(members)

    def move_category(self, from_index: int, to_index: int) -> bool:
        """Reorder categories. Index 0 belongs to "All"; moves touching it are declined."""
        self._check_thread()
        count = len(self._categories)
        if not (0 < from_index < count and 0 < to_index < count):
            logger.warning(f"Declined category move {from_index} -> {to_index}")
            return False
        if from_index == to_index:
            return True
        reordered = list(self._categories)
        reordered.insert(to_index, reordered.pop(from_index))
        self._save_categories(reordered, "move", reordered[to_index].id)
        return True

    def select_category(self, category_id: UUID) -> None:
        self._check_thread()
        self._require_category(category_id)
        self.selected_category_id = category_id

    def _save_categories(self, categories: list[Category], action: str, category_id: UUID | None) -> None:
        self._prefs.set(KEY_CATEGORIES, _CATEGORY_LIST.dump_python(categories, mode="json"))
        self._categories = categories
        self._emit(
            events.TOPIC_CATEGORIES_CHANGED,
            events.create_categories_changed_event(action, str(category_id) if category_id else None),
        )

    # ========== Statuses ==========

    def add_status(self, name: str = "New Status", color_hex: str = "#808080") -> ProjectStatus:
        self._check_thread()
        status = ProjectStatus(
            name=(name or "").strip() or "New Status",
            color_hex=color_hex,
            order=len(self._statuses),
        )
        self._save_statuses([*self._statuses, status], "add", status.id)
        log_operation(logger, "Added status", {"name": status.name})
        return status

    def rename_status(self, status_id: UUID, name: str) -> ProjectStatus:
        """Rename a status. Built-in statuses may be renamed too."""
        self._check_thread()
        self._require_status(status_id)
        name = (name or "").strip()
        if not name:
            raise ValidationFailedError("A status name cannot be empty.", title="Invalid name")
        self._replace_status(status_id, "rename", name=name)
        return self.status(status_id)

    def change_status_color(self, status_id: UUID, color_hex: str) -> ProjectStatus:
        self._check_thread()
        self._require_status(status_id)
        color = (color_hex or "").strip()
        if color and not color.startswith("#"):
            color = f"#{color}"
        self._replace_status(status_id, "recolor", color_hex=color.upper())
        return self.status(status_id)

    def remove_status(self, status_id: UUID) -> int:
        """Delete a user status; its projects fall back to the default status.

        Raises:
            ValidationFailedError: For built-in statuses or the last status

        Returns:
            Number of projects reassigned
        """
        self._check_thread()
        status = self._require_status(status_id)
        if status.is_system or status_id in SYSTEM_STATUS_IDS:
            raise ValidationFailedError(f"'{status.name}' is a built-in status and cannot be deleted.", title="Cannot delete")
        if len(self._statuses) <= 1:
            raise ValidationFailedError("At least one status must remain.", title="Cannot delete")

        previous = self._statuses
        kept = [s for s in previous if s.id != status_id]
        remaining = [s.model_copy(update={"order": i}) for i, s in enumerate(kept)]
        fallback = next((s for s in remaining if s.id == NOT_STARTED_ID), remaining[0])
        members = [p for p in self._projects.values() if p.status_id == status_id]

        self._save_statuses(remaining, "remove", status_id)
        try:
            self._commit(staged={p.id: self._stage(p, status_id=fallback.id) for p in members})
        except AtelierError:
            self._restore_preference(KEY_STATUSES, previous, _STATUS_LIST)
            self._statuses = previous
            raise

        for project in members:
            self._write_metadata(project)
        log_operation(logger, "Removed status", {"name": status.name, "reassigned": len(members)})
        return len(members)

    def move_status(self, from_index: int, to_index: int) -> bool:
        """Reorder statuses and renumber their ``order`` to match."""
        self._check_thread()
        count = len(self._statuses)
        if not (0 <= from_index < count and 0 <= to_index < count):
            logger.warning(f"Declined status move {from_index} -> {to_index}")
            return False
        reordered = list(self._statuses)
        reordered.insert(to_index, reordered.pop(from_index))
        renumbered = [s.model_copy(update={"order": i}) for i, s in enumerate(reordered)]
        self._save_statuses(renumbered, "move", renumbered[to_index].id)
        return True

    def _replace_status(self, status_id: UUID, action: str, **changes) -> None:
        updated = [s.model_copy(update=changes) if s.id == status_id else s for s in self._statuses]
        self._save_statuses(updated, action, status_id)

    def _save_statuses(self, statuses: list[ProjectStatus], action: str, status_id: UUID | None) -> None:
        self._prefs.set(KEY_STATUSES, _STATUS_LIST.dump_python(statuses, mode="json"))
        self._statuses = statuses
        self._emit(
            events.TOPIC_STATUSES_CHANGED,
            events.create_statuses_changed_event(action, str(status_id) if status_id else None),
        )

    def _restore_preference(self, key: str, value: list, adapter: TypeAdapter) -> None:
        try:
            self._prefs.set(key, adapter.dump_python(value, mode="json"))
        except AtelierError as e:
            log_error(logger, f"restore {key}", e)

    # ========== Import / export ==========

    def export_all(self, destination: str | Path) -> Path:
        return self._persistence.export_to(self.projects, destination)

    def import_merge(self, source: str | Path) -> int:
        """Add the projects of ``source`` whose ids are not tracked yet.

        Returns:
            Number of projects added
        """
        self._check_thread()
        imported = self._persistence.import_from(source)
        new = [p for p in imported if p.id not in self._projects]
        for project in new:
            self._repair_references(project)
        self._commit(added=new)
        log_operation(logger, "Merged import", {"source": str(source), "added": len(new), "skipped": len(imported) - len(new)})
        return len(new)

    def import_replace(self, source: str | Path) -> int:
        """Replace the whole registry with the projects of ``source``."""
        self._check_thread()
        imported = self._persistence.import_from(source)
        for project in imported:
            self._repair_references(project)
        self._persistence.save(imported)

        self._projects = {p.id: p for p in imported}
        self._rebuild_index()
        self._revision += 1
        self._added_at = {p.id: self._revision for p in imported}
        if self.selection not in self._projects:
            self.select(None)

        log_operation(logger, "Replaced registry from import", {"source": str(source), "projects": len(imported)})
        self._emit_projects("import", self._projects)
        return len(imported)

    # ========== Scanning ==========

    async def scan_or_sync(self, folder_override: FolderReference | str | Path | None = None) -> ScanReport:
        """Pick up project folders that carry a metadata file.

        Untracked ids are added as lightweight projects; known projects whose
        folder moved get their path updated. Known projects are never removed,
        even when their folder is gone.
        """
        return await self._run_scan(SCAN_MODE_SYNC, folder_override)

    async def discover_and_import_existing_projects(
        self,
        folder: FolderReference | str | Path | None = None,
    ) -> ScanReport:
        """Import untracked folders that look like project skeletons."""
        return await self._run_scan(SCAN_MODE_DISCOVER, folder)

    def start_scan(
        self,
        folder_override: FolderReference | str | Path | None = None,
        discover: bool = False,
    ) -> asyncio.Task:
        """Run a scan in the background. A newer scan supersedes this one."""
        self._check_thread()
        mode = SCAN_MODE_DISCOVER if discover else SCAN_MODE_SYNC
        return asyncio.get_running_loop().create_task(self._run_scan(mode, folder_override))

    async def _run_scan(self, mode: str, target: FolderReference | str | Path | None) -> ScanReport:
        """Read ``target`` in a store-owned task and apply what it found.

        Only the store-owned read task is ever cancelled by a newer scan; the
        caller awaiting this coroutine gets a superseded report instead.
        """
        self._check_thread()
        self._scan_generation += 1
        generation = self._scan_generation

        previous = self._scan_task
        if previous is not None and not previous.done():
            logger.info("Cancelling superseded scan")
            previous.cancel()
        if self._scan_stop is not None:
            self._scan_stop.set()
        stop = self._scan_stop = threading.Event()

        started_revision = self._revision
        known = {p.id: p.root_folder_path for p in self._projects.values()}

        task: asyncio.Task | None = None
        try:
            with self._scan_root(target) as root:
                task = asyncio.get_running_loop().create_task(self._read_root(mode, root, known, stop))
                self._scan_task = task
                result = await task
        except AtelierError as e:
            log_error(logger, f"{mode} scan", e)
            self.report_error(e)
            return ScanReport(mode=mode, error=e)
        except asyncio.CancelledError:
            caller = asyncio.current_task()
            if task is None or not task.cancelled() or (caller is not None and caller.cancelling()):
                raise
            logger.info(f"{mode} scan was superseded before it finished reading")
            return ScanReport(mode=mode, superseded=True)
        finally:
            if task is not None and self._scan_task is task:
                self._scan_task = None

        if generation != self._scan_generation or result.cancelled:
            logger.info(f"Discarding results of superseded scan of {result.root}")
            return ScanReport(mode=mode, root=result.root, superseded=True)

        return self._apply_scan(mode, result, known, started_revision)

    async def _read_root(
        self,
        mode: str,
        root: Path,
        known: dict[UUID, Optional[str]],
        stop: threading.Event,
    ) -> ScanResult:
        skeleton = self.config.skeleton
        if mode == SCAN_MODE_DISCOVER:
            known_paths = {normalize_path(path) for path in known.values() if path}
            return await asyncio.to_thread(
                discover_candidates, root, known_paths, self.config.metadata_filename,
                skeleton.required_subfolders, skeleton.discovery_threshold, stop,
            )
        return await asyncio.to_thread(
            scan_directory, root, known, self.config.metadata_filename,
            skeleton.required_subfolders, skeleton.discovery_threshold, stop,
        )

    @contextmanager
    def _scan_root(self, target: FolderReference | str | Path | None) -> Iterator[Path]:
        if target is None:
            target = self._registry.default_folder
            if target is None:
                raise ResourceNotFoundError(
                    "No project folder is configured. Add one in the settings first.",
                    title="No project folder",
                )
        if isinstance(target, FolderReference):
            with self._access.access(target) as root:
                yield root
        else:
            path = Path(target)
            with self._folder_access(path):
                yield path

    def _apply_scan(
        self,
        mode: str,
        result: ScanResult,
        known: dict[UUID, Optional[str]],
        started_revision: int,
    ) -> ScanReport:
        """Apply scan results in one step without touching newer projects."""
        report = ScanReport(mode=mode, root=result.root, failures=result.failures)
        current_paths = {normalize_path(p.root_folder_path) for p in self._projects.values() if p.root_folder_path}

        added: list[Project] = []
        added_ids: set[UUID] = set()
        for candidate in result.projects:
            if candidate.id in self._projects:
                continue
            if candidate.root_folder_path and normalize_path(candidate.root_folder_path) in current_paths:
                continue
            if candidate.id in added_ids:
                logger.warning(f"Skipping {candidate.root_folder_path}: project id {candidate.id} is already in use")
                report.failures += 1
                continue
            self._repair_references(candidate)
            added.append(candidate)
            added_ids.add(candidate.id)
            if candidate.root_folder_path:
                current_paths.add(normalize_path(candidate.root_folder_path))

        staged = {}
        for project_id, folder in result.relocated.items():
            live = self._projects.get(project_id)
            if live is None or self._added_at.get(project_id, 0) > started_revision:
                continue
            if live.root_folder_path != known.get(project_id):
                continue
            staged[project_id] = live.model_copy(update={"root_folder_path": str(folder)})

        if added or staged:
            try:
                self._commit(staged=staged, added=added, action="scan")
            except AtelierError as e:
                log_error(logger, f"apply {mode} scan", e)
                self.report_error(e)
                report.error = e
                return report

        report.added = [p.id for p in added]
        report.updated = list(staged)
        log_operation(logger, f"Applied {mode} scan", {
            "root": str(result.root),
            "added": len(report.added),
            "updated": len(report.updated),
            "failures": report.failures,
        })
        self._emit(
            events.TOPIC_SCAN_COMPLETED,
            events.create_scan_completed_event(
                str(result.root),
                mode,
                [str(pid) for pid in report.added],
                [str(pid) for pid in report.updated],
                report.failures,
            ),
        )
        return report

    # ========== Errors ==========

    def report_error(self, error: AtelierError, context: dict | None = None) -> None:
        """Publish a user-visible alert for an error."""
        self._emit(events.TOPIC_ALERT, events.create_alert_event(error.title, error.message, context))

    # ========== Internals ==========

    def _check_thread(self) -> None:
        ident = threading.get_ident()
        if self._owner_thread is None:
            self._owner_thread = ident
        elif self._owner_thread != ident:
            raise RuntimeError("ProjectStore must only be used from the thread that owns it")

    def _require_project(self, project_id: UUID) -> Project:
        project = self._projects.get(project_id)
        if project is None:
            raise ResourceNotFoundError(f"Unknown project {project_id}", title="Project not found")
        return project

    def _require_category(self, category_id: UUID) -> Category:
        category = self.category(category_id)
        if category is None:
            raise ValidationFailedError(f"Unknown category {category_id}", title="Category not found")
        return category

    def _require_status(self, status_id: UUID) -> ProjectStatus:
        status = self.status(status_id)
        if status is None:
            raise ValidationFailedError(f"Unknown status {status_id}", title="Status not found")
        return status

    @staticmethod
    def _stage(project: Project, **changes) -> Project:
        return project.model_copy(update={**changes, "updated_at": _now()})

    def _update(self, project: Project, **changes) -> None:
        """Persist and apply field changes to one project, then refresh its metadata file."""
        self._commit(staged={project.id: self._stage(project, **changes)})
        self._write_metadata(project)

    def _commit(
        self,
        staged: dict[UUID, Project] | None = None,
        added: Iterable[Project] = (),
        removed: Iterable[UUID] = (),
        action: str | None = None,
    ) -> None:
        """Save the prospective project list, then apply it to live state.

        ``staged`` holds updated copies of live projects; their fields are
        copied onto the live objects so references held elsewhere stay valid.
        """
        staged = staged or {}
        added = list(added)
        removed = set(removed)
        if not (staged or added or removed):
            return

        prospective = [staged.get(pid, p) for pid, p in self._projects.items() if pid not in removed]
        self._persistence.save([*prospective, *added])

        for project_id, copy in staged.items():
            live = self._projects[project_id]
            old_category = live.category_id
            for name in Project.model_fields:
                setattr(live, name, getattr(copy, name))
            if live.category_id != old_category:
                self._index_remove(project_id, old_category)
                self._index_add(live)
        for project_id in removed:
            gone = self._projects.pop(project_id)
            self._index_remove(project_id, gone.category_id)
            self._added_at.pop(project_id, None)

        self._revision += 1
        for project in added:
            self._projects[project.id] = project
            self._index_add(project)
            self._added_at[project.id] = self._revision

        if added:
            self._emit_projects(action or "add", [p.id for p in added])
        if removed:
            self._emit_projects(action or "remove", removed)
        if staged:
            self._emit_projects(action or "update", staged)

    @staticmethod
    def _bucket(category_id: UUID | None) -> UUID:
        return category_id if category_id is not None else ALL_CATEGORY_ID

    def _index_add(self, project: Project) -> None:
        self._index.setdefault(self._bucket(project.category_id), {})[project.id] = None

    def _index_remove(self, project_id: UUID, category_id: UUID | None) -> None:
        for key in {self._bucket(category_id), ALL_CATEGORY_ID}:
            self._index.get(key, {}).pop(project_id, None)

    def _rebuild_index(self) -> None:
        self._index = {}
        for project in self._projects.values():
            self._index_add(project)

    def _emit_projects(self, action: str, project_ids: Iterable[UUID]) -> None:
        self._emit(
            events.TOPIC_PROJECTS_CHANGED,
            events.create_projects_changed_event(action, [str(pid) for pid in project_ids]),
        )

    def _emit(self, topic: str, payload: EventPayload) -> None:
        if self._bus is not None:
            self._bus.publish_nowait(topic, payload)


def _matches_folder_name(current: str, wanted: str) -> bool:
    """True if ``current`` is ``wanted`` or a de-duplicated ``wanted N``."""
    return current == wanted or re.fullmatch(re.escape(wanted) + r" \d+", current) is not None
