"""
Atelier Application State.

Builds the services once per process and wires them together. Nothing here
is a global: the presentation layer keeps the returned state and passes it
around.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from atelier.core.event_bus import EventBus
from atelier.domain.folders.access import FolderAccessManager
from atelier.domain.folders.registry import FolderRegistry
from atelier.domain.projects.notes import NotesEditor
from atelier.domain.projects.store import ProjectStore
from atelier.systems.storage.persistence import PersistenceStore
from atelier.systems.storage.preferences import PreferenceStore
from atelier.utils.logging import get_logger, setup_logging

if TYPE_CHECKING:
    from uuid import UUID

    from atelier.app.config import AtelierConfig


logger = get_logger("app.state")


# ============================================================================
# Application State
# ============================================================================


@dataclass
class AtelierState:
    """Runtime services for one Atelier session.

    Usage:
        state = AtelierState.create(AtelierConfig.load())
        state.store.add_project(title="Spot Été")
        await state.store.scan_or_sync()
        state.shutdown()
    """

    config: "AtelierConfig"
    bus: EventBus
    preferences: PreferenceStore
    persistence: PersistenceStore
    folders: FolderRegistry
    access: FolderAccessManager
    store: ProjectStore

    @classmethod
    def create(cls, config: "AtelierConfig", load: bool = True) -> "AtelierState":
        """Create and wire the services.

        Args:
            config: Atelier configuration
            load: Load the persisted store immediately

        Returns:
            Initialized state instance
        """
        config.ensure_directories()
        setup_logging(
            level=config.log_level,
            log_dir=config.log_dir if config.log_to_file else None,
            file_output=config.log_to_file,
        )

        bus = EventBus()
        preferences = PreferenceStore(config.preferences_path)
        persistence = PersistenceStore(config.registry_path, make_backup=config.keep_backup)
        folders = FolderRegistry(preferences, bus)
        access = FolderAccessManager(resolver=folders.resolve)
        store = ProjectStore(config, persistence, preferences, folders, access, bus)

        state = cls(
            config=config,
            bus=bus,
            preferences=preferences,
            persistence=persistence,
            folders=folders,
            access=access,
            store=store,
        )
        if load:
            store.load()

        logger.info(f"Atelier ready (data dir: {config.data_dir}, {len(folders)} root folder(s))")
        return state

    def notes_editor(self, project_id: "UUID") -> NotesEditor:
        return NotesEditor(self.store, project_id, self.config.notes_debounce_seconds)

    def shutdown(self) -> None:
        """Release every folder still held and drop subscriptions."""
        self.access.release_all()
        self.bus.clear()
        logger.info("Atelier shut down")
