"""Debounced editing of a project's notes."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from atelier.core.errors import AtelierError, ResourceNotFoundError
from atelier.utils.debounce import Debouncer
from atelier.utils.logging import get_logger, log_error

if TYPE_CHECKING:
    from atelier.domain.projects.store import ProjectStore

logger = get_logger("projects.notes")


class NotesEditor:
    """Keeps a local draft of a project's notes and commits it once typing pauses.

    Every keystroke updates ``draft`` immediately and restarts the quiet
    period; only the latest draft is written to the store.

    Usage:
        editor = NotesEditor(store, project.id)
        editor.edit("Call the client")
        ...
        editor.flush()  # when the detail view closes
    """

    def __init__(self, store: "ProjectStore", project_id: UUID, delay: float | None = None):
        project = store.project(project_id)
        if project is None:
            raise ResourceNotFoundError(f"Unknown project {project_id}", title="Project not found")
        self._store = store
        self.project_id = project_id
        self.draft = project.notes
        self._debouncer = Debouncer(store.config.notes_debounce_seconds if delay is None else delay)

    @property
    def pending(self) -> bool:
        return self._debouncer.pending

    def edit(self, text: str) -> None:
        self.draft = text
        self._debouncer.submit(self._commit)

    def flush(self) -> bool:
        """Commit the pending draft now. False if nothing was pending."""
        return self._debouncer.flush()

    def cancel(self) -> None:
        """Drop the pending draft and go back to the stored notes."""
        self._debouncer.cancel()
        project = self._store.project(self.project_id)
        self.draft = project.notes if project is not None else ""

    def _commit(self) -> None:
        try:
            self._store.set_notes(self.project_id, self.draft)
        except AtelierError as e:
            log_error(logger, "save notes", e, {"project_id": str(self.project_id)})
            self._store.report_error(e, {"project_id": str(self.project_id)})
