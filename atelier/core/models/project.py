"""
Project model for Atelier.

A project is tracked centrally in the registry file; its folder on disk is a
satellite resource that may or may not exist.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from .status import NOT_STARTED_ID

DEFAULT_PROJECT_TITLE = "New Project"


class ProjectTag(str, Enum):
    """Enumerated labels a project can carry."""

    TWO_D = "2D"
    THREE_D = "3D"
    FREELANCE = "FREELANCE"


def _now() -> datetime:
    return datetime.now(UTC)


class Project(BaseModel):
    """A tracked project.

    Attributes:
        id: Stable, globally unique identity
        title: Display name, also the source of the folder name
        details: Free-text description
        notes: Free-text notes (edited through a debounced draft)
        tags: Set of ProjectTag labels
        status_id: Foreign key into the status registry
        category_id: Foreign key into the category registry, None for uncategorized
        root_folder_path: Absolute path of the backing folder, if known
        has_folder_structure: Whether the skeleton was created for this project
        created_at / updated_at: UTC timestamps
        is_editing: Transient UI flag, never persisted
        is_fully_loaded: Transient, False for entries built from a lightweight scan
    """

    model_config = ConfigDict(extra="ignore")

    id: UUID = Field(default_factory=uuid4)
    title: str = DEFAULT_PROJECT_TITLE
    details: str = ""
    notes: str = ""
    tags: set[ProjectTag] = Field(default_factory=set)
    status_id: UUID = NOT_STARTED_ID
    category_id: Optional[UUID] = None
    root_folder_path: Optional[str] = None
    has_folder_structure: bool = False
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    is_editing: bool = Field(default=False, exclude=True)
    is_fully_loaded: bool = Field(default=True, exclude=True)

    @field_validator("status_id", mode="before")
    @classmethod
    def _default_status(cls, value: Any) -> Any:
        return NOT_STARTED_ID if value is None else value

    @field_validator("details", "notes", mode="before")
    @classmethod
    def _empty_text(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_serializer("tags")
    def _serialize_tags(self, tags: set[ProjectTag]) -> list[str]:
        return sorted(tag.value for tag in tags)

    @property
    def root_folder(self) -> Path | None:
        if not self.root_folder_path:
            return None
        return Path(self.root_folder_path)

    def subfolder(self, name: str) -> Path | None:
        """Path of a named skeleton subfolder, or None without a root folder."""
        root = self.root_folder
        return root / name if root is not None else None

    def touch(self) -> None:
        """Update the modification timestamp."""
        self.updated_at = _now()


class ProjectMetadata(BaseModel):
    """Minimal identifying fields read from a per-project metadata file."""

    model_config = ConfigDict(extra="ignore")

    id: UUID
    title: str = DEFAULT_PROJECT_TITLE
    status_id: UUID = NOT_STARTED_ID
    category_id: Optional[UUID] = None

    @field_validator("status_id", mode="before")
    @classmethod
    def _default_status(cls, value: Any) -> Any:
        return NOT_STARTED_ID if value is None else value

    def to_project(self, folder: Path, has_folder_structure: bool) -> Project:
        """Build a lightweight Project for a scanned folder."""
        return Project(
            id=self.id,
            title=self.title,
            status_id=self.status_id,
            category_id=self.category_id,
            root_folder_path=str(folder),
            has_folder_structure=has_folder_structure,
            is_fully_loaded=False,
        )
