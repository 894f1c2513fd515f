"""Folder references: named, durable handles on configured root folders."""

from __future__ import annotations

from datetime import UTC, datetime
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class FolderReference(BaseModel):
    """A root folder the user picked once.

    The ``grant`` is an opaque access-grant blob produced by
    :mod:`atelier.domain.folders.grants`; it is resolved to a live directory
    on demand and may fail if the directory went away or access was revoked.
    """

    id: UUID = Field(default_factory=uuid4)
    name: str
    grant: str
    is_default: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
