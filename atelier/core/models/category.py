"""Project categories and the fixed "All" pseudo-category."""

from __future__ import annotations

from uuid import UUID, uuid4

from pydantic import BaseModel, Field

ALL_CATEGORY_ID = UUID("00000000-0000-0000-0000-0000000000a1")


class Category(BaseModel):
    """A user-defined grouping of projects.

    The fixed category is the "All" bucket: it always sits at index 0, cannot
    be renamed, moved or deleted, and is where projects land when their own
    category disappears.
    """

    id: UUID = Field(default_factory=uuid4)
    name: str
    system_image: str = "folder"
    is_fixed: bool = False


def all_category() -> Category:
    return Category(id=ALL_CATEGORY_ID, name="All", system_image="tray.full", is_fixed=True)


def normalize_categories(categories: list[Category]) -> list[Category]:
    """Return categories with exactly one fixed "All" entry at index 0.

    Extra fixed entries (from hand-edited preference files) are dropped.
    """
    fixed = next((c for c in categories if c.is_fixed and c.id == ALL_CATEGORY_ID), None)
    rest = [c for c in categories if not c.is_fixed and c.id != ALL_CATEGORY_ID]
    return [fixed or all_category(), *rest]
