"""
Project statuses.

Five built-in statuses ship with well-known ids so that projects written by
any installation resolve to the same status. Users may add their own.
"""

from __future__ import annotations

import re
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

NEUTRAL_RGBA: tuple[int, int, int, int] = (128, 128, 128, 255)

_HEX_DIGITS = re.compile(r"[0-9A-Fa-f]+")


def parse_hex_color(value: str) -> tuple[int, int, int, int]:
    """Parse ``#RRGGBB`` or ``#AARRGGBB`` into an RGBA tuple.

    Anything else degrades to a neutral grey.
    """
    digits = "".join(ch for ch in (value or "") if ch.isalnum())
    if len(digits) not in (6, 8) or not _HEX_DIGITS.fullmatch(digits):
        return NEUTRAL_RGBA
    number = int(digits, 16)
    if len(digits) == 6:
        return (number >> 16 & 0xFF, number >> 8 & 0xFF, number & 0xFF, 255)
    return (number >> 16 & 0xFF, number >> 8 & 0xFF, number & 0xFF, number >> 24 & 0xFF)


class ProjectStatus(BaseModel):
    """A named, coloured step in a project's life.

    Attributes:
        id: Stable identifier referenced by Project.status_id
        name: Display name
        color_hex: Six or eight hex digit colour, stored as entered
        order: Display position, recomputed whenever statuses are reordered
        is_system: Built-in status (renamable and recolourable, never deletable)
    """

    id: UUID = Field(default_factory=uuid4)
    name: str
    color_hex: str = "#808080"
    order: int = 0
    is_system: bool = False

    @property
    def rgba(self) -> tuple[int, int, int, int]:
        return parse_hex_color(self.color_hex)


NOT_STARTED_ID = UUID("00000000-0000-0000-0000-000000000001")
IN_PROGRESS_ID = UUID("00000000-0000-0000-0000-000000000002")
STAND_BY_ID = UUID("00000000-0000-0000-0000-000000000003")
FINISHING_ID = UUID("00000000-0000-0000-0000-000000000004")
FINISHED_ID = UUID("00000000-0000-0000-0000-000000000005")

SYSTEM_STATUS_IDS = frozenset({NOT_STARTED_ID, IN_PROGRESS_ID, STAND_BY_ID, FINISHING_ID, FINISHED_ID})


def default_statuses() -> list[ProjectStatus]:
    """Fresh copies of the built-in statuses, in display order."""
    return [
        ProjectStatus(id=NOT_STARTED_ID, name="Not Started", color_hex="#808080", order=0, is_system=True),
        ProjectStatus(id=IN_PROGRESS_ID, name="In Progress", color_hex="#007AFF", order=1, is_system=True),
        ProjectStatus(id=STAND_BY_ID, name="Stand By", color_hex="#FF9500", order=2, is_system=True),
        ProjectStatus(id=FINISHING_ID, name="Finishing", color_hex="#AF52DE", order=3, is_system=True),
        ProjectStatus(id=FINISHED_ID, name="Done", color_hex="#34C759", order=4, is_system=True),
    ]
