"""
Atelier data models.

Projects, categories, statuses and folder references.
"""

from .category import ALL_CATEGORY_ID, Category, all_category, normalize_categories
from .folder import FolderReference
from .project import DEFAULT_PROJECT_TITLE, Project, ProjectMetadata, ProjectTag
from .status import (
    NOT_STARTED_ID,
    SYSTEM_STATUS_IDS,
    ProjectStatus,
    default_statuses,
    parse_hex_color,
)

__all__ = [
    "ALL_CATEGORY_ID",
    "Category",
    "all_category",
    "normalize_categories",
    "FolderReference",
    "DEFAULT_PROJECT_TITLE",
    "Project",
    "ProjectMetadata",
    "ProjectTag",
    "NOT_STARTED_ID",
    "SYSTEM_STATUS_IDS",
    "ProjectStatus",
    "default_statuses",
    "parse_hex_color",
]
