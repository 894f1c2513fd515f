"""Root folder references, access grants and the folder registry."""

from .access import FolderAccessManager
from .grants import ResolvedGrant, create_grant, grant_path, resolve_grant
from .registry import FolderRegistry

__all__ = [
    "FolderAccessManager",
    "FolderRegistry",
    "ResolvedGrant",
    "create_grant",
    "grant_path",
    "resolve_grant",
]
