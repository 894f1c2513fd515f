"""
Storage - registry persistence, preferences and filesystem operations.
"""

from .persistence import PersistenceStore
from .preferences import PreferenceStore

__all__ = [
    "PersistenceStore",
    "PreferenceStore",
]
