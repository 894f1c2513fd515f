"""The project store, directory scanning and notes editing."""

from .notes import NotesEditor
from .scanner import ScanResult, discover_candidates, scan_directory
from .store import ProjectStore, ScanReport

__all__ = [
    "NotesEditor",
    "ProjectStore",
    "ScanReport",
    "ScanResult",
    "discover_candidates",
    "scan_directory",
]
