"""
Error taxonomy for Atelier.

Every error raised from a user-initiated action carries a short ``title`` and a
longer ``message`` so the presentation layer can show a distinguishable alert
without knowing the failure type.
"""

from __future__ import annotations


class AtelierError(Exception):
    """Base class for all Atelier errors."""

    default_title = "Operation failed"

    def __init__(self, message: str, title: str | None = None):
        super().__init__(message)
        self.title = title or self.default_title
        self.message = message

    def to_alert(self) -> dict[str, str]:
        return {"title": self.title, "message": self.message}


# ============================================================================
# Folder access
# ============================================================================


class FolderAccessError(AtelierError):
    """A folder reference cannot be used."""

    default_title = "Folder inaccessible"


class FolderStaleError(FolderAccessError):
    """The referenced directory no longer exists where the grant points."""

    default_title = "Folder not found"


class FolderRevokedError(FolderAccessError):
    """The directory exists but access to it has been withdrawn."""

    default_title = "Folder access denied"


# ============================================================================
# Data and filesystem failures
# ============================================================================


class ResourceNotFoundError(AtelierError):
    """An expected directory or file is missing."""

    default_title = "Not found"


class FileOperationError(AtelierError):
    """Create/rename/delete/write failed for OS-level reasons."""

    default_title = "File operation failed"

    @classmethod
    def wrap(cls, operation: str, path: object, error: OSError) -> "FileOperationError":
        reason = error.strerror or str(error)
        exc = cls(f"Could not {operation} '{path}': {reason}")
        exc.__cause__ = error
        return exc


class RegistryDecodeError(AtelierError):
    """A persisted or imported file is malformed."""

    default_title = "Unreadable file"


class ValidationFailedError(AtelierError):
    """The requested change violates a registry rule."""

    default_title = "Invalid change"
