"""Exceptions raised by cuesync.

Parsing, reconciliation and rendering never raise; everything here comes
from document I/O, path resolution or the persisted state file.
"""

from __future__ import annotations


class CueSyncError(Exception):
    """Base exception for all cuesync errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details


class DocumentNotFound(CueSyncError):
    """A document that a pass needs does not exist."""

    def __init__(self, message: str, path: str | None = None, details: dict | None = None):
        super().__init__(message, details)
        self.path = path


class SourceNotFound(DocumentNotFound):
    """No Source document could be resolved for a derived document.

    Attributes:
        tried: Candidate paths that were checked, in order.
    """

    def __init__(self, message: str, path: str | None = None, tried: list[str] | None = None):
        super().__init__(message, path=path, details={"tried": list(tried or [])})
        self.tried = list(tried or [])


class CueNotFound(DocumentNotFound):
    """The Cue document expected for a Source does not exist."""


class AmbiguousResolution(CueSyncError):
    """The role of a document, or its counterpart, cannot be determined."""


class InvalidRole(CueSyncError):
    """An operation was requested on a document of the wrong role."""


class WriteConflict(CueSyncError):
    """Storage refused a write because a non-document entry occupies the path."""

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message, details={"path": path})
        self.path = path


class StateError(CueSyncError):
    """The persisted state file could not be read or written."""
