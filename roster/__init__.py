# Meeting Roster - Core Library
"""
Exports for the API, the CLI and other consumers.
"""

from .directory import Directory, DirectoryStore
from .errors import (
    EmptyNameError,
    ExtractionError,
    InputQualityError,
    NotFoundError,
    ReconciliationError,
    RosterError,
    StorageError,
)
from .identity import normalize_name, resolve
from .models import ExtractedEntry, Guest, Member, Reference, ScanSnapshot
from .reconcile import ReconcileResult, ReconciliationProcessor
from .storage import SQLiteDirectoryBackend

__all__ = [
    "Directory",
    "DirectoryStore",
    "SQLiteDirectoryBackend",
    "ReconciliationProcessor",
    "ReconcileResult",
    "ExtractedEntry",
    "Member",
    "Reference",
    "Guest",
    "ScanSnapshot",
    "normalize_name",
    "resolve",
    "RosterError",
    "InputQualityError",
    "EmptyNameError",
    "NotFoundError",
    "StorageError",
    "ReconciliationError",
    "ExtractionError",
]
