"""
Core content modules.

Contains the main business logic for:
- Entry management (listing, create/update/delete, images)
- Git auto-commit for the local backend
- Content data types
"""

from .content_manager import ContentManager
from .git_manager import (
    GitManager,
    GitResult,
    CommitResult,
    StatusResult,
    LogResult,
    CommitInfo,
    VersioningFailure,
)
from .content_types import Entry, EntryData, EntryList, EntryListOptions

__all__ = [
    "ContentManager",
    "GitManager",
    "GitResult",
    "CommitResult",
    "StatusResult",
    "LogResult",
    "CommitInfo",
    "VersioningFailure",
    "Entry",
    "EntryData",
    "EntryList",
    "EntryListOptions",
]
