"""
Content type definitions for content-core.

Entries are built fresh from storage on every read; nothing here is cached.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Union


@dataclass
class EntryData:
    """Fields and body used to create or update an entry."""

    fields: Dict[str, Any] = field(default_factory=dict)
    content: str = ""

    def __post_init__(self):
        """Post-initialization processing."""
        if self.fields is None:
            self.fields = {}
        if self.content is None:
            self.content = ""

    @classmethod
    def coerce(cls, data: Union["EntryData", Mapping[str, Any]]) -> "EntryData":
        """Accept an ``EntryData`` or a ``{"fields": ..., "content": ...}`` mapping."""
        if isinstance(data, cls):
            return data
        return cls(fields=dict(data.get("fields") or {}), content=data.get("content") or "")


@dataclass
class Entry:
    """A single content entry stored at ``{collection}/{slug}/index.md``."""

    slug: str
    collection: str
    fields: Dict[str, Any]
    content: str
    file_path: str
    created_at: datetime
    updated_at: datetime

    @property
    def data(self) -> EntryData:
        """Fields and body as ``EntryData``."""
        return EntryData(fields=dict(self.fields), content=self.content)


@dataclass
class EntryList:
    """One page of entries plus the total before pagination."""

    entries: List[Entry]
    total: int


@dataclass
class EntryListOptions:
    """Query options for ``ContentManager.list_entries``."""

    page: int = 1
    limit: int = 20
    sort_by: str = "updated_at"
    sort_order: str = "desc"
    search: Optional[str] = None
    filters: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Post-initialization processing."""
        self.page = max(int(self.page or 1), 1)
        self.limit = max(int(self.limit or 20), 1)
        if self.sort_order not in ("asc", "desc"):
            raise ValueError(f"sort_order must be 'asc' or 'desc', got {self.sort_order!r}")
        if self.filters is None:
            self.filters = {}
