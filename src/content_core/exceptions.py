"""
Exception hierarchy for content-core.

Domain errors (missing collections or entries, slug collisions) are raised by
the content manager; storage errors (path traversal, remote API failures) are
raised by the adapters and pass through the manager untouched.
"""

from typing import Optional


class ContentCoreError(Exception):
    """Base exception for content-core operations."""
    pass


class ConfigurationError(ContentCoreError):
    """Exception raised when configuration is missing or invalid."""
    pass


class NotFoundError(ContentCoreError):
    """Exception raised when a collection or entry doesn't exist."""
    pass


class CollectionNotFoundError(NotFoundError):
    """Exception raised when the requested collection isn't configured."""

    def __init__(self, collection: str):
        self.collection = collection
        super().__init__(f'Collection "{collection}" not found')


class EntryNotFoundError(NotFoundError):
    """Exception raised when the requested entry doesn't exist."""

    def __init__(self, collection: str, slug: str):
        self.collection = collection
        self.slug = slug
        super().__init__(f'Entry "{slug}" not found in "{collection}"')


class AlreadyExistsError(ContentCoreError):
    """Exception raised when trying to create something that already exists."""
    pass


class EntryExistsError(AlreadyExistsError):
    """Exception raised when an entry with the same slug already exists."""

    def __init__(self, collection: str, slug: str):
        self.collection = collection
        self.slug = slug
        super().__init__(f'Entry "{slug}" already exists in "{collection}"')


class EntryValidationError(ContentCoreError, ValueError):
    """Exception raised when entry data can't be stored (e.g. empty slug field)."""
    pass


class EntryParseError(ContentCoreError, ValueError):
    """Exception raised when an entry document can't be parsed."""
    pass


class PathTraversalError(ContentCoreError, ValueError):
    """Exception raised when a path resolves outside the content root."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Path traversal detected: {path}")


class RemoteApiError(ContentCoreError):
    """Exception raised when the remote API returns a non-success status."""

    def __init__(self, status_code: int, message: str, url: Optional[str] = None):
        self.status_code = status_code
        self.message = message
        self.url = url
        super().__init__(f"GitHub API error ({status_code}): {message}")


class StaleWriteError(RemoteApiError):
    """Exception raised when an optimistic-concurrency precondition fails."""
    pass
