"""
Content Core Library

File-based content storage for static sites, backed by the local filesystem
or a GitHub repository.

Main exports:
- ContentManager: Entry listing and lifecycle for configured collections
- GitManager: Auto-commit for the local backend
- StorageInterface: Storage abstraction
- LocalStorage: Local filesystem storage
- GitHubStorage: GitHub API storage with atomic batch commits
- define_config / load_config: Configuration
"""

from .config import (
    CollectionConfig,
    ContentConfig,
    GitConfig,
    GitHubStorageConfig,
    LocalStorageConfig,
    default_commit_message,
    define_config,
    load_config,
)
from .core import (
    ContentManager,
    GitManager,
    GitResult,
    CommitResult,
    VersioningFailure,
    Entry,
    EntryData,
    EntryList,
    EntryListOptions,
)
from .exceptions import (
    ContentCoreError,
    ConfigurationError,
    NotFoundError,
    CollectionNotFoundError,
    EntryNotFoundError,
    AlreadyExistsError,
    EntryExistsError,
    EntryValidationError,
    EntryParseError,
    PathTraversalError,
    RemoteApiError,
    StaleWriteError,
)
from .services import (
    StorageInterface,
    LocalStorage,
    GitHubStorage,
    BatchWriteOperation,
    OperationType,
    create_storage,
)

__version__ = "1.0.0"

__all__ = [
    "CollectionConfig",
    "ContentConfig",
    "GitConfig",
    "GitHubStorageConfig",
    "LocalStorageConfig",
    "default_commit_message",
    "define_config",
    "load_config",
    "ContentManager",
    "GitManager",
    "GitResult",
    "CommitResult",
    "VersioningFailure",
    "Entry",
    "EntryData",
    "EntryList",
    "EntryListOptions",
    "ContentCoreError",
    "ConfigurationError",
    "NotFoundError",
    "CollectionNotFoundError",
    "EntryNotFoundError",
    "AlreadyExistsError",
    "EntryExistsError",
    "EntryValidationError",
    "EntryParseError",
    "PathTraversalError",
    "RemoteApiError",
    "StaleWriteError",
    "StorageInterface",
    "LocalStorage",
    "GitHubStorage",
    "BatchWriteOperation",
    "OperationType",
    "create_storage",
]
