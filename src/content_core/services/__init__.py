"""
Service layer for storage abstraction.

Contains:
- Storage contract and data types
- Local filesystem backend
- GitHub API backend
- Backend factory
"""

from .storage_abstraction import (
    StorageInterface,
    OperationType,
    FileMetadata,
    DirectoryEntry,
    FileContent,
    BinaryFileContent,
    WriteResult,
    BatchWriteOperation,
)
from .local_storage import LocalStorage
from .github_storage import GitHubStorage
from .factory import create_storage

__all__ = [
    "StorageInterface",
    "OperationType",
    "FileMetadata",
    "DirectoryEntry",
    "FileContent",
    "BinaryFileContent",
    "WriteResult",
    "BatchWriteOperation",
    "LocalStorage",
    "GitHubStorage",
    "create_storage",
]
