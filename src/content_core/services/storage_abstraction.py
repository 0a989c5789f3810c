"""
Storage abstraction layer for pluggable storage backends.

Defines the contract shared by the local filesystem and GitHub backends.
All paths are relative to a configured content root.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional


class OperationType(str, Enum):
    """Kind of change in a batch write."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class FileMetadata:
    """Metadata for a stored file."""

    path: str
    updated_at: datetime
    created_at: datetime
    size: Optional[int] = None
    # Only set by content-addressed backends (git blob SHA)
    content_hash: Optional[str] = None


@dataclass
class DirectoryEntry:
    """A single item returned by ``read_directory``."""

    name: str
    is_directory: bool
    path: str


@dataclass
class FileContent:
    """Text file content with metadata."""

    content: str
    metadata: FileMetadata


@dataclass
class BinaryFileContent:
    """Binary file content with metadata."""

    data: bytes
    metadata: FileMetadata


@dataclass
class WriteResult:
    """Result of a single write."""

    path: str
    content_hash: Optional[str] = None
    commit_id: Optional[str] = None


@dataclass
class BatchWriteOperation:
    """
    One change inside a batch write.

    ``content`` is required for create/update and holds base64 text when
    ``is_binary_encoded`` is set. ``expected_hash`` is an optional
    precondition checked by backends that track content hashes.
    """

    type: OperationType
    path: str
    content: Optional[str] = None
    is_binary_encoded: bool = False
    expected_hash: Optional[str] = None

    def __post_init__(self):
        """Coerce and validate the operation."""
        self.type = OperationType(self.type)
        if self.type is not OperationType.DELETE and self.content is None:
            raise ValueError(f"Content required for {self.type.value} operation: {self.path}")


class StorageInterface(ABC):
    """
    Abstract storage interface for pluggable storage backends.

    Implementations must reject paths escaping the content root with
    ``PathTraversalError`` before doing any I/O. ``atomic_batches`` states
    whether ``batch_write`` applies all operations as one change.
    """

    atomic_batches: bool = False

    @abstractmethod
    async def exists(self, path: str) -> bool:
        """Check if a file or directory exists"""
        pass

    @abstractmethod
    async def read_directory(self, path: str) -> List[DirectoryEntry]:
        """List directory contents; empty list if the directory is missing"""
        pass

    @abstractmethod
    async def read_file(self, path: str) -> Optional[FileContent]:
        """Read a UTF-8 text file, or None if it doesn't exist"""
        pass

    @abstractmethod
    async def read_binary_file(self, path: str) -> Optional[BinaryFileContent]:
        """Read a binary file, or None if it doesn't exist"""
        pass

    @abstractmethod
    async def write_file(self, path: str, content: str, message: Optional[str] = None) -> WriteResult:
        """Write a text file, creating parent directories"""
        pass

    @abstractmethod
    async def write_binary_file(self, path: str, data: bytes, message: Optional[str] = None) -> WriteResult:
        """Write a binary file, creating parent directories"""
        pass

    @abstractmethod
    async def delete_file(self, path: str, message: Optional[str] = None) -> None:
        """Delete a file; missing files are ignored"""
        pass

    @abstractmethod
    async def delete_directory(self, path: str, message: Optional[str] = None) -> None:
        """Delete a directory and everything below it"""
        pass

    @abstractmethod
    async def create_directory(self, path: str) -> None:
        """Create a directory (no-op where directories are implicit)"""
        pass

    @abstractmethod
    async def batch_write(self, operations: List[BatchWriteOperation], message: str) -> List[WriteResult]:
        """Apply several operations, atomically where ``atomic_batches`` is set"""
        pass
