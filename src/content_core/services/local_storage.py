"""
Local filesystem storage backend.

Batch writes are applied one operation at a time. The filesystem has no
transaction to borrow, so a failure partway through leaves the earlier
operations on disk.
"""

import asyncio
import base64
import logging
import os
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

from ..security import normalize_relative_path, resolve_within
from .storage_abstraction import (
    BatchWriteOperation,
    BinaryFileContent,
    DirectoryEntry,
    FileContent,
    FileMetadata,
    OperationType,
    StorageInterface,
    WriteResult,
)

logger = logging.getLogger(__name__)


class LocalStorage(StorageInterface):
    """Local filesystem storage implementation"""

    atomic_batches = False

    def __init__(self, root_dir: Union[str, Path], content_path: str = ""):
        """
        Initialize local storage.

        Args:
            root_dir: Project root directory
            content_path: Content directory inside ``root_dir``
        """
        self.base_path = (Path(root_dir) / content_path).resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)

    def resolve(self, relative_path: str) -> Path:
        """Resolve a relative path to an absolute path inside the content root."""
        return resolve_within(self.base_path, relative_path)

    def _metadata(self, full_path: Path, relative_path: str) -> FileMetadata:
        stats = full_path.stat()
        created = getattr(stats, "st_birthtime", stats.st_ctime)
        return FileMetadata(
            path=relative_path,
            size=stats.st_size,
            updated_at=datetime.fromtimestamp(stats.st_mtime, tz=timezone.utc),
            created_at=datetime.fromtimestamp(created, tz=timezone.utc),
        )

    async def exists(self, path: str) -> bool:
        """Check if file or directory exists in local storage"""
        full_path = self.resolve(path)
        return await asyncio.to_thread(full_path.exists)

    async def read_directory(self, path: str) -> List[DirectoryEntry]:
        """List a directory in local storage"""
        full_path = self.resolve(path)
        relative = normalize_relative_path(path)

        def _scan() -> List[DirectoryEntry]:
            if not full_path.is_dir():
                return []
            with os.scandir(full_path) as it:
                return [
                    DirectoryEntry(
                        name=entry.name,
                        is_directory=entry.is_dir(),
                        path=f"{relative}/{entry.name}" if relative else entry.name,
                    )
                    for entry in sorted(it, key=lambda e: e.name)
                ]

        return await asyncio.to_thread(_scan)

    async def read_file(self, path: str) -> Optional[FileContent]:
        """Read a text file from local storage"""
        full_path = self.resolve(path)

        def _read() -> Optional[FileContent]:
            if not full_path.is_file():
                return None
            # newline="" keeps line endings byte-for-byte
            with open(full_path, "r", encoding="utf-8", newline="") as f:
                content = f.read()
            return FileContent(content=content, metadata=self._metadata(full_path, normalize_relative_path(path)))

        return await asyncio.to_thread(_read)

    async def read_binary_file(self, path: str) -> Optional[BinaryFileContent]:
        """Read a binary file from local storage"""
        full_path = self.resolve(path)

        def _read() -> Optional[BinaryFileContent]:
            if not full_path.is_file():
                return None
            return BinaryFileContent(
                data=full_path.read_bytes(),
                metadata=self._metadata(full_path, normalize_relative_path(path)),
            )

        return await asyncio.to_thread(_read)

    async def write_file(self, path: str, content: str, message: Optional[str] = None) -> WriteResult:
        """Write a text file to local storage"""
        full_path = self.resolve(path)

        def _write() -> None:
            full_path.parent.mkdir(parents=True, exist_ok=True)
            with open(full_path, "w", encoding="utf-8", newline="") as f:
                f.write(content)

        await asyncio.to_thread(_write)
        logger.debug(f"File written to local storage: {full_path}")
        return WriteResult(path=normalize_relative_path(path))

    async def write_binary_file(self, path: str, data: bytes, message: Optional[str] = None) -> WriteResult:
        """Write a binary file to local storage"""
        full_path = self.resolve(path)

        def _write() -> None:
            full_path.parent.mkdir(parents=True, exist_ok=True)
            full_path.write_bytes(data)

        await asyncio.to_thread(_write)
        logger.debug(f"Binary file written to local storage: {full_path}")
        return WriteResult(path=normalize_relative_path(path))

    async def delete_file(self, path: str, message: Optional[str] = None) -> None:
        """Delete file from local storage"""
        full_path = self.resolve(path)
        if await asyncio.to_thread(full_path.is_file):
            await asyncio.to_thread(full_path.unlink)
            logger.debug(f"File deleted from local storage: {full_path}")

    async def delete_directory(self, path: str, message: Optional[str] = None) -> None:
        """Delete a directory tree from local storage"""
        full_path = self.resolve(path)
        if full_path == self.base_path:
            raise ValueError("Refusing to delete the content root")
        if await asyncio.to_thread(full_path.is_dir):
            await asyncio.to_thread(shutil.rmtree, full_path)
            logger.info(f"Directory deleted from local storage: {full_path}")

    async def create_directory(self, path: str) -> None:
        """Create a directory in local storage"""
        full_path = self.resolve(path)
        await asyncio.to_thread(full_path.mkdir, parents=True, exist_ok=True)

    async def batch_write(self, operations: List[BatchWriteOperation], message: str) -> List[WriteResult]:
        """Apply operations sequentially (no atomic guarantee)"""
        # Validate every path up front so a traversal attempt doesn't leave
        # a half-applied batch behind
        for op in operations:
            self.resolve(op.path)

        results: List[WriteResult] = []
        for op in operations:
            if op.type is OperationType.DELETE:
                await self.delete_file(op.path)
                results.append(WriteResult(path=normalize_relative_path(op.path)))
            elif op.is_binary_encoded:
                results.append(await self.write_binary_file(op.path, base64.b64decode(op.content)))
            else:
                results.append(await self.write_file(op.path, op.content))

        logger.info(f"Applied {len(results)} operations to local storage: {message}")
        return results
