"""
Content entry management for content-core.

Entries live in ``{collection base}/{slug}/index.md`` (YAML front-matter plus
a markdown body) with uploaded images next to them in ``images/``. All file
access goes through a ``StorageInterface`` so the same manager drives the
local filesystem and GitHub backends.
"""

import asyncio
import locale
import logging
import posixpath
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Mapping, Optional, Union

import frontmatter
import httpx
import yaml

from ..config import CollectionConfig, CommitMessageTemplate, ContentConfig, default_commit_message
from ..exceptions import (
    CollectionNotFoundError,
    EntryExistsError,
    EntryNotFoundError,
    EntryParseError,
    EntryValidationError,
    PathTraversalError,
)
from ..security import make_slug, sanitize_filename
from ..services.factory import create_storage
from ..services.local_storage import LocalStorage
from ..services.storage_abstraction import StorageInterface
from .content_types import Entry, EntryData, EntryList, EntryListOptions
from .git_manager import GitManager

logger = logging.getLogger(__name__)

ENTRY_FILENAME = "index.md"
IMAGES_DIRNAME = "images"

_TIMESTAMP_SORT_KEYS = {
    "updated_at": "updated_at",
    "updatedAt": "updated_at",
    "created_at": "created_at",
    "createdAt": "created_at",
}


def _join(*parts: str) -> str:
    return posixpath.join(*[p for p in parts if p])


class ContentManager:
    """
    Manages content entries for a set of collections.

    Features:
    - Listing with search, field filters, sorting and pagination
    - Entry create/read/update/delete
    - Image uploads stored next to each entry
    - Optional git auto-commit after every successful change
    """

    def __init__(
        self,
        storage: StorageInterface,
        collections: Mapping[str, CollectionConfig],
        *,
        git_manager: Optional[GitManager] = None,
        commit_message: CommitMessageTemplate = default_commit_message,
    ):
        """
        Initialize the ContentManager.

        Args:
            storage: Storage backend holding the content tree
            collections: Collection name to collection config
            git_manager: Commits local changes after each write when given
            commit_message: ``(action, collection, slug) -> str`` default message template
        """
        self.storage = storage
        self.collections = dict(collections)
        self.git_manager = git_manager
        self.commit_message = commit_message or default_commit_message

    @classmethod
    def from_config(
        cls,
        config: ContentConfig,
        root_dir: Union[str, Path] = ".",
        client: Optional[httpx.AsyncClient] = None,
    ) -> "ContentManager":
        """
        Build a manager, its storage backend and (for local storage with
        auto-commit enabled) its git manager from configuration.
        """
        storage = create_storage(config.storage, root_dir, client=client)

        git_manager = None
        commit_message = default_commit_message
        if config.git is not None:
            commit_message = config.git.commit_message or default_commit_message
            if config.git.auto_commit:
                if isinstance(storage, LocalStorage):
                    git_manager = GitManager(storage.base_path, config.git)
                else:
                    logger.info("Auto-commit ignored: remote storage commits every write itself")

        return cls(storage, config.collections, git_manager=git_manager, commit_message=commit_message)

    # ------------------------------------------
    # Paths
    # ------------------------------------------

    def get_collection(self, collection: str) -> CollectionConfig:
        """Get a collection config or raise ``CollectionNotFoundError``."""
        try:
            return self.collections[collection]
        except KeyError:
            raise CollectionNotFoundError(collection) from None

    def get_collection_dir(self, collection: str) -> str:
        """Collection base path relative to the content root."""
        return self.get_collection(collection).base_path

    def get_entry_dir(self, collection: str, slug: str) -> str:
        self._check_slug(slug)
        return _join(self.get_collection_dir(collection), slug)

    def get_entry_path(self, collection: str, slug: str) -> str:
        return _join(self.get_entry_dir(collection, slug), ENTRY_FILENAME)

    def get_images_dir(self, collection: str, slug: str) -> str:
        return _join(self.get_entry_dir(collection, slug), IMAGES_DIRNAME)

    @staticmethod
    def _is_slug(name: str) -> bool:
        # A slug is a single path segment
        return bool(name) and name not in (".", "..") and "/" not in name and "\\" not in name

    @classmethod
    def _check_slug(cls, slug: str) -> None:
        if not cls._is_slug(slug):
            raise PathTraversalError(slug)

    # ------------------------------------------
    # Serialization
    # ------------------------------------------

    @staticmethod
    def _parse_document(text: str, path: str) -> frontmatter.Post:
        try:
            return frontmatter.loads(text)
        except Exception as e:
            logger.error(f"Error parsing front-matter in {path}: {e}")
            raise EntryParseError(f"Invalid front-matter in {path}: {e}") from e

    @staticmethod
    def _serialize_document(data: EntryData) -> str:
        post = frontmatter.Post(data.content)
        post.metadata.update(data.fields)
        try:
            return frontmatter.dumps(post) + "\n"
        except yaml.YAMLError as e:
            raise EntryValidationError(f"Fields can't be serialized as YAML: {e}") from e

    def _message(self, message: Optional[str], action: str, collection: str, slug: str) -> str:
        return message or self.commit_message(action, collection, slug)

    async def _auto_commit(self, action: str, collection: str, slug: str, paths: List[str]) -> None:
        if self.git_manager is None:
            return
        result = await self.git_manager.auto_commit(action, collection, slug, paths)
        if not result.success:
            # Content is already written; a versioning failure is only reported
            logger.warning(f"Saved {collection}/{slug} but auto-commit failed: {result.error}")

    # ------------------------------------------
    # Entries
    # ------------------------------------------

    async def list_entries(
        self,
        collection: str,
        options: Optional[Union[EntryListOptions, Mapping[str, Any]]] = None,
        **kwargs,
    ) -> EntryList:
        """
        List entries in a collection.

        Directories that don't hold a parseable ``index.md`` are skipped.

        Args:
            collection: Collection name
            options: Listing options; keyword arguments are used when omitted

        Returns:
            EntryList: The requested page and the total after filtering
        """
        if options is None:
            options = EntryListOptions(**kwargs)
        elif not isinstance(options, EntryListOptions):
            options = EntryListOptions(**options)

        base = self.get_collection_dir(collection)
        items = await self.storage.read_directory(base)
        slugs = []
        for item in items:
            if not item.is_directory:
                continue
            if not self._is_slug(item.name):
                logger.debug(f"Skipping {collection}/{item.name}: not a valid slug")
                continue
            slugs.append(item.name)

        results = await asyncio.gather(
            *(self.get_entry(collection, slug) for slug in slugs),
            return_exceptions=True,
        )

        entries: List[Entry] = []
        for slug, result in zip(slugs, results):
            if isinstance(result, EntryParseError):
                logger.debug(f"Skipping {collection}/{slug}: {result}")
                continue
            if isinstance(result, BaseException):
                raise result
            if result is None:
                logger.debug(f"Skipping {collection}/{slug}: no {ENTRY_FILENAME}")
                continue
            entries.append(result)

        entries = self._filter_entries(entries, options)
        self._sort_entries(entries, options)

        total = len(entries)
        start = (options.page - 1) * options.limit
        return EntryList(entries=entries[start:start + options.limit], total=total)

    @staticmethod
    def _filter_entries(entries: List[Entry], options: EntryListOptions) -> List[Entry]:
        if options.search:
            needle = options.search.lower()
            entries = [
                entry for entry in entries
                if any(needle in str(value).lower() for value in entry.fields.values())
            ]
        if options.filters:
            entries = [
                entry for entry in entries
                if all(entry.fields.get(key) == value for key, value in options.filters.items())
            ]
        return entries

    @staticmethod
    def _sort_entries(entries: List[Entry], options: EntryListOptions) -> None:
        reverse = options.sort_order == "desc"
        timestamp_attr = _TIMESTAMP_SORT_KEYS.get(options.sort_by)

        if timestamp_attr:
            entries.sort(key=lambda entry: getattr(entry, timestamp_attr), reverse=reverse)
            return

        def field_key(entry: Entry) -> str:
            value = entry.fields.get(options.sort_by)
            return locale.strxfrm("" if value is None else str(value))

        entries.sort(key=field_key, reverse=reverse)

    async def get_entry(self, collection: str, slug: str) -> Optional[Entry]:
        """
        Get a single entry.

        Returns:
            The entry, or None if it doesn't exist

        Raises:
            EntryParseError: If the document isn't UTF-8 or its front-matter is malformed
        """
        entry_path = self.get_entry_path(collection, slug)
        try:
            file = await self.storage.read_file(entry_path)
        except UnicodeDecodeError as e:
            logger.error(f"Error decoding {entry_path}: {e}")
            raise EntryParseError(f"{entry_path} is not valid UTF-8: {e}") from e
        if file is None:
            return None

        post = self._parse_document(file.content, entry_path)
        return Entry(
            slug=slug,
            collection=collection,
            fields=dict(post.metadata),
            content=post.content,
            file_path=entry_path,
            created_at=file.metadata.created_at,
            updated_at=file.metadata.updated_at,
        )

    def _entry_from_data(self, collection: str, slug: str, data: EntryData, created_at: Optional[datetime] = None) -> Entry:
        now = datetime.now(timezone.utc)
        return Entry(
            slug=slug,
            collection=collection,
            fields=dict(data.fields),
            content=data.content,
            file_path=self.get_entry_path(collection, slug),
            created_at=created_at or now,
            updated_at=now,
        )

    async def create_entry(
        self,
        collection: str,
        data: Union[EntryData, Mapping[str, Any]],
        message: Optional[str] = None,
    ) -> Entry:
        """
        Create a new entry; the slug comes from the collection's slug field.

        Raises:
            CollectionNotFoundError: If the collection isn't configured
            EntryValidationError: If the slug field is empty or yields no slug
            EntryExistsError: If an entry with the same slug exists
        """
        config = self.get_collection(collection)
        entry_data = EntryData.coerce(data)

        value = entry_data.fields.get(config.slug_field)
        if value is None or str(value).strip() == "":
            raise EntryValidationError(f'Slug field "{config.slug_field}" is required')

        slug = make_slug(value)
        if not slug:
            raise EntryValidationError(f'Cannot derive a slug from "{value}"')

        entry_path = self.get_entry_path(collection, slug)
        if await self.storage.exists(entry_path):
            raise EntryExistsError(collection, slug)

        document = self._serialize_document(entry_data)
        await self.storage.write_file(entry_path, document, self._message(message, "create", collection, slug))
        await self.storage.create_directory(self.get_images_dir(collection, slug))
        logger.info(f"Created entry {collection}/{slug}")

        await self._auto_commit("create", collection, slug, [self.get_entry_dir(collection, slug)])

        entry = await self.get_entry(collection, slug)
        return entry or self._entry_from_data(collection, slug, entry_data)

    async def update_entry(
        self,
        collection: str,
        slug: str,
        data: Union[EntryData, Mapping[str, Any]],
        message: Optional[str] = None,
    ) -> Entry:
        """
        Rewrite an existing entry, keeping its creation time.

        Raises:
            EntryNotFoundError: If the entry doesn't exist
        """
        existing = await self.get_entry(collection, slug)
        if existing is None:
            raise EntryNotFoundError(collection, slug)

        entry_data = EntryData.coerce(data)
        entry_path = self.get_entry_path(collection, slug)
        document = self._serialize_document(entry_data)
        await self.storage.write_file(entry_path, document, self._message(message, "update", collection, slug))
        logger.info(f"Updated entry {collection}/{slug}")

        await self._auto_commit("update", collection, slug, [entry_path])

        entry = await self.get_entry(collection, slug)
        if entry is None:
            return self._entry_from_data(collection, slug, entry_data, existing.created_at)
        # Rewriting resets ctime on filesystems without birth time
        entry.created_at = existing.created_at
        return entry

    async def delete_entry(self, collection: str, slug: str, message: Optional[str] = None) -> None:
        """
        Delete an entry directory, including its images.

        Raises:
            EntryNotFoundError: If the entry has no ``index.md``
        """
        entry_dir = self.get_entry_dir(collection, slug)
        if not await self.storage.exists(self.get_entry_path(collection, slug)):
            raise EntryNotFoundError(collection, slug)

        await self.storage.delete_directory(entry_dir, self._message(message, "delete", collection, slug))
        logger.info(f"Deleted entry {collection}/{slug}")

        await self._auto_commit("delete", collection, slug, [entry_dir])

    async def save_image(
        self,
        collection: str,
        slug: str,
        filename: str,
        data: bytes,
        message: Optional[str] = None,
    ) -> str:
        """
        Save an uploaded image under the entry's ``images/`` directory.

        The name is the slugified base name plus a millisecond timestamp,
        e.g. ``My Photo.PNG`` becomes ``my-photo-1700000000000.png``.

        Returns:
            Image path relative to the entry directory (``images/<name>``)
        """
        images_dir = self.get_images_dir(collection, slug)

        stem, suffix = posixpath.splitext(sanitize_filename(filename, fallback="image"))
        unique_name = f"{stem}-{int(time.time() * 1000)}{suffix}"
        image_path = _join(images_dir, unique_name)

        await self.storage.write_binary_file(
            image_path,
            bytes(data),
            self._message(message, "update", collection, slug),
        )
        logger.info(f"Saved image {image_path}")

        await self._auto_commit("update", collection, slug, [image_path])
        return f"{IMAGES_DIRNAME}/{unique_name}"
