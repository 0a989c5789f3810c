"""
Tests for ContentManager over local storage.
"""

import asyncio
import logging
import os
import re
import time
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from content_core import ContentManager, define_config, load_config
from content_core.config import CollectionConfig, LocalStorageConfig
from content_core.core import CommitResult, EntryData, EntryListOptions, GitManager, VersioningFailure
from content_core.exceptions import (
    CollectionNotFoundError,
    EntryExistsError,
    EntryNotFoundError,
    EntryParseError,
    EntryValidationError,
    PathTraversalError,
    RemoteApiError,
)
from content_core.services import DirectoryEntry, FileContent, FileMetadata, StorageInterface
from tests.utils.helpers import write_entry, write_raw


def _set_mtime(path, offset):
    stamp = time.time() - 1000 + offset
    os.utime(path, (stamp, stamp))


class TestPaths:
    """Test collection and entry path helpers."""

    def test_collection_paths(self, manager):
        """Test paths are derived from the collection pattern."""
        assert manager.get_collection_dir("posts") == "posts"
        assert manager.get_collection_dir("pages") == "site/pages"
        assert manager.get_entry_dir("posts", "hello") == "posts/hello"
        assert manager.get_entry_path("posts", "hello") == "posts/hello/index.md"
        assert manager.get_images_dir("pages", "about") == "site/pages/about/images"

    def test_unknown_collection(self, manager):
        """Test unknown collections raise CollectionNotFoundError."""
        with pytest.raises(CollectionNotFoundError, match='Collection "nope" not found'):
            manager.get_collection("nope")

    @pytest.mark.parametrize("slug", ["..", "../x", "a/b", "", "."])
    def test_slug_must_be_single_segment(self, manager, slug):
        """Test slugs can't address other directories."""
        with pytest.raises(PathTraversalError):
            manager.get_entry_path("posts", slug)


class TestEntryLifecycle:
    """Test create, read, update and delete."""

    async def test_posts_scenario(self, manager, content_root):
        """Test create then update of a post with a boolean field."""
        created = await manager.create_entry("posts", {"fields": {"title": "Hello World", "draft": True}, "content": "First"})

        assert created.slug == "hello-world"
        assert created.file_path == "posts/hello-world/index.md"
        assert (content_root / "posts" / "hello-world" / "index.md").is_file()
        assert created.fields["draft"] is True

        before = await manager.get_entry("posts", "hello-world")
        await asyncio.sleep(0.02)

        updated = await manager.update_entry(
            "posts", "hello-world", EntryData(fields={"title": "Hello World", "draft": False}, content="Second")
        )

        assert updated.created_at == before.created_at
        assert updated.updated_at > before.updated_at
        assert updated.fields["draft"] is False
        assert updated.content == "Second"

        reread = await manager.get_entry("posts", "hello-world")
        assert reread.fields == {"title": "Hello World", "draft": False}

    async def test_create_makes_images_dir(self, manager, content_root):
        """Test creating an entry creates its images directory."""
        await manager.create_entry("posts", EntryData(fields={"title": "With Images"}))
        assert (content_root / "posts" / "with-images" / "images").is_dir()

    async def test_create_duplicate_slug(self, manager):
        """Test a second entry with the same slug is rejected."""
        first = await manager.create_entry("posts", EntryData(fields={"title": "Hello World"}))
        assert first.slug == "hello-world"

        with pytest.raises(EntryExistsError, match='Entry "hello-world" already exists in "posts"'):
            await manager.create_entry("posts", EntryData(fields={"title": "Hello World"}))

    async def test_create_requires_slug_field(self, manager):
        """Test an empty or missing slug field is rejected."""
        with pytest.raises(EntryValidationError, match='Slug field "title" is required'):
            await manager.create_entry("posts", EntryData(fields={"body": "x"}))
        with pytest.raises(EntryValidationError):
            await manager.create_entry("posts", EntryData(fields={"title": "   "}))

    async def test_create_rejects_unsluggable_value(self, manager):
        """Test a slug field that slugifies to nothing is rejected."""
        with pytest.raises(EntryValidationError, match="Cannot derive a slug"):
            await manager.create_entry("posts", EntryData(fields={"title": "!!!"}))

    async def test_create_uses_collection_slug_field(self, manager, content_root):
        """Test the slug comes from the configured field and base path."""
        entry = await manager.create_entry("pages", EntryData(fields={"name": "About Us", "title": "ignored"}))
        assert entry.slug == "about-us"
        assert (content_root / "site" / "pages" / "about-us" / "index.md").is_file()

    async def test_create_non_string_slug_value(self, manager):
        """Test non-string slug values are stringified."""
        entry = await manager.create_entry("posts", EntryData(fields={"title": 2024}))
        assert entry.slug == "2024"

    async def test_create_unknown_collection(self, manager):
        """Test creating in an unknown collection fails."""
        with pytest.raises(CollectionNotFoundError):
            await manager.create_entry("nope", EntryData(fields={"title": "x"}))

    async def test_document_format(self, manager, content_root):
        """Test entries are stored as front-matter plus markdown."""
        await manager.create_entry("posts", EntryData(fields={"title": "Doc"}, content="# Heading\n\nBody text"))
        text = (content_root / "posts" / "doc" / "index.md").read_text()

        assert text.startswith("---\n")
        assert "title: Doc" in text
        assert text.endswith("# Heading\n\nBody text\n")

    async def test_get_entry(self, manager, content_root):
        """Test reading an entry written outside the manager."""
        write_entry(content_root, "posts", "manual", {"title": "Manual", "tags": ["a", "b"]}, "Body")

        entry = await manager.get_entry("posts", "manual")

        assert entry.slug == "manual"
        assert entry.collection == "posts"
        assert entry.fields == {"title": "Manual", "tags": ["a", "b"]}
        assert entry.content == "Body"
        assert entry.data == EntryData(fields={"title": "Manual", "tags": ["a", "b"]}, content="Body")

    async def test_get_missing_entry(self, manager):
        """Test a missing entry returns None."""
        assert await manager.get_entry("posts", "missing") is None

    async def test_update_missing_entry(self, manager):
        """Test updating a missing entry fails."""
        with pytest.raises(EntryNotFoundError, match='Entry "missing" not found in "posts"'):
            await manager.update_entry("posts", "missing", EntryData(fields={"title": "x"}))

    async def test_update_keeps_slug(self, manager):
        """Test changing the slug field doesn't move the entry."""
        await manager.create_entry("posts", EntryData(fields={"title": "Original"}))
        updated = await manager.update_entry("posts", "original", EntryData(fields={"title": "Renamed"}))

        assert updated.slug == "original"
        assert updated.fields["title"] == "Renamed"

    async def test_delete_removes_document_and_images(self, manager, content_root):
        """Test deleting an entry removes its whole directory."""
        await manager.create_entry("posts", EntryData(fields={"title": "Gone"}))
        await manager.save_image("posts", "gone", "photo.png", b"\x89PNG")
        await manager.save_image("posts", "gone", "other.jpg", b"\xff\xd8")

        await manager.delete_entry("posts", "gone")

        assert not (content_root / "posts" / "gone").exists()
        assert await manager.get_entry("posts", "gone") is None

    async def test_delete_missing_entry(self, manager):
        """Test deleting a missing entry fails."""
        with pytest.raises(EntryNotFoundError):
            await manager.delete_entry("posts", "missing")

    async def test_delete_directory_without_document(self, manager, content_root):
        """Test a directory with no index.md is reported missing and left in place."""
        write_raw(content_root, "posts/orphan/images/photo.png", "png")

        with pytest.raises(EntryNotFoundError):
            await manager.delete_entry("posts", "orphan")

        assert (content_root / "posts" / "orphan" / "images" / "photo.png").exists()


class TestListEntries:
    """Test listing, search, sorting and pagination."""

    async def test_pagination_total_invariance(self, manager):
        """Test pages cover every entry once and report the same total."""
        for i in range(7):
            await manager.create_entry("posts", EntryData(fields={"title": f"Post {i}"}))

        seen = []
        for page in (1, 2, 3):
            result = await manager.list_entries("posts", EntryListOptions(page=page, limit=3))
            assert result.total == 7
            seen.extend(entry.slug for entry in result.entries)

        assert len(seen) == 7
        assert set(seen) == {f"post-{i}" for i in range(7)}

        beyond = await manager.list_entries("posts", page=4, limit=3)
        assert beyond.entries == []
        assert beyond.total == 7

    async def test_empty_or_missing_collection_dir(self, manager):
        """Test a collection with no directory lists nothing."""
        result = await manager.list_entries("posts")
        assert result.entries == []
        assert result.total == 0

    async def test_skips_invalid_directories(self, manager, content_root, caplog):
        """Test unparseable or empty directories are skipped."""
        write_entry(content_root, "posts", "good", {"title": "Good"})
        write_raw(content_root, "posts/broken/index.md", "---\ntitle: [unclosed\n---\nbody\n")
        (content_root / "posts" / "empty").mkdir()
        write_raw(content_root, "posts/stray.md", "not an entry")

        with caplog.at_level(logging.DEBUG, logger="content_core"):
            result = await manager.list_entries("posts")

        assert [e.slug for e in result.entries] == ["good"]
        assert result.total == 1
        assert "Skipping posts/broken" in caplog.text

    async def test_skips_undecodable_documents(self, manager, content_root):
        """Test an index.md that isn't UTF-8 doesn't abort the listing."""
        write_entry(content_root, "posts", "good", {"title": "Good"})
        bad_dir = content_root / "posts" / "bad"
        bad_dir.mkdir(parents=True)
        (bad_dir / "index.md").write_bytes(b"\xff\xfe")

        result = await manager.list_entries("posts")

        assert [e.slug for e in result.entries] == ["good"]
        assert result.total == 1

    async def test_get_undecodable_document(self, manager, content_root):
        """Test reading a non-UTF-8 document raises EntryParseError."""
        bad_dir = content_root / "posts" / "bad"
        bad_dir.mkdir(parents=True)
        (bad_dir / "index.md").write_bytes(b"---\ntitle: \xff\n---\n")

        with pytest.raises(EntryParseError, match="not valid UTF-8"):
            await manager.get_entry("posts", "bad")

    async def test_skips_directories_that_are_not_slugs(self, manager, content_root, caplog):
        """Test directory names that can't be slugs are skipped, not rejected."""
        write_entry(content_root, "posts", "good", {"title": "Good"})
        write_entry(content_root, "posts", "weird\\name", {"title": "Weird"})

        with caplog.at_level(logging.DEBUG, logger="content_core"):
            result = await manager.list_entries("posts")

        assert [e.slug for e in result.entries] == ["good"]
        assert result.total == 1
        assert "not a valid slug" in caplog.text

        with pytest.raises(PathTraversalError):
            await manager.get_entry("posts", "weird\\name")

    async def test_default_sort_updated_desc(self, manager, content_root):
        """Test the default order is most recently updated first."""
        for offset, slug in enumerate(["old", "middle", "new"]):
            _set_mtime(write_entry(content_root, "posts", slug, {"title": slug}), offset * 10)

        result = await manager.list_entries("posts")
        assert [e.slug for e in result.entries] == ["new", "middle", "old"]

        result = await manager.list_entries("posts", sort_by="updatedAt", sort_order="asc")
        assert [e.slug for e in result.entries] == ["old", "middle", "new"]

    async def test_sort_by_field(self, manager, content_root):
        """Test sorting by a field compares string values."""
        write_entry(content_root, "posts", "b", {"title": "Banana"})
        write_entry(content_root, "posts", "a", {"title": "apple"})
        write_entry(content_root, "posts", "c", {"title": "Cherry"})
        write_entry(content_root, "posts", "d", {"summary": "no title"})

        result = await manager.list_entries("posts", {"sort_by": "summary", "sort_order": "asc"})
        assert result.entries[-1].slug == "d"

        result = await manager.list_entries("posts", sort_by="title", sort_order="desc")
        assert result.entries[-1].slug == "d"

    async def test_sort_is_stable(self, manager, content_root):
        """Test entries with equal keys keep directory order."""
        for slug in ["a", "b", "c"]:
            write_entry(content_root, "posts", slug, {"title": slug, "group": "same"})

        asc = await manager.list_entries("posts", sort_by="group", sort_order="asc")
        desc = await manager.list_entries("posts", sort_by="group", sort_order="desc")

        assert [e.slug for e in asc.entries] == ["a", "b", "c"]
        assert [e.slug for e in desc.entries] == ["a", "b", "c"]

    async def test_search_case_insensitive_across_fields(self, manager, content_root):
        """Test search matches any field value regardless of case."""
        write_entry(content_root, "posts", "one", {"title": "Python Tips", "tags": ["code"]})
        write_entry(content_root, "posts", "two", {"title": "Cooking", "summary": "PYTHON-free recipes"})
        write_entry(content_root, "posts", "three", {"title": "Travel", "year": 2024})

        result = await manager.list_entries("posts", search="python")
        assert {e.slug for e in result.entries} == {"one", "two"}
        assert result.total == 2

        result = await manager.list_entries("posts", search="2024")
        assert [e.slug for e in result.entries] == ["three"]

    async def test_search_ignores_body(self, manager, content_root):
        """Test search looks at fields only."""
        write_entry(content_root, "posts", "one", {"title": "Title"}, "needle in the body")
        result = await manager.list_entries("posts", search="needle")
        assert result.total == 0

    async def test_filters(self, manager):
        """Test filters keep entries whose fields match exactly."""
        await manager.create_entry("posts", EntryData(fields={"title": "Draft", "draft": True}))
        await manager.create_entry("posts", EntryData(fields={"title": "Live", "draft": False}))

        result = await manager.list_entries("posts", filters={"draft": True})
        assert [e.slug for e in result.entries] == ["draft"]

    async def test_storage_errors_propagate(self, collections):
        """Test only parse failures are skipped, not backend errors."""
        storage = AsyncMock(spec=StorageInterface)
        storage.read_directory.return_value = [
            _dir("posts", "a"),
        ]
        storage.read_file.side_effect = RemoteApiError(500, "Server Error")
        manager = ContentManager(storage, collections)

        with pytest.raises(RemoteApiError):
            await manager.list_entries("posts")

    def test_invalid_sort_order(self):
        """Test an unknown sort order is rejected."""
        with pytest.raises(ValueError, match="sort_order"):
            EntryListOptions(sort_order="sideways")

    def test_page_and_limit_clamped(self):
        """Test page and limit never drop below one."""
        options = EntryListOptions(page=-2, limit=0)
        assert options.page == 1
        assert options.limit == 20
        assert EntryListOptions(limit=-5).limit == 1


def _dir(base, name):
    return DirectoryEntry(name=name, is_directory=True, path=f"{base}/{name}")


class TestSaveImage:
    """Test image uploads."""

    async def test_save_image(self, manager, content_root):
        """Test images are stored with a sanitized, timestamped name."""
        await manager.create_entry("posts", EntryData(fields={"title": "Gallery"}))

        path = await manager.save_image("posts", "gallery", "My Photo.PNG", b"\x89PNG")

        assert re.fullmatch(r"images/my-photo-\d{13}\.png", path)
        assert (content_root / "posts" / "gallery" / path).read_bytes() == b"\x89PNG"

    async def test_save_image_strips_directories(self, manager, content_root):
        """Test directory components in the upload name are dropped."""
        path = await manager.save_image("posts", "gallery", "../../evil.png", b"x")
        assert re.fullmatch(r"images/evil-\d{13}\.png", path)
        assert (content_root / "posts" / "gallery" / path).exists()

    async def test_save_image_fallback_name(self, manager):
        """Test names without usable characters fall back to ``image``."""
        path = await manager.save_image("posts", "gallery", "???.jpg", b"x")
        assert re.fullmatch(r"images/image-\d{13}\.jpg", path)


class TestCommitMessages:
    """Test commit messages passed to storage."""

    @pytest.fixture
    def storage(self):
        storage = AsyncMock(spec=StorageInterface)
        storage.exists.return_value = False
        storage.read_file.return_value = None
        return storage

    async def test_default_messages(self, storage, collections):
        """Test default messages follow ``action: collection/slug``."""
        manager = ContentManager(storage, collections)

        entry = await manager.create_entry("posts", EntryData(fields={"title": "Hello World"}))

        storage.write_file.assert_awaited_once()
        path, document, message = storage.write_file.await_args.args
        assert path == "posts/hello-world/index.md"
        assert message == "create: posts/hello-world"
        storage.create_directory.assert_awaited_once_with("posts/hello-world/images")
        assert entry.slug == "hello-world"

        storage.exists.return_value = True
        await manager.delete_entry("posts", "hello-world")
        storage.delete_directory.assert_awaited_once_with("posts/hello-world", "delete: posts/hello-world")

        await manager.save_image("posts", "hello-world", "a.png", b"x")
        assert storage.write_binary_file.await_args.args[2] == "update: posts/hello-world"

    async def test_custom_template_and_explicit_message(self, storage, collections):
        """Test the template is used unless a message is given."""
        manager = ContentManager(storage, collections, commit_message=lambda a, c, s: f"[cms] {a} {c}/{s}")

        await manager.create_entry("posts", EntryData(fields={"title": "One"}))
        assert storage.write_file.await_args.args[2] == "[cms] create posts/one"

        await manager.create_entry("posts", EntryData(fields={"title": "Two"}), message="Custom")
        assert storage.write_file.await_args.args[2] == "Custom"

    async def test_update_message(self, storage, collections):
        """Test updates use the ``update`` action."""
        storage.read_file.return_value = FileContent(
            content="---\ntitle: One\n---\n",
            metadata=_metadata("posts/one/index.md"),
        )
        manager = ContentManager(storage, collections)

        await manager.update_entry("posts", "one", EntryData(fields={"title": "One"}))

        assert storage.write_file.await_args.args[2] == "update: posts/one"


def _metadata(path):
    now = datetime.now(timezone.utc)
    return FileMetadata(path=path, updated_at=now, created_at=now)


class TestAutoCommit:
    """Test the git hook after successful writes."""

    async def test_auto_commit_called_with_paths(self, local_storage, collections):
        """Test each mutation reports its action and paths."""
        git = AsyncMock()
        git.auto_commit.return_value = CommitResult(success=True, commit_id="abc")
        manager = ContentManager(local_storage, collections, git_manager=git)

        await manager.create_entry("posts", EntryData(fields={"title": "Hi"}))
        git.auto_commit.assert_awaited_with("create", "posts", "hi", ["posts/hi"])

        await manager.update_entry("posts", "hi", EntryData(fields={"title": "Hi"}))
        git.auto_commit.assert_awaited_with("update", "posts", "hi", ["posts/hi/index.md"])

        await manager.delete_entry("posts", "hi")
        git.auto_commit.assert_awaited_with("delete", "posts", "hi", ["posts/hi"])

    async def test_failed_commit_does_not_fail_write(self, local_storage, collections, caplog):
        """Test a versioning failure is logged and the content stays written."""
        git = AsyncMock()
        git.auto_commit.return_value = CommitResult(success=False, error=VersioningFailure("commit", "boom"))
        manager = ContentManager(local_storage, collections, git_manager=git)

        with caplog.at_level(logging.WARNING, logger="content_core"):
            entry = await manager.create_entry("posts", EntryData(fields={"title": "Kept"}))

        assert entry.slug == "kept"
        assert await manager.get_entry("posts", "kept") is not None
        assert "auto-commit failed" in caplog.text

    async def test_no_commit_on_failed_write(self, collections, local_storage):
        """Test nothing is committed when the write itself fails."""
        git = AsyncMock()
        manager = ContentManager(local_storage, collections, git_manager=git)
        await manager.create_entry("posts", EntryData(fields={"title": "Once"}))
        git.auto_commit.reset_mock()

        with pytest.raises(EntryExistsError):
            await manager.create_entry("posts", EntryData(fields={"title": "Once"}))
        git.auto_commit.assert_not_awaited()


class TestFromConfig:
    """Test building a manager from configuration."""

    def test_local_with_auto_commit(self, temp_dir):
        """Test local storage with auto-commit gets a git manager."""
        config = define_config(
            storage=LocalStorageConfig(),
            collections={"posts": {"path": "posts/*", "slug_field": "title"}},
            git={"auto_commit": True},
        )

        manager = ContentManager.from_config(config, temp_dir)

        assert isinstance(manager.git_manager, GitManager)
        assert manager.git_manager.root_dir == (temp_dir / "content").resolve()
        assert manager.get_collection("posts").label == "Posts"

    def test_local_without_git(self, temp_dir):
        """Test no git manager is attached by default."""
        config = define_config(collections={"posts": CollectionConfig("Posts", "posts/*", "title")})
        manager = ContentManager.from_config(config, temp_dir)
        assert manager.git_manager is None

    def test_custom_commit_template(self, temp_dir):
        """Test the configured template becomes the default message."""
        template = lambda a, c, s: f"{c}:{s}:{a}"
        config = define_config(git={"commit_message": template})
        manager = ContentManager.from_config(config, temp_dir)
        assert manager.commit_message is template

    async def test_yaml_commit_template(self, temp_dir):
        """Test a commit message string from YAML drives entry writes."""
        path = temp_dir / "content.yaml"
        path.write_text(
            "git:\n"
            "  commit_message: 'content {action}'\n"
            "collections:\n"
            "  posts:\n"
            "    path: posts/*\n"
            "    slug_field: title\n"
        )
        manager = ContentManager.from_config(load_config(path), temp_dir)

        entry = await manager.create_entry("posts", EntryData(fields={"title": "Hello"}))

        assert entry.slug == "hello"
        assert manager.commit_message("create", "posts", "hello") == "content create"
