"""
Shared test configuration and fixtures for content-core library.
"""

import pytest
import tempfile
import shutil
from pathlib import Path
from typing import Dict

from content_core import CollectionConfig, ContentManager
from content_core.services import GitHubStorage, LocalStorage
from tests.utils.fake_github import FakeGitHub


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    shutil.rmtree(temp_path)


@pytest.fixture
def collections() -> Dict[str, CollectionConfig]:
    """Collection registry used across manager tests."""
    return {
        "posts": CollectionConfig(label="Posts", path="posts/*", slug_field="title"),
        "pages": CollectionConfig(label="Pages", path="site/pages/*", slug_field="name"),
    }


@pytest.fixture
def content_root(temp_dir):
    """Content directory inside the temporary project root."""
    return temp_dir / "content"


@pytest.fixture
def local_storage(temp_dir):
    """Local storage rooted at ``<temp_dir>/content``."""
    return LocalStorage(temp_dir, "content")


@pytest.fixture
def manager(local_storage, collections):
    """ContentManager over local storage, without git."""
    return ContentManager(local_storage, collections)


@pytest.fixture
def fake_github():
    """Empty in-memory GitHub repository."""
    return FakeGitHub()


@pytest.fixture
async def github_storage(fake_github):
    """GitHub storage talking to the in-memory repository."""
    client = fake_github.client()
    storage = GitHubStorage(
        fake_github.owner,
        fake_github.repo,
        token="test-token",
        branch=fake_github.branch,
        content_path="content",
        client=client,
    )
    yield storage
    await client.aclose()


@pytest.fixture
def github_manager(github_storage, collections):
    """ContentManager over GitHub storage."""
    return ContentManager(github_storage, collections)
