"""
Configuration for content-core.

Configuration can be built in code with ``define_config`` or loaded from a
YAML document with ``load_config``:

    storage:
      kind: github            # or "local"
      owner: acme
      repo: website
      branch: main
      content_path: content
    git:
      auto_commit: true
    collections:
      posts:
        label: Posts
        path: posts/*
        slug_field: title
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Union

import yaml

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_PATH = "content"

CommitMessageTemplate = Callable[[str, str, str], str]


def default_commit_message(action: str, collection: str, slug: str) -> str:
    """Default commit message: ``"{action}: {collection}/{slug}"``."""
    return f"{action}: {collection}/{slug}"


def commit_message_template(value: Union[str, CommitMessageTemplate, None]) -> CommitMessageTemplate:
    """
    Turn a configured commit message into a callable.

    A string is treated as a ``str.format`` template with the ``action``,
    ``collection`` and ``slug`` placeholders, e.g. ``"content {action}"``.

    Raises:
        ConfigurationError: If the value is neither a string nor callable, or
            the template uses an unknown placeholder
    """
    if value is None or value == "":
        return default_commit_message
    if callable(value):
        return value
    if not isinstance(value, str):
        raise ConfigurationError(f"commit_message must be a string or callable, got {type(value).__name__}")

    try:
        value.format(action="create", collection="posts", slug="example")
    except (KeyError, IndexError, ValueError) as e:
        raise ConfigurationError(f"Invalid commit_message template {value!r}: {e}") from e

    def render(action: str, collection: str, slug: str) -> str:
        return value.format(action=action, collection=collection, slug=slug)

    return render


@dataclass
class LocalStorageConfig:
    """Local filesystem backend settings."""

    content_path: str = DEFAULT_CONTENT_PATH
    kind: str = field(default="local", init=False)


@dataclass
class GitHubStorageConfig:
    """GitHub backend settings."""

    owner: str
    repo: str
    content_path: str = DEFAULT_CONTENT_PATH
    branch: str = "main"
    token: Optional[str] = None
    token_provider: Optional[Callable[[], Any]] = None
    api_url: str = "https://api.github.com"
    kind: str = field(default="github", init=False)

    def __post_init__(self):
        if not self.token and self.token_provider is None:
            self.token = os.getenv("GITHUB_TOKEN")


StorageConfig = Union[LocalStorageConfig, GitHubStorageConfig]


@dataclass
class GitConfig:
    """Git integration settings (local backend only)."""

    auto_commit: bool = False
    commit_message: CommitMessageTemplate = default_commit_message
    author_name: Optional[str] = None
    author_email: Optional[str] = None

    def __post_init__(self):
        self.commit_message = commit_message_template(self.commit_message)


@dataclass
class CollectionConfig:
    """
    A collection of entries.

    ``path`` is a pattern such as ``posts/*``; entries live in
    ``{base}/{slug}/index.md``. ``schema`` is opaque to this package and is
    validated by the caller.
    """

    label: str
    path: str
    slug_field: str
    schema: Dict[str, Any] = field(default_factory=dict)
    description: str = ""

    @property
    def base_path(self) -> str:
        """Path pattern without the trailing ``/*``."""
        path = self.path.strip()
        if path.endswith("*"):
            path = path[:-1]
        return path.rstrip("/")


@dataclass
class ContentConfig:
    """Top-level configuration."""

    storage: StorageConfig = field(default_factory=LocalStorageConfig)
    collections: Dict[str, CollectionConfig] = field(default_factory=dict)
    git: Optional[GitConfig] = None


def define_config(
    storage: Optional[StorageConfig] = None,
    collections: Optional[Mapping[str, Union[CollectionConfig, Mapping[str, Any]]]] = None,
    git: Optional[Union[GitConfig, Mapping[str, Any]]] = None,
) -> ContentConfig:
    """
    Build a ``ContentConfig`` with defaults applied.

    Collections and git settings may be given as plain mappings.
    """
    if storage is None:
        storage = LocalStorageConfig()
    if not storage.content_path:
        storage.content_path = DEFAULT_CONTENT_PATH

    parsed_collections: Dict[str, CollectionConfig] = {}
    for name, collection in (collections or {}).items():
        if isinstance(collection, CollectionConfig):
            parsed_collections[name] = collection
        else:
            parsed_collections[name] = _parse_collection(name, collection)

    if git is not None and not isinstance(git, GitConfig):
        git = _parse_git(git)

    return ContentConfig(storage=storage, collections=parsed_collections, git=git)


def _parse_collection(name: str, raw: Mapping[str, Any]) -> CollectionConfig:
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"Collection '{name}' must be a mapping")
    missing = [key for key in ("path", "slug_field") if not raw.get(key)]
    if missing:
        raise ConfigurationError(f"Collection '{name}' is missing: {', '.join(missing)}")
    return CollectionConfig(
        label=raw.get("label", name.replace("_", " ").title()),
        path=raw["path"],
        slug_field=raw["slug_field"],
        schema=dict(raw.get("schema") or {}),
        description=raw.get("description", ""),
    )


def _parse_git(raw: Mapping[str, Any]) -> GitConfig:
    if not isinstance(raw, Mapping):
        raise ConfigurationError("git settings must be a mapping")
    return GitConfig(
        auto_commit=bool(raw.get("auto_commit", False)),
        commit_message=raw.get("commit_message"),
        author_name=raw.get("author_name"),
        author_email=raw.get("author_email"),
    )


def _parse_storage(raw: Mapping[str, Any]) -> StorageConfig:
    if not isinstance(raw, Mapping):
        raise ConfigurationError("storage settings must be a mapping")

    kind = raw.get("kind", "local")
    content_path = raw.get("content_path") or DEFAULT_CONTENT_PATH

    if kind == "local":
        return LocalStorageConfig(content_path=content_path)
    if kind == "github":
        missing = [key for key in ("owner", "repo") if not raw.get(key)]
        if missing:
            raise ConfigurationError(f"GitHub storage is missing: {', '.join(missing)}")
        return GitHubStorageConfig(
            owner=raw["owner"],
            repo=raw["repo"],
            content_path=content_path,
            branch=raw.get("branch", "main"),
            token=raw.get("token"),
            api_url=raw.get("api_url", "https://api.github.com"),
        )
    raise ConfigurationError(f"Unknown storage kind: {kind}")


def load_config(config_path: Union[str, Path]) -> ContentConfig:
    """
    Load configuration from a YAML file.

    Raises:
        ConfigurationError: If the file is missing or invalid
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        logger.error(f"Invalid YAML in {config_path}: {e}")
        raise ConfigurationError(f"Invalid configuration: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigurationError(f"Configuration must be a mapping: {config_path}")

    config = define_config(
        storage=_parse_storage(raw.get("storage") or {}),
        collections=raw.get("collections") or {},
        git=raw.get("git"),
    )
    logger.info(f"Loaded configuration from {config_path} ({len(config.collections)} collections)")
    return config
