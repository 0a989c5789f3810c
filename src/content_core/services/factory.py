"""
Storage backend factory.
"""

import logging
from pathlib import Path
from typing import Optional, Union

import httpx

from ..config import GitHubStorageConfig, LocalStorageConfig, StorageConfig
from ..exceptions import ConfigurationError
from .github_storage import GitHubStorage
from .local_storage import LocalStorage
from .storage_abstraction import StorageInterface

logger = logging.getLogger(__name__)


def create_storage(
    config: StorageConfig,
    root_dir: Union[str, Path] = ".",
    client: Optional[httpx.AsyncClient] = None,
) -> StorageInterface:
    """
    Create a storage backend from configuration.

    Args:
        config: Storage configuration
        root_dir: Project root for the local backend
        client: Optional HTTP client for the GitHub backend

    Raises:
        ConfigurationError: If the storage kind is unknown
    """
    if isinstance(config, LocalStorageConfig):
        logger.debug(f"Using local storage at {root_dir}/{config.content_path}")
        return LocalStorage(root_dir, config.content_path)

    if isinstance(config, GitHubStorageConfig):
        logger.debug(f"Using GitHub storage {config.owner}/{config.repo}@{config.branch}")
        return GitHubStorage(
            config.owner,
            config.repo,
            token=config.token,
            token_provider=config.token_provider,
            branch=config.branch,
            content_path=config.content_path,
            api_url=config.api_url,
            client=client,
        )

    raise ConfigurationError(f"Unknown storage adapter kind: {getattr(config, 'kind', type(config).__name__)}")
