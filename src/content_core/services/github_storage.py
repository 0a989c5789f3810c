"""
GitHub API storage backend.

Uses two tiers of the GitHub REST API:

- Contents API for single-file reads, writes and deletes. Updates and
  deletes send the file's current blob SHA as a precondition.
- Git Data API (refs, commits, trees, blobs) for batch writes. A new tree
  and commit are built on top of the branch head and the ref is moved once,
  fast-forward only, so readers never see a partially applied batch.
"""

import base64
import inspect
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union
from urllib.parse import quote

import httpx

from ..exceptions import ConfigurationError, RemoteApiError, StaleWriteError
from ..logging import timed_operation
from ..security import normalize_relative_path
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

DEFAULT_API_URL = "https://api.github.com"
API_VERSION = "2022-11-28"
BLOB_MODE = "100644"

TokenProvider = Callable[[], Union[str, Awaitable[str]]]


class GitHubStorage(StorageInterface):
    """
    GitHub repository storage implementation.

    The SHA cache is scoped to the instance and keyed by content-relative
    path. It is filled on read, refreshed after every write and invalidated
    after deletes, batch commits and stale-write rejections.
    """

    atomic_batches = True

    def __init__(
        self,
        owner: str,
        repo: str,
        *,
        token: Optional[str] = None,
        token_provider: Optional[TokenProvider] = None,
        branch: str = "main",
        content_path: str = "",
        api_url: str = DEFAULT_API_URL,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        rate_limit_threshold: int = 10,
    ):
        """
        Initialize GitHub storage.

        Args:
            owner: Repository owner
            repo: Repository name
            token: Personal access token
            token_provider: Callable returning a token (sync or async),
                           takes precedence over ``token``
            branch: Branch to read from and commit to
            content_path: Content directory inside the repository
            api_url: GitHub API base URL
            client: Optional pre-configured ``httpx.AsyncClient``
            timeout: Request timeout in seconds for the owned client
            rate_limit_threshold: Warn when fewer requests remain

        Raises:
            ConfigurationError: If neither token nor token_provider is given
        """
        if not token and token_provider is None:
            raise ConfigurationError(
                "GitHub storage requires either a token or token_provider. "
                "Set storage.token or the GITHUB_TOKEN environment variable."
            )

        self.owner = owner
        self.repo = repo
        self.branch = branch
        self.content_path = normalize_relative_path(content_path)
        self.base_url = f"{api_url.rstrip('/')}/repos/{owner}/{repo}"
        self.timeout = timeout
        self.rate_limit_threshold = rate_limit_threshold

        self._token = token
        self._token_provider = token_provider
        self._client = client
        self._owns_client = client is None
        self._sha_cache: Dict[str, str] = {}

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------
    # Request helpers
    # ------------------------------------------

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def _auth_headers(self) -> Dict[str, str]:
        token = self._token
        if self._token_provider is not None:
            token = self._token_provider()
            if inspect.isawaitable(token):
                token = await token
        return {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": API_VERSION,
        }

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Make a GitHub API request and return the decoded JSON body.

        Raises:
            StaleWriteError: On SHA precondition or fast-forward failures
            RemoteApiError: On any other non-success response or transport error
        """
        url = endpoint if endpoint.startswith("http") else f"{self.base_url}{endpoint}"
        headers = await self._auth_headers()

        try:
            response = await self._get_client().request(method, url, headers=headers, json=json, params=params)
        except httpx.RequestError as e:
            logger.error(f"GitHub connection error for {method} {url}: {e}")
            raise RemoteApiError(0, str(e), url) from e

        remaining = response.headers.get("X-RateLimit-Remaining")
        if remaining is not None and remaining.isdigit() and int(remaining) < self.rate_limit_threshold:
            logger.warning(f"GitHub API rate limit low: {remaining} requests remaining")

        if not response.is_success:
            message = self._error_message(response)
            status_code = response.status_code
            lowered = message.lower()
            if status_code == 409 or (status_code == 422 and ("sha" in lowered or "fast forward" in lowered)):
                raise StaleWriteError(status_code, message, url)
            raise RemoteApiError(status_code, message, url)

        if not response.content:
            return None
        return response.json()

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            payload = response.json()
        except ValueError:
            return response.reason_phrase or response.text
        if isinstance(payload, dict) and payload.get("message"):
            return str(payload["message"])
        return response.reason_phrase or response.text

    # ------------------------------------------
    # Path translation
    # ------------------------------------------

    def _to_remote(self, relative_path: str) -> str:
        normalized = normalize_relative_path(relative_path)
        if not self.content_path:
            return normalized
        if not normalized:
            return self.content_path
        return f"{self.content_path}/{normalized}"

    def _to_relative(self, remote_path: str) -> str:
        if not self.content_path:
            return remote_path
        if remote_path == self.content_path:
            return ""
        prefix = self.content_path + "/"
        if remote_path.startswith(prefix):
            return remote_path[len(prefix):]
        return remote_path

    @staticmethod
    def _contents_endpoint(remote_path: str) -> str:
        return f"/contents/{quote(remote_path)}"

    # ------------------------------------------
    # Contents API tier
    # ------------------------------------------

    async def _get_contents(self, remote_path: str) -> Any:
        """Fetch a contents item (dict) or listing (list); None when absent."""
        try:
            return await self._request("GET", self._contents_endpoint(remote_path), params={"ref": self.branch})
        except RemoteApiError as e:
            if e.status_code == 404:
                return None
            raise

    async def _read_blob(self, relative_path: str) -> Optional[Tuple[bytes, FileMetadata]]:
        remote_path = self._to_remote(relative_path)
        item = await self._get_contents(remote_path)
        if not isinstance(item, dict) or item.get("type") != "file":
            return None

        if item.get("encoding") == "base64" and item.get("content") is not None:
            data = base64.b64decode(item["content"])
        else:
            # Files over 1 MB come back without inline content
            blob = await self._request("GET", f"/git/blobs/{item['sha']}")
            data = base64.b64decode(blob["content"])

        relative = normalize_relative_path(relative_path)
        self._sha_cache[relative] = item["sha"]

        # The contents API carries no timestamps
        now = datetime.now(timezone.utc)
        metadata = FileMetadata(
            path=self._to_relative(item.get("path", remote_path)),
            size=item.get("size"),
            content_hash=item["sha"],
            updated_at=now,
            created_at=now,
        )
        return data, metadata

    async def _lookup_sha(self, relative_path: str) -> Optional[str]:
        relative = normalize_relative_path(relative_path)
        cached = self._sha_cache.get(relative)
        if cached:
            return cached

        item = await self._get_contents(self._to_remote(relative))
        if not isinstance(item, dict) or not item.get("sha"):
            return None
        self._sha_cache[relative] = item["sha"]
        return item["sha"]

    async def _put_contents(
        self,
        relative_path: str,
        data: bytes,
        message: str,
        expected_hash: Optional[str] = None,
    ) -> WriteResult:
        relative = normalize_relative_path(relative_path)
        remote_path = self._to_remote(relative)
        sha = expected_hash or await self._lookup_sha(relative)

        body: Dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(data).decode("ascii"),
            "branch": self.branch,
        }
        if sha:
            body["sha"] = sha

        try:
            result = await self._request("PUT", self._contents_endpoint(remote_path), json=body)
        except StaleWriteError:
            self._sha_cache.pop(relative, None)
            raise

        new_sha = result["content"]["sha"]
        self._sha_cache[relative] = new_sha
        logger.debug(f"Committed {remote_path} to {self.owner}/{self.repo}@{self.branch}")
        return WriteResult(path=relative, content_hash=new_sha, commit_id=result["commit"]["sha"])

    async def _delete_contents(self, relative_path: str, message: str, expected_hash: Optional[str] = None) -> None:
        relative = normalize_relative_path(relative_path)
        remote_path = self._to_remote(relative)
        sha = expected_hash or await self._lookup_sha(relative)
        if not sha:
            return

        try:
            await self._request(
                "DELETE",
                self._contents_endpoint(remote_path),
                json={"message": message, "sha": sha, "branch": self.branch},
            )
        finally:
            self._sha_cache.pop(relative, None)

    async def exists(self, path: str) -> bool:
        """Check if a file or directory exists in the repository"""
        return await self._get_contents(self._to_remote(path)) is not None

    async def read_directory(self, path: str) -> List[DirectoryEntry]:
        """List a repository directory"""
        items = await self._get_contents(self._to_remote(path))
        if not isinstance(items, list):
            return []
        return [
            DirectoryEntry(
                name=item["name"],
                is_directory=item.get("type") == "dir",
                path=self._to_relative(item["path"]),
            )
            for item in items
        ]

    async def read_file(self, path: str) -> Optional[FileContent]:
        """Read a text file from the repository"""
        blob = await self._read_blob(path)
        if blob is None:
            return None
        data, metadata = blob
        return FileContent(content=data.decode("utf-8"), metadata=metadata)

    async def read_binary_file(self, path: str) -> Optional[BinaryFileContent]:
        """Read a binary file from the repository"""
        blob = await self._read_blob(path)
        if blob is None:
            return None
        data, metadata = blob
        return BinaryFileContent(data=data, metadata=metadata)

    async def write_file(self, path: str, content: str, message: Optional[str] = None) -> WriteResult:
        """Create or update a text file with one commit"""
        relative = normalize_relative_path(path)
        return await self._put_contents(relative, content.encode("utf-8"), message or f"Update {relative}")

    async def write_binary_file(self, path: str, data: bytes, message: Optional[str] = None) -> WriteResult:
        """Create or update a binary file with one commit"""
        relative = normalize_relative_path(path)
        return await self._put_contents(relative, data, message or f"Upload {relative}")

    async def delete_file(self, path: str, message: Optional[str] = None) -> None:
        """Delete a file with one commit; missing files are ignored"""
        relative = normalize_relative_path(path)
        await self._delete_contents(relative, message or f"Delete {relative}")

    async def create_directory(self, path: str) -> None:
        """No-op: git has no empty directories"""
        normalize_relative_path(path)

    # ------------------------------------------
    # Git Data API tier
    # ------------------------------------------

    async def _head(self) -> Tuple[str, str]:
        """Return (commit_sha, tree_sha) for the branch head."""
        ref = await self._request("GET", f"/git/ref/heads/{self.branch}")
        commit_sha = ref["object"]["sha"]
        commit = await self._request("GET", f"/git/commits/{commit_sha}")
        return commit_sha, commit["tree"]["sha"]

    async def _list_tree(self, tree_sha: str) -> Tuple[Dict[str, str], bool]:
        """Return ({remote_path: blob_sha}, truncated) for a recursive tree."""
        tree = await self._request("GET", f"/git/trees/{tree_sha}", params={"recursive": "1"})
        blobs = {item["path"]: item["sha"] for item in tree.get("tree", []) if item.get("type") == "blob"}
        return blobs, bool(tree.get("truncated"))

    async def _commit_changes(
        self,
        base_commit: str,
        base_tree: str,
        operations: List[BatchWriteOperation],
        message: str,
    ) -> List[WriteResult]:
        """Build one commit from ``operations`` and fast-forward the branch to it."""
        remote_paths = [self._to_remote(op.path) for op in operations]

        if any(op.expected_hash for op in operations):
            current, _ = await self._list_tree(base_tree)
            for op, remote_path in zip(operations, remote_paths):
                if op.expected_hash and current.get(remote_path) != op.expected_hash:
                    self._sha_cache.pop(normalize_relative_path(op.path), None)
                    raise StaleWriteError(
                        409,
                        f"{op.path} is at {current.get(remote_path)} but expected {op.expected_hash}",
                    )

        tree_entries: List[Dict[str, Any]] = []
        for op, remote_path in zip(operations, remote_paths):
            entry: Dict[str, Any] = {"path": remote_path, "mode": BLOB_MODE, "type": "blob"}
            if op.type is OperationType.DELETE:
                entry["sha"] = None
            elif op.is_binary_encoded:
                blob = await self._request("POST", "/git/blobs", json={"content": op.content, "encoding": "base64"})
                entry["sha"] = blob["sha"]
            else:
                entry["content"] = op.content
            tree_entries.append(entry)

        new_tree = await self._request("POST", "/git/trees", json={"base_tree": base_tree, "tree": tree_entries})
        new_commit = await self._request(
            "POST",
            "/git/commits",
            json={"message": message, "tree": new_tree["sha"], "parents": [base_commit]},
        )
        try:
            await self._request(
                "PATCH",
                f"/git/refs/heads/{self.branch}",
                json={"sha": new_commit["sha"], "force": False},
            )
        finally:
            for op in operations:
                self._sha_cache.pop(normalize_relative_path(op.path), None)

        logger.info(
            f"Committed {len(operations)} changes to {self.owner}/{self.repo}@{self.branch}: {new_commit['sha']}"
        )
        return [
            WriteResult(path=normalize_relative_path(op.path), commit_id=new_commit["sha"])
            for op in operations
        ]

    async def _single_operation(self, op: BatchWriteOperation, message: str) -> List[WriteResult]:
        if op.type is OperationType.DELETE:
            await self._delete_contents(op.path, message, op.expected_hash)
            return [WriteResult(path=normalize_relative_path(op.path))]
        if op.is_binary_encoded:
            data = base64.b64decode(op.content)
        else:
            data = op.content.encode("utf-8")
        return [await self._put_contents(op.path, data, message, op.expected_hash)]

    @timed_operation("github.batch_write")
    async def batch_write(self, operations: List[BatchWriteOperation], message: str) -> List[WriteResult]:
        """Apply all operations as a single commit"""
        if not operations:
            return []

        # Reject bad paths before any request goes out
        for op in operations:
            self._to_remote(op.path)

        if len(operations) == 1:
            return await self._single_operation(operations[0], message)

        base_commit, base_tree = await self._head()
        return await self._commit_changes(base_commit, base_tree, operations, message)

    async def _walk_files(self, relative_path: str) -> List[str]:
        files: List[str] = []
        for item in await self.read_directory(relative_path):
            if item.is_directory:
                files.extend(await self._walk_files(item.path))
            else:
                files.append(item.path)
        return files

    async def delete_directory(self, path: str, message: Optional[str] = None) -> None:
        """
        Delete every file below ``path`` in one commit.

        Files are enumerated from the same head commit the deletion commit is
        built on. If the branch moves in between, the fast-forward ref update
        is rejected with ``StaleWriteError`` rather than leaving new files
        behind.
        """
        relative = normalize_relative_path(path)
        if not relative:
            raise ValueError("Refusing to delete the content root")

        base_commit, base_tree = await self._head()
        blobs, truncated = await self._list_tree(base_tree)

        if truncated:
            logger.warning(f"Tree listing truncated; enumerating {relative} through the contents API")
            files = await self._walk_files(relative)
        else:
            prefix = self._to_remote(relative) + "/"
            files = sorted(self._to_relative(p) for p in blobs if p.startswith(prefix))

        if not files:
            logger.debug(f"Nothing to delete under {relative}")
            return

        operations = [BatchWriteOperation(type=OperationType.DELETE, path=f) for f in files]
        await self._commit_changes(base_commit, base_tree, operations, message or f"Delete {relative}")
