"""
Git integration for the local storage backend.

Every operation returns a result object instead of raising. Content that
has been written stays written even when committing, pulling or pushing
fails; callers inspect ``result.success`` to learn about version history.
"""

import asyncio
import logging
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Union

from ..config import GitConfig, default_commit_message

logger = logging.getLogger(__name__)

# Field/record separators for ``git log`` parsing
_FIELD_SEP = "\x1f"
_RECORD_SEP = "\x1e"


@dataclass(frozen=True)
class VersioningFailure:
    """A failed git operation, carried as a value."""

    operation: str
    message: str

    def __str__(self) -> str:
        return f"git {self.operation} failed: {self.message}"


@dataclass
class GitResult:
    """Outcome of a git operation."""

    success: bool
    error: Optional[VersioningFailure] = None
    output: str = ""


@dataclass
class CommitResult(GitResult):
    """Outcome of a commit; ``commit_id`` is None when nothing was committed."""

    commit_id: Optional[str] = None


@dataclass
class StatusResult(GitResult):
    """Working tree status."""

    branch: Optional[str] = None
    staged: List[str] = field(default_factory=list)
    modified: List[str] = field(default_factory=list)
    untracked: List[str] = field(default_factory=list)


@dataclass
class CommitInfo:
    """One commit from the log."""

    commit_id: str
    author: str
    date: str
    message: str


@dataclass
class LogResult(GitResult):
    """Recent commits, newest first."""

    commits: List[CommitInfo] = field(default_factory=list)


class GitManager:
    """
    Runs git commands against a working tree.

    ``root_dir`` may be the repository root or any directory inside it;
    paths passed to ``add`` and ``auto_commit`` are relative to it.
    """

    def __init__(self, root_dir: Union[str, Path], config: Optional[GitConfig] = None, timeout: float = 30.0):
        """
        Initialize the GitManager.

        Args:
            root_dir: Directory git commands run in
            config: Git settings (auto-commit, message template, author)
            timeout: Per-command timeout in seconds
        """
        self.root_dir = Path(root_dir)
        self.config = config or GitConfig()
        self.timeout = timeout

    def _identity_args(self) -> List[str]:
        args: List[str] = []
        if self.config.author_name:
            args += ["-c", f"user.name={self.config.author_name}"]
        if self.config.author_email:
            args += ["-c", f"user.email={self.config.author_email}"]
        return args

    async def _run(self, operation: str, *args: str) -> GitResult:
        """Run ``git <args>`` in a worker thread and wrap the outcome."""
        if shutil.which("git") is None:
            return GitResult(success=False, error=VersioningFailure(operation, "git executable not found"))

        command = ["git", *self._identity_args(), "-C", str(self.root_dir), *args]
        try:
            proc = await asyncio.to_thread(
                subprocess.run,
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                check=False,
                timeout=self.timeout,
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.error(f"git {operation} could not run: {e}")
            return GitResult(success=False, error=VersioningFailure(operation, str(e)))

        if proc.returncode != 0:
            message = (proc.stderr or proc.stdout).strip() or f"exit status {proc.returncode}"
            logger.warning(f"git {operation} failed: {message}")
            return GitResult(success=False, error=VersioningFailure(operation, message), output=proc.stdout)

        return GitResult(success=True, output=proc.stdout)

    async def is_repo(self) -> bool:
        """Check if ``root_dir`` is inside a git work tree."""
        result = await self._run("rev-parse", "rev-parse", "--is-inside-work-tree")
        return result.success and result.output.strip() == "true"

    async def init(self) -> GitResult:
        """Initialize a repository unless one already exists."""
        if await self.is_repo():
            return GitResult(success=True)
        self.root_dir.mkdir(parents=True, exist_ok=True)
        return await self._run("init", "init")

    async def add(self, paths: Union[str, Sequence[str]]) -> GitResult:
        """Stage paths, including deletions."""
        if isinstance(paths, str):
            paths = [paths]
        return await self._run("add", "add", "-A", "--", *paths)

    async def commit(self, message: str) -> CommitResult:
        """Commit staged changes."""
        result = await self._run("commit", "commit", "-m", message)
        if not result.success:
            return CommitResult(success=False, error=result.error, output=result.output)

        head = await self._run("rev-parse", "rev-parse", "HEAD")
        commit_id = head.output.strip() if head.success else None
        logger.info(f"Committed {commit_id}: {message}")
        return CommitResult(success=True, output=result.output, commit_id=commit_id)

    async def _has_staged_changes(self) -> GitResult:
        return await self._run("diff", "diff", "--cached", "--name-only")

    async def auto_commit(
        self,
        action: str,
        collection: str,
        slug: str,
        paths: Sequence[str],
    ) -> CommitResult:
        """
        Stage ``paths`` and commit them when auto-commit is enabled.

        Nothing staged (unchanged content) is a successful no-op.
        """
        if not self.config.auto_commit:
            return CommitResult(success=True)

        added = await self.add(list(paths))
        if not added.success:
            return CommitResult(success=False, error=added.error)

        staged = await self._has_staged_changes()
        if not staged.success:
            return CommitResult(success=False, error=staged.error)
        if not staged.output.strip():
            logger.debug(f"Nothing to commit for {action}: {collection}/{slug}")
            return CommitResult(success=True)

        template = self.config.commit_message or default_commit_message
        try:
            message = template(action, collection, slug)
        except Exception as e:
            logger.error(f"Commit message template failed: {e}")
            return CommitResult(success=False, error=VersioningFailure("commit", f"message template failed: {e}"))

        return await self.commit(message)

    async def status(self) -> StatusResult:
        """Get the working tree status."""
        result = await self._run("status", "status", "--porcelain=v1", "--branch")
        if not result.success:
            return StatusResult(success=False, error=result.error)

        status = StatusResult(success=True, output=result.output)
        for line in result.output.splitlines():
            if line.startswith("## "):
                status.branch = line[3:].split("...")[0].strip()
                continue
            if len(line) < 4:
                continue
            index_state, worktree_state, path = line[0], line[1], line[3:]
            if index_state == "?" and worktree_state == "?":
                status.untracked.append(path)
                continue
            if index_state not in (" ", "?"):
                status.staged.append(path)
            if worktree_state not in (" ", "?"):
                status.modified.append(path)
        return status

    async def log(self, max_count: int = 10) -> LogResult:
        """Get recent commits."""
        fmt = _FIELD_SEP.join(["%H", "%an", "%aI", "%s"]) + _RECORD_SEP
        result = await self._run("log", "log", f"--max-count={max_count}", f"--pretty=format:{fmt}")
        if not result.success:
            return LogResult(success=False, error=result.error)

        commits = []
        for record in result.output.split(_RECORD_SEP):
            parts = record.strip("\n").split(_FIELD_SEP)
            if len(parts) == 4:
                commits.append(CommitInfo(commit_id=parts[0], author=parts[1], date=parts[2], message=parts[3]))
        return LogResult(success=True, output=result.output, commits=commits)

    async def pull(self) -> GitResult:
        """Pull changes from the remote."""
        return await self._run("pull", "pull")

    async def push(self) -> GitResult:
        """Push changes to the remote."""
        return await self._run("push", "push")
