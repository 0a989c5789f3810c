"""
Path and filename safety helpers.

Every storage path is relative to a content root. These helpers normalise
such paths and refuse anything that would resolve outside the root.
"""

import posixpath
from pathlib import Path
from typing import Union

from slugify import slugify

from .exceptions import PathTraversalError


def normalize_relative_path(relative_path: str) -> str:
    """
    Normalise a content-root-relative path to POSIX form.

    Leading and trailing slashes are dropped and ``.``/``..`` segments are
    collapsed. The root itself normalises to ``""``.

    Raises:
        PathTraversalError: If the path climbs above the content root
    """
    cleaned = relative_path.replace("\\", "/").strip().strip("/")
    if not cleaned:
        return ""

    normalized = posixpath.normpath(cleaned)
    if normalized == ".." or normalized.startswith("../"):
        raise PathTraversalError(relative_path)
    if normalized == ".":
        return ""
    return normalized


def resolve_within(root: Path, relative_path: str) -> Path:
    """
    Resolve a relative path against ``root``, rejecting escapes.

    Symlinks are resolved too, so a link pointing outside the root is
    rejected as well.

    Args:
        root: Absolute, resolved content root
        relative_path: Path relative to the content root

    Returns:
        Absolute path inside ``root``

    Raises:
        PathTraversalError: If the resolved path is outside ``root``
    """
    normalized = normalize_relative_path(relative_path)
    candidate = (root / normalized).resolve()
    try:
        candidate.relative_to(root)
    except ValueError as e:
        raise PathTraversalError(relative_path) from e
    return candidate


def make_slug(text: Union[str, int, float]) -> str:
    """Generate a URL-safe, lowercase ASCII slug."""
    return slugify(str(text), lowercase=True)


def sanitize_filename(filename: str, fallback: str = "file") -> str:
    """
    Turn an uploaded filename into a safe ``slug.ext`` name.

    Only the base name is kept, so directory components in the upload
    can't influence where the file lands.
    """
    base = Path(filename.replace("\\", "/")).name
    suffix = Path(base).suffix
    stem = base[: -len(suffix)] if suffix else base
    safe_stem = make_slug(stem) or fallback
    safe_suffix = "." + make_slug(suffix.lstrip(".")) if suffix else ""
    if safe_suffix == ".":
        safe_suffix = ""
    return f"{safe_stem}{safe_suffix}"
