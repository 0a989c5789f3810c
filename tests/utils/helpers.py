"""
Test helper utilities for content-core library.
"""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml


def write_entry(
    content_root: Path,
    collection_path: str,
    slug: str,
    fields: Optional[Dict[str, Any]] = None,
    body: str = "",
) -> Path:
    """
    Write an ``index.md`` directly to disk, bypassing the manager.

    Args:
        content_root: Content root directory
        collection_path: Collection base path (e.g. ``posts``)
        slug: Entry directory name
        fields: Front-matter fields
        body: Markdown body

    Returns:
        Path to the written document
    """
    entry_dir = content_root / collection_path / slug
    entry_dir.mkdir(parents=True, exist_ok=True)

    document = "---\n"
    document += yaml.safe_dump(fields or {"title": slug}, default_flow_style=False, sort_keys=False)
    document += "---\n\n" + body + "\n"

    path = entry_dir / "index.md"
    path.write_text(document, encoding="utf-8")
    return path


def write_raw(content_root: Path, relative_path: str, text: str) -> Path:
    """Write an arbitrary text file under the content root."""
    path = content_root / relative_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path
