"""Path utilities for consistent path handling."""

import os
import unicodedata
from pathlib import Path


def normalize_path(path: Path | str) -> str:
    """Normalize a path to NFC Unicode with forward slashes.

    Backup manifests store logical paths with forward slashes; normalizing
    keeps comparisons stable across filesystems that decompose Unicode.

    Examples:
        >>> normalize_path(r"Documents\\abc\\DB")
        'Documents/abc/DB'
    """
    normalized = unicodedata.normalize('NFC', str(path))
    return normalized.replace('\\', '/')


def combine_path(*parts: str) -> str:
    """Join logical path parts with single forward slashes, skipping empties."""
    cleaned = [p.strip('/') for p in parts if p]
    return '/'.join(c for c in cleaned if c)


def is_writable_directory(path: Path) -> bool:
    """True if ``path`` is an existing directory the process can write into."""
    return path.is_dir() and os.access(path, os.W_OK | os.X_OK)
