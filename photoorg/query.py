"""
Glob queries against an organized library.
"""

from pathlib import Path, PurePosixPath
from typing import List

from .constants import META_DIRNAME
from .errors import ConfigError


def query(output_root: Path, pattern: str) -> List[Path]:
    """Return files under output_root matching a glob rooted there, sorted.

    `**` matches across directories. The metadata subtree is never returned.
    """
    pattern = pattern.strip()
    if not pattern:
        raise ConfigError("Query pattern must not be empty")
    parts = PurePosixPath(pattern).parts
    if PurePosixPath(pattern).is_absolute() or Path(pattern).is_absolute() or ".." in parts:
        raise ConfigError(f"Query pattern must be relative to the library root: {pattern}")

    output_root = Path(output_root)
    if not output_root.is_dir():
        return []

    matches = []
    for path in output_root.glob(pattern):
        if not path.is_file():
            continue
        relative = path.relative_to(output_root)
        if relative.parts and relative.parts[0] == META_DIRNAME:
            continue
        matches.append(path)
    return sorted(matches)
