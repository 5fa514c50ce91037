"""
Candidate discovery across the configured input directories.
"""

import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Optional

from .constants import get_logger


@dataclass(frozen=True)
class Candidate:
    """A file found by the scanner, not yet classified."""

    path: Path
    size: int
    mtime: datetime

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def extension(self) -> str:
        """Lowercase extension without the leading dot."""
        return self.path.suffix.lower().lstrip(".")


def normalize_extension(ext: str) -> str:
    return ext.strip().lower().lstrip(".")


class Scanner:
    """Walks input directories and yields candidates in a deterministic order.

    Within each directory, files are visited in lexicographic order before
    descending into subdirectories (also lexicographic). Anything under a
    reserved path is skipped entirely.
    """

    def __init__(self, input_dirs: Iterable[Path], extensions: Iterable[str],
                 reserved: Iterable[Path] = (), recursive: bool = True,
                 on_excluded: Optional[Callable[[Path, str], None]] = None):
        self.input_dirs = [Path(p) for p in input_dirs]
        self.extensions = frozenset(normalize_extension(e) for e in extensions)
        self.reserved = [Path(p).resolve() for p in reserved]
        self.recursive = recursive
        self.on_excluded = on_excluded
        self.logger = get_logger()

    def scan(self) -> Iterator[Candidate]:
        """Yield candidates lazily. Each call starts a fresh walk."""
        seen_roots: List[Path] = []
        for input_dir in self.input_dirs:
            root = input_dir.resolve()
            if not root.is_dir():
                self.logger.warning(f"Input directory {input_dir} does not exist, skipping")
                continue
            if any(root == s or s in root.parents for s in seen_roots):
                self.logger.debug(f"Input {input_dir} is covered by an earlier input, skipping")
                continue
            # Earlier inputs nested inside this one were already walked
            scanned = [r for r in seen_roots if root in r.parents]
            seen_roots.append(root)
            self.logger.info(f"Scanning {root}")
            yield from self._walk(root, scanned)

    def _walk(self, directory: Path, scanned: List[Path]) -> Iterator[Candidate]:
        if self._is_reserved(directory):
            self.logger.debug(f"Skipping reserved directory {directory}")
            return
        if directory.resolve() in scanned:
            return

        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            self.logger.warning(f"Could not read directory {directory}: {e}")
            return

        subdirs = []
        for entry in entries:
            path = Path(entry.path)
            if entry.is_dir(follow_symlinks=False):
                subdirs.append(path)
                continue

            candidate = self._check_file(entry, path)
            if candidate is not None:
                yield candidate

        if not self.recursive:
            return
        for subdir in subdirs:
            yield from self._walk(subdir, scanned)

    def _check_file(self, entry: os.DirEntry, path: Path) -> Optional[Candidate]:
        if entry.is_symlink():
            self._exclude(path, "symlink")
            return None
        if not entry.is_file(follow_symlinks=False):
            self._exclude(path, "not a regular file")
            return None

        ext = path.suffix.lower().lstrip(".")
        if not ext or ext not in self.extensions:
            self._exclude(path, "extension not accepted")
            return None

        try:
            stat = entry.stat(follow_symlinks=False)
        except OSError as e:
            self._exclude(path, f"stat failed: {e}")
            return None

        return Candidate(path=path, size=stat.st_size, mtime=datetime.fromtimestamp(stat.st_mtime))

    def _is_reserved(self, directory: Path) -> bool:
        resolved = directory.resolve()
        return any(resolved == r or r in resolved.parents for r in self.reserved)

    def _exclude(self, path: Path, reason: str) -> None:
        self.logger.debug(f"Excluding {path}: {reason}")
        if self.on_excluded:
            self.on_excluded(path, reason)


def scan(input_dirs: Iterable[Path], allowed_extensions: Iterable[str],
         reserved: Iterable[Path] = (), recursive: bool = True) -> Iterator[Candidate]:
    """Convenience wrapper around Scanner.scan()."""
    return Scanner(input_dirs, allowed_extensions, reserved, recursive).scan()
