"""
Filesystem operations for placing files into the library: collision-free
destination naming and moves that never leave a file in two places.
"""

import errno
import os
import shutil
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple

from .constants import PARTIAL_SUFFIX, get_logger
from .errors import HashError, MoveFailure
from .hashing import ContentIdentity, hash_file

# Occupant of a destination path whose content cannot be compared
UNREADABLE = object()


class FileOperations:
    """Moves files into the output tree, with dry-run support."""

    def __init__(self, staging_dir: Path, dry_run: bool = False):
        self.staging_dir = staging_dir
        self.dry_run = dry_run
        self.logger = get_logger()
        # Destinations claimed during a dry run, since nothing lands on disk
        self.planned: Dict[Path, ContentIdentity] = {}

    def ensure_directory(self, directory: Path) -> None:
        """Create directory and parents if needed, with dry-run support."""
        if not self.dry_run and not directory.exists():
            directory.mkdir(parents=True, exist_ok=True)

    def resolve_collision(self, dest: Path, identity: ContentIdentity,
                          claimed: Optional[Callable[[Path], bool]] = None) -> Tuple[Path, bool]:
        """Find a free destination for content `identity`. Returns (dest_path, is_dupe).

        A path for which `claimed` returns True belongs to another library
        record, whether or not its file is still on disk, and is never reused.
        An occupied path holding the same content is reported as a duplicate.
        Otherwise `_001`, `_002`, ... is appended to the stem in order and the
        first free name wins, so the choice is deterministic for a given tree.
        """
        stem = dest.stem
        suffix = dest.suffix
        candidate = dest
        counter = 1
        while True:
            if claimed is not None and claimed(candidate):
                occupant = UNREADABLE
            else:
                occupant = self._occupant_identity(candidate)
            if occupant is None:
                return candidate, False
            if occupant == identity:
                return candidate, True
            self.logger.debug(f"Name collision at {candidate}, trying next suffix")
            candidate = dest.with_name(f"{stem}_{counter:03d}{suffix}")
            counter += 1

    def _occupant_identity(self, path: Path) -> Optional[object]:
        if path in self.planned:
            return self.planned[path]
        if not os.path.lexists(path):
            return None
        if not path.is_file():
            # Directories and links are never replaced; treat as foreign content
            return UNREADABLE
        try:
            return hash_file(path)
        except HashError as e:
            self.logger.warning(f"Could not inspect existing file {path}: {e}")
            return UNREADABLE

    def move_file(self, source: Path, dest: Path, identity: ContentIdentity) -> None:
        """Move `source` to `dest`, which must not exist.

        Uses a rename when both paths share a filesystem, otherwise copies into
        the staging directory on the output filesystem, renames the copy into
        place and then removes the source. On failure the source is left
        untouched and any partial copy is removed. Raises MoveFailure.
        """
        if self.dry_run:
            self.planned[dest] = identity
            self.logger.info(f"[dry-run] {source} -> {dest}")
            return

        if os.path.lexists(dest):
            raise MoveFailure(source, dest, "destination already exists")

        try:
            self.ensure_directory(dest.parent)
        except OSError as e:
            raise MoveFailure(source, dest, f"could not create {dest.parent}: {e}") from e

        try:
            os.rename(source, dest)
        except OSError as e:
            if e.errno != errno.EXDEV:
                raise MoveFailure(source, dest, e.strerror or str(e)) from e
            self._copy_then_delete(source, dest, identity)

        # Verify the operation
        if not dest.exists():
            raise MoveFailure(source, dest, "file not found after move")
        if source.exists():
            raise MoveFailure(source, dest, "source file still exists after move")

        self.logger.info(f"{source} -> {dest}")

    def _copy_then_delete(self, source: Path, dest: Path, identity: ContentIdentity) -> None:
        partial = self.staging_dir / f"{identity.encode()}{PARTIAL_SUFFIX}"
        try:
            self.ensure_directory(self.staging_dir)
            shutil.copy2(str(source), str(partial))
            with open(partial, "rb+") as f:
                os.fsync(f.fileno())
            os.replace(partial, dest)
        except OSError as e:
            self._discard(partial)
            raise MoveFailure(source, dest, f"copy failed: {e}") from e

        try:
            source.unlink()
        except OSError as e:
            # Keep exactly one copy: roll back the destination
            self._discard(dest)
            raise MoveFailure(source, dest, f"could not remove source after copy: {e}") from e

    def _discard(self, path: Path) -> None:
        try:
            if os.path.lexists(path):
                path.unlink()
        except OSError as e:
            self.logger.error(f"Could not remove partial copy {path}: {e}")
