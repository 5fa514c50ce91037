"""
Startup reconciliation of the output tree against the metadata store.

A run that crashed after moving a file but before persisting its record
leaves a file in the output tree that the store does not know about. This
pass finds such files and backfills their records from where they are, so
they are never moved a second time.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator, List, Optional

from .constants import META_DIRNAME, PARTIAL_SUFFIX, STAGING_DIRNAME, get_logger
from .errors import HashError
from .store import LibraryRecord, MetadataStore
from .hashing import hash_file
from .scanner import normalize_extension


@dataclass
class ReconcileReport:
    """What reconciliation found and did."""

    backfilled: List[Path] = field(default_factory=list)
    repointed: List[Path] = field(default_factory=list)
    duplicates: List[Path] = field(default_factory=list)
    stale: List[LibraryRecord] = field(default_factory=list)
    partials_removed: List[Path] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.backfilled or self.repointed)


class Reconciler:
    """Backfills store records for unrecorded files in the output tree."""

    def __init__(self, store: MetadataStore, extensions: Optional[Iterable[str]] = None,
                 dry_run: bool = False):
        self.store = store
        self.extensions = frozenset(normalize_extension(e) for e in extensions) if extensions else None
        self.dry_run = dry_run
        self.logger = get_logger()

    def run(self) -> ReconcileReport:
        report = ReconcileReport()
        root = self.store.output_root
        if not root.is_dir():
            return report

        self._clear_staging(report)
        for path in self._library_files(root):
            if self.store.find_by_path(path) is not None:
                continue
            if self.extensions is not None and path.suffix.lower().lstrip(".") not in self.extensions:
                continue
            self._reconcile_file(path, report)

        for record in self.store.records():
            if not self.store.absolute_path(record).is_file():
                self.logger.warning(f"Library record {record.identity.short} points at missing "
                                    f"file {record.path}")
                report.stale.append(record)

        if report.changed:
            self.logger.info(f"Reconciliation backfilled {len(report.backfilled)} and repointed "
                             f"{len(report.repointed)} records")
        return report

    def _reconcile_file(self, path: Path, report: ReconcileReport) -> None:
        try:
            identity = hash_file(path)
        except HashError as e:
            self.logger.error(f"Reconciliation skipped {path}: {e}")
            report.errors.append(str(e))
            return

        existing = self.store.lookup(identity)
        if existing is None:
            self.logger.warning(f"Unrecorded library file {path}, backfilling record")
            if not self.dry_run:
                self.store.record(identity, path, path, reconciled=True)
            report.backfilled.append(path)
        elif not self.store.absolute_path(existing).is_file():
            self.logger.warning(f"Record {identity.short} moved from {existing.path} to {path}")
            if not self.dry_run:
                self.store.update_path(identity, path)
            report.repointed.append(path)
        else:
            self.logger.info(f"{path} duplicates library file {existing.path}, leaving it alone")
            report.duplicates.append(path)

    def _clear_staging(self, report: ReconcileReport) -> None:
        """Remove copies left in the staging directory by an interrupted cross-device move."""
        staging = self.store.meta_root / STAGING_DIRNAME
        if not staging.is_dir():
            return
        for path in sorted(staging.iterdir()):
            if path.is_file() and path.name.endswith(PARTIAL_SUFFIX):
                self._remove_partial(path, report)

    def _remove_partial(self, path: Path, report: ReconcileReport) -> None:
        # The source of an unfinished copy was never removed
        self.logger.warning(f"Removing interrupted copy {path}")
        if not self.dry_run:
            try:
                path.unlink()
            except OSError as e:
                self.logger.error(f"Could not remove {path}: {e}")
                report.errors.append(str(e))
                return
        report.partials_removed.append(path)

    def _library_files(self, root: Path) -> Iterator[Path]:
        """Regular files under the output root, in sorted order, outside the metadata subtree."""
        for dirpath, dirnames, filenames in os.walk(root):
            if Path(dirpath) == root and META_DIRNAME in dirnames:
                dirnames.remove(META_DIRNAME)
            dirnames.sort()
            for name in sorted(filenames):
                path = Path(dirpath) / name
                if path.is_file() and not path.is_symlink():
                    yield path


@dataclass
class VerifyReport:
    checked: int = 0
    missing: List[LibraryRecord] = field(default_factory=list)
    mismatched: List[LibraryRecord] = field(default_factory=list)

    @property
    def consistent(self) -> bool:
        return not (self.missing or self.mismatched)


def verify_library(store: MetadataStore) -> VerifyReport:
    """Check that every record's canonical file exists and still hashes to its key."""
    logger = get_logger()
    report = VerifyReport()
    for record in store.records():
        report.checked += 1
        path = store.absolute_path(record)
        try:
            identity = hash_file(path)
        except HashError as e:
            logger.error(f"Missing library file for {record.identity.short}: {e}")
            report.missing.append(record)
            continue
        if identity != record.identity:
            logger.error(f"Content of {record.path} no longer matches {record.identity.short}")
            report.mismatched.append(record)
    return report
