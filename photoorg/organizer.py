"""
Core organize pipeline: scan, hash, deduplicate, sort and move.

Each candidate ends in exactly one terminal outcome:

    Scanned -> Hashed -> Duplicate | Moved | Error

Excluded files are reported by the scanner and never reach hashing. Hashing
runs on a thread pool, but results are consumed in scanner order on the
calling thread, which is the only writer to the store and the output tree.
"""

from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Deque, Dict, Iterable, Iterator, List, Optional, Tuple, Union

from .config import LibraryConfig
from .constants import META_DIRNAME, STAGING_DIRNAME, get_logger
from .errors import DuplicateIdentity, HashError, MoveFailure
from .file_operations import FileOperations
from .hashing import ContentIdentity, hash_file
from .policies import ContentMetadata, SortPolicy, get_policy
from .progress import ProgressContext
from .reconcile import Reconciler, ReconcileReport
from .scanner import Candidate, Scanner
from .stats import StatsManager
from .store import MetadataStore
from .timestamps import DateResolver


class Outcome(Enum):
    MOVED = "moved"
    DUPLICATE = "duplicate"
    EXCLUDED = "excluded"
    ERROR = "error"


@dataclass
class CandidateResult:
    """Terminal outcome for one scanned file."""

    source: Path
    outcome: Outcome
    destination: Optional[Path] = None
    identity: Optional[ContentIdentity] = None
    message: str = ""


@dataclass
class RunResult:
    results: List[CandidateResult] = field(default_factory=list)
    stats: StatsManager = field(default_factory=StatsManager)
    reconcile: Optional[ReconcileReport] = None

    def by_outcome(self, outcome: Outcome) -> List[CandidateResult]:
        return [r for r in self.results if r.outcome is outcome]


HashOutcome = Union[ContentIdentity, HashError]


class Organizer:
    """Drives one organize run against a loaded metadata store."""

    def __init__(self, config: LibraryConfig, store: MetadataStore, dry_run: bool = False,
                 policy: Optional[SortPolicy] = None,
                 date_resolver: Optional[DateResolver] = None):
        self.config = config
        self.store = store
        self.dry_run = dry_run
        self.policy = policy or get_policy(config.sort_policy)
        self.date_resolver = date_resolver or DateResolver(config.date_sources, config.timezone)
        self.file_ops = FileOperations(config.meta_root / STAGING_DIRNAME, dry_run=dry_run)
        self.logger = get_logger()
        self.output_root = config.output
        self._pending_commits = 0
        # Identities claimed during a dry run, since the store is not mutated
        self._planned: Dict[ContentIdentity, Path] = {}
        self._result = RunResult()
        self._progress = ProgressContext()

    @property
    def stats(self) -> StatsManager:
        return self._result.stats

    def run(self, progress_ctx: Optional[ProgressContext] = None) -> RunResult:
        """Reconcile, then process every scanner candidate once.

        Per-file failures are recorded as ERROR outcomes. Store failures and
        DuplicateIdentity propagate to the caller.
        """
        self._result = RunResult()
        self._progress = progress_ctx or ProgressContext()
        self.logger.info(f"Starting organize run: {', '.join(map(str, self.config.inputs))} "
                         f"-> {self.output_root}")
        self.logger.info(f"Mode: {'DRY RUN' if self.dry_run else 'MOVE'}, "
                         f"policy: {self.policy.name}")

        if not self.dry_run:
            self.file_ops.ensure_directory(self.output_root)
            self.store.initialize()

        self.reconcile()

        scanner = Scanner(self.config.inputs, self.config.extensions,
                          reserved=[self.config.meta_root],
                          recursive=self.config.recursive,
                          on_excluded=self._on_excluded)
        try:
            for candidate, hashed in self._hashed(scanner.scan()):
                self._result.results.append(self.process(candidate, hashed))
                self._progress.advance()
        except (DuplicateIdentity, KeyboardInterrupt):
            # Keep the records of moves that already happened
            self._checkpoint(force=True)
            raise

        self._checkpoint(force=True)
        stats = self._result.stats
        self.logger.info(f"Run finished: {stats.get_moved()} moved, {stats.get_duplicates()} duplicates, "
                         f"{stats.get_excluded()} excluded, {stats.get_errors()} errors")
        return self._result

    def reconcile(self) -> ReconcileReport:
        """Backfill records for unrecorded files already in the output tree."""
        report = Reconciler(self.store, extensions=self.config.extensions,
                            dry_run=self.dry_run).run()
        self._result.reconcile = report
        self._result.stats.increment_reconciled(len(report.backfilled) + len(report.repointed))
        if report.changed and not self.dry_run:
            self.store.persist()
        return report

    def process(self, candidate: Candidate, hashed: HashOutcome) -> CandidateResult:
        """Move a hashed candidate into the library or classify it as duplicate/error."""
        stats = self._result.stats
        if isinstance(hashed, HashError):
            self.logger.error(str(hashed))
            stats.increment_errors()
            return CandidateResult(candidate.path, Outcome.ERROR, message=str(hashed))

        identity = hashed
        with self.store.lock:
            known = self._known_location(identity)
            if known is not None:
                if known == candidate.path:
                    message = "already organized"
                else:
                    message = f"duplicate of {known}"
                self.logger.debug(f"Skipping {candidate.path} ({identity.short}): {message}")
                self._progress.update(f"Skipping duplicate: {candidate.name}")
                stats.increment_duplicates()
                return CandidateResult(candidate.path, Outcome.DUPLICATE, known, identity, message)

            try:
                dest = self.destination_for(candidate, identity)
                dest, is_dupe = self.file_ops.resolve_collision(dest, identity, claimed=self._claimed)
                if is_dupe:
                    return self._adopt_existing(candidate, identity, dest)
                self.file_ops.move_file(candidate.path, dest, identity)
            except (MoveFailure, OSError) as e:
                self.logger.error(f"Could not organize {candidate.path}: {e}")
                stats.increment_errors()
                return CandidateResult(candidate.path, Outcome.ERROR, identity=identity, message=str(e))

            self._commit(identity, dest, candidate.path)

        stats.record_moved(candidate.size)
        self._progress.update(f"Moved: {candidate.name}")
        return CandidateResult(candidate.path, Outcome.MOVED, dest, identity)

    def destination_for(self, candidate: Candidate, identity: ContentIdentity) -> Path:
        """Absolute destination chosen by the sort policy, before collision handling."""
        sort_date, date_source = None, None
        if self.policy.needs_sort_date:
            sort_date, date_source = self.date_resolver.resolve(candidate.path)
        metadata = ContentMetadata(identity=identity, mtime=candidate.mtime,
                                   sort_date=sort_date, date_source=date_source)
        relative = self.policy.destination(candidate, metadata)
        return self._confine(candidate, relative)

    def _confine(self, candidate: Candidate, relative: PurePosixPath) -> Path:
        parts = relative.parts
        if (not parts or relative.is_absolute() or ".." in parts or parts[0] == META_DIRNAME
                or any(p in ("", ".") for p in parts)):
            raise MoveFailure(candidate.path, None, f"sort policy produced invalid destination {relative}")
        return self.output_root.joinpath(*parts)

    def _claimed(self, path: Path) -> bool:
        return self.store.find_by_path(path) is not None

    def _known_location(self, identity: ContentIdentity) -> Optional[Path]:
        record = self.store.lookup(identity)
        if record is not None:
            return self.store.absolute_path(record)
        return self._planned.get(identity)

    def _adopt_existing(self, candidate: Candidate, identity: ContentIdentity,
                        dest: Path) -> CandidateResult:
        """The destination already holds this content but the store did not know it."""
        self.logger.warning(f"{dest} already holds the content of {candidate.path}, recording it")
        if self.dry_run:
            self._planned[identity] = dest
        else:
            self.store.record(identity, dest, dest, reconciled=True)
            self._pending_commits += 1
            self._checkpoint()
        self._result.stats.increment_duplicates()
        message = "already organized" if dest == candidate.path else f"duplicate of {dest}"
        return CandidateResult(candidate.path, Outcome.DUPLICATE, dest, identity, message)

    def _commit(self, identity: ContentIdentity, dest: Path, source: Path) -> None:
        if self.dry_run:
            self._planned[identity] = dest
            return
        self.store.record(identity, dest, source, datetime.now())
        self._pending_commits += 1
        self._checkpoint()

    def _checkpoint(self, force: bool = False) -> None:
        if self.dry_run:
            return
        if force or self._pending_commits >= self.config.checkpoint_interval:
            self.store.persist()
            self._pending_commits = 0

    def _on_excluded(self, path: Path, reason: str) -> None:
        self._result.stats.increment_excluded()
        self._result.results.append(CandidateResult(path, Outcome.EXCLUDED, message=reason))

    def _hashed(self, candidates: Iterable[Candidate]) -> Iterator[Tuple[Candidate, HashOutcome]]:
        """Hash candidates, yielding results in input order.

        At most workers * 4 hash jobs are in flight, so the scanner never runs
        far ahead of the organizer.
        """
        workers = self.config.workers
        if workers <= 1:
            for candidate in candidates:
                self._progress.discover()
                yield candidate, _hash_or_error(candidate.path)
            return

        window: Deque[Tuple[Candidate, Future]] = deque()
        max_pending = workers * 4
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="hasher")
        try:
            for candidate in candidates:
                self._progress.discover()
                window.append((candidate, executor.submit(_hash_or_error, candidate.path)))
                if len(window) >= max_pending:
                    done, future = window.popleft()
                    yield done, future.result()
            while window:
                done, future = window.popleft()
                yield done, future.result()
        finally:
            executor.shutdown(wait=True, cancel_futures=True)


def _hash_or_error(path: Path) -> HashOutcome:
    try:
        return hash_file(path)
    except HashError as e:
        return e
