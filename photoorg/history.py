"""
Run history for a library: per-run debug logs and the import audit log,
both kept inside the reserved metadata subtree.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional, TYPE_CHECKING

from .constants import META_DIRNAME

if TYPE_CHECKING:
    from .stats import StatsManager


class HistoryManager:
    """Manages the per-run log file and the one-line-per-run audit log."""

    def __init__(self, output_root: Path, dry_run: bool = False):
        self.output_root = output_root
        self.dry_run = dry_run
        self.meta_root = output_root / META_DIRNAME
        self.logs_dir = self.meta_root / "logs"
        self.imports_audit_log = self.meta_root / "imports.log"
        self.run_name = self._unique_run_name()
        self.run_log = self.logs_dir / f"{self.run_name}.log"
        self._handler: Optional[logging.Handler] = None

    def _unique_run_name(self) -> str:
        """Timestamped run name, with a counter if a log already exists."""
        base = datetime.now().strftime("%Y-%m-%d_%H%M%S")
        name = base
        counter = 1
        while (self.logs_dir / f"{name}.log").exists():
            name = f"{base}-{counter:02d}"
            counter += 1
        return name

    def setup_run_logger(self, logger: logging.Logger) -> None:
        """Configure logger to also write DEBUG output to this run's log file."""
        if self.dry_run:
            return

        self.logs_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(self.run_log, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s [%(name)s] %(levelname)s: %(message)s'
        ))
        logger.addHandler(file_handler)
        logger.setLevel(logging.DEBUG)
        self._handler = file_handler

    def close(self, logger: logging.Logger) -> None:
        """Detach and close this run's log file handler."""
        if self._handler is not None:
            logger.removeHandler(self._handler)
            self._handler.close()
            self._handler = None

    def log_import_summary(self, inputs: Iterable[Path], stats_manager: "StatsManager",
                           success: bool) -> None:
        """Append a summary record to the library's imports.log."""
        if self.dry_run:
            return

        self.meta_root.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        status = "SUCCESS" if success else "FAILED"
        sources = ", ".join(str(p) for p in inputs)

        summary = (
            f"{timestamp} | {status} | "
            f"Inputs: {sources} | "
            f"Moved: {stats_manager.get_moved()} ({stats_manager.get_total_size_mb():.1f}MB) | "
            f"Duplicates: {stats_manager.get_duplicates()} | "
            f"Excluded: {stats_manager.get_excluded()} | "
            f"Errors: {stats_manager.get_errors()} | "
            f"Reconciled: {stats_manager.get_reconciled()} | Log: {self.run_name}\n"
        )

        with open(self.imports_audit_log, 'a', encoding='utf-8') as f:
            f.write(summary)
