"""
Statistics tracking for organize runs.
"""

from typing import Dict


class StatsManager:
    """Counts per-candidate outcomes and bytes placed into the library."""

    def __init__(self):
        self._stats = {
            'moved': 0,
            'duplicates': 0,
            'excluded': 0,
            'errors': 0,
            'reconciled': 0,
            'total_size': 0,
        }

    def record_moved(self, file_size: int) -> None:
        """Record a file placed into the library, updating both count and size."""
        self._stats['moved'] += 1
        self._stats['total_size'] += file_size

    def increment_duplicates(self) -> None:
        self._stats['duplicates'] += 1

    def increment_excluded(self) -> None:
        self._stats['excluded'] += 1

    def increment_errors(self) -> None:
        self._stats['errors'] += 1

    def increment_reconciled(self, count: int = 1) -> None:
        """Count records backfilled or repointed by reconciliation."""
        self._stats['reconciled'] += count

    def get_stats(self) -> Dict[str, int]:
        """Get a copy of current statistics."""
        return self._stats.copy()

    def get_total_candidates(self) -> int:
        """Files that reached a terminal outcome (excluded files included)."""
        return (self._stats['moved'] + self._stats['duplicates'] +
                self._stats['excluded'] + self._stats['errors'])

    def get_total_size_mb(self) -> float:
        return self._stats['total_size'] / (1024 * 1024)

    def has_errors(self) -> bool:
        return self._stats['errors'] > 0

    def get_moved(self) -> int:
        return self._stats['moved']

    def get_duplicates(self) -> int:
        return self._stats['duplicates']

    def get_excluded(self) -> int:
        return self._stats['excluded']

    def get_errors(self) -> int:
        return self._stats['errors']

    def get_reconciled(self) -> int:
        return self._stats['reconciled']
