"""Progress reporting for organize runs."""

from typing import Optional

from rich.progress import Progress, TaskID


class ProgressContext:
    """Optional rich progress bar driven by the organizer.

    The total is unknown while the scanner is still producing candidates, so
    the bar grows as candidates are discovered.
    """

    def __init__(self, progress: Optional[Progress] = None, task: Optional[TaskID] = None):
        self.progress = progress
        self.task = task
        self.discovered = 0

    @property
    def is_active(self) -> bool:
        return self.progress is not None and self.task is not None

    def discover(self, count: int = 1) -> None:
        self.discovered += count
        if self.is_active:
            self.progress.update(self.task, total=self.discovered)

    def update(self, description: str) -> None:
        if self.is_active:
            self.progress.update(self.task, description=description)

    def advance(self, steps: int = 1) -> None:
        if self.is_active:
            self.progress.advance(self.task, steps)
