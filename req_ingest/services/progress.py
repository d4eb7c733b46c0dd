from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

from ..models.commit_result import CommitProgress

"""Progress display service with tqdm (TTY only).

- Single tqdm instance, disabled in non-TTY environments (CI) to avoid ANSI
  control sequence spam
- Fed with CommitProgress snapshots from the batch commit driver, so the bar
  advances once per committed batch
"""

__all__ = [
    "ProgressTracker",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    """True if stdout is a TTY and progress should be displayed."""
    return sys.stdout.isatty()


class ProgressTracker:
    """Record-level progress bar for a batch commit.

    Usable directly as the ``progress_callback`` of ``commit_in_batches``.
    """

    def __init__(self, total_records: int, *, description: str = "Importing requirements") -> None:
        self.total_records = total_records
        self.description = description
        self.current = 0

        self.enabled = is_tty_enabled()
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=total_records,
                desc=description,
                unit="req",
                disable=False,
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def __call__(self, progress: CommitProgress) -> None:
        self.update(progress)

    def update(self, progress: CommitProgress) -> None:
        """Advance to ``progress.current`` (monotonic; stale snapshots are ignored)."""
        step = progress.current - self.current
        if step <= 0:
            return
        self.current = progress.current
        if self.enabled and self.pbar is not None:
            self.pbar.update(step)

    def set_postfix(self, **kwargs: Any) -> None:
        if self.enabled and self.pbar is not None:
            self.pbar.set_postfix(**kwargs)

    def close(self) -> None:
        """Close the progress bar."""
        if self.enabled and self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> ProgressTracker:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
