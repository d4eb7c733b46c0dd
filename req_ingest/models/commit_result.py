from __future__ import annotations

import statistics
from dataclasses import dataclass, field
from typing import Any

"""Commit result models for the batch commit driver.

CommitProgress is the live progress snapshot reported after each batch,
CommitResult the aggregated outcome, and BatchStatsAccumulator collects
per-batch timings for the SUMMARY line.
"""

__all__ = [
    "BulkCreateResult",
    "CommitProgress",
    "CommitResult",
    "BatchStatsAccumulator",
]


@dataclass(frozen=True)
class BulkCreateResult:
    """Return value of a remote bulk-create call."""
    created: int
    errors: list[Any] = field(default_factory=list)
    records: list[dict[str, Any]] = field(default_factory=list)  # created rows, if returned


@dataclass(frozen=True)
class CommitProgress:
    """Live progress snapshot: ``current`` never exceeds ``total``."""
    current: int
    total: int

    @property
    def fraction(self) -> float:
        if self.total == 0:
            return 1.0
        return self.current / self.total


@dataclass(frozen=True)
class CommitResult:
    """Aggregated outcome of a batch commit: N created, M errors."""
    created: int
    total: int
    errors: list[Any] = field(default_factory=list)
    batches: int = 0  # completed batches
    sent: int = 0  # records handed to completed batches
    avg_batch_seconds: float = 0.0
    p95_batch_seconds: float = 0.0

    @property
    def complete(self) -> bool:
        return self.sent == self.total


class BatchStatsAccumulator:
    """Helper class to accumulate batch timing statistics.

    Collects individual batch timing data and calculates summary statistics.
    """

    def __init__(self) -> None:
        self.batch_times: list[float] = []

    def add_batch_time(self, elapsed_seconds: float) -> None:
        """Add a batch timing measurement."""
        self.batch_times.append(elapsed_seconds)

    def get_stats(self) -> tuple[int, float, float]:
        """Calculate batch statistics.

        Returns:
            tuple: (total_batches, avg_batch_seconds, p95_batch_seconds)
        """
        if not self.batch_times:
            return (0, 0.0, 0.0)

        total_batches = len(self.batch_times)
        avg_batch_seconds = statistics.mean(self.batch_times)

        if total_batches == 1:
            p95_batch_seconds = self.batch_times[0]
        else:
            # 95th percentile = 19th of 20 quantiles (0-indexed 18)
            p95_batch_seconds = statistics.quantiles(
                self.batch_times, n=20, method='inclusive'
            )[18]

        return (total_batches, avg_batch_seconds, p95_batch_seconds)
