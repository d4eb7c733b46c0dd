from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from typing import Any

from ..db.batch_insert import BatchMetrics
from ..models.commit_result import BatchStatsAccumulator, BulkCreateResult, CommitProgress, CommitResult
from ..models.records import NormalizedRecord

"""Batch commit driver.

Submits normalized records to the remote bulk-create call in consecutive
chunks, one chunk at a time. Progress is reported after every chunk and
never goes backwards. A failing chunk stops the loop: chunks already sent
stay committed (no rollback) and nothing is retried.
"""

__all__ = [
    "DEFAULT_BATCH_SIZE",
    "CommitBatchError",
    "commit_in_batches",
    "chunked",
]

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 25

BulkCreate = Callable[[list[dict[str, Any]]], BulkCreateResult]


class CommitBatchError(Exception):
    """A bulk-create call failed; ``partial`` holds what was committed before it."""

    def __init__(self, message: str, partial: CommitResult, batch_index: int) -> None:
        super().__init__(message)
        self.partial = partial
        self.batch_index = batch_index


def chunked(items: Sequence[Any], size: int) -> list[Sequence[Any]]:
    if size < 1:
        raise ValueError(f"batch size must be >= 1: {size}")
    return [items[i:i + size] for i in range(0, len(items), size)]


def _build_result(
    created: int, total: int, errors: list[Any], sent: int, stats: BatchStatsAccumulator
) -> CommitResult:
    batches, avg, p95 = stats.get_stats()
    return CommitResult(
        created=created,
        total=total,
        errors=list(errors),
        batches=batches,
        sent=sent,
        avg_batch_seconds=avg,
        p95_batch_seconds=p95,
    )


def commit_in_batches(
    records: Sequence[NormalizedRecord],
    bulk_create: BulkCreate,
    *,
    batch_size: int = DEFAULT_BATCH_SIZE,
    progress_callback: Callable[[CommitProgress], None] | None = None,
    metrics_callback: Callable[[BatchMetrics], None] | None = None,
) -> CommitResult:
    """Commit ``records`` through ``bulk_create`` in chunks of ``batch_size``.

    Args:
        records: validated records, committed in order
        bulk_create: remote call taking a list of payload dicts
        batch_size: records per call (25 by default)
        progress_callback: receives CommitProgress after each chunk
        metrics_callback: receives BatchMetrics for each successful chunk

    Returns:
        CommitResult with created count, total, and the per-batch errors

    Raises:
        CommitBatchError: a chunk failed; carries the partial result
    """
    total = len(records)
    created = 0
    sent = 0
    errors: list[Any] = []
    stats = BatchStatsAccumulator()

    for index, chunk in enumerate(chunked(records, batch_size)):
        payloads = [r.to_payload() for r in chunk]
        start_time = time.time()
        start = time.perf_counter()
        try:
            outcome = bulk_create(payloads)
        except Exception as e:
            partial = _build_result(created, total, errors, sent, stats)
            logger.error(
                "batch %d failed after %d/%d records: %s", index + 1, sent, total, e
            )
            raise CommitBatchError(f"Import failed: {e}", partial, index) from e
        elapsed = time.perf_counter() - start
        stats.add_batch_time(elapsed)
        if metrics_callback is not None:
            metrics_callback(BatchMetrics(
                batch_size=len(chunk),
                elapsed_seconds=elapsed,
                start_time=start_time,
                end_time=start_time + elapsed,
            ))

        sent += len(chunk)
        created += outcome.created or 0
        if outcome.errors:
            errors.extend(outcome.errors)
        logger.debug(
            "batch %d committed size=%d created=%d errors=%d",
            index + 1, len(chunk), outcome.created, len(outcome.errors),
        )
        if progress_callback is not None:
            progress_callback(CommitProgress(current=min(sent, total), total=total))

    return _build_result(created, total, errors, sent, stats)
