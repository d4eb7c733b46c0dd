from __future__ import annotations

import math

import pytest

from req_ingest.models.commit_result import BulkCreateResult, CommitProgress
from req_ingest.models.records import NormalizedRecord
from req_ingest.services.batch_commit import CommitBatchError, chunked, commit_in_batches


def _records(n: int) -> list[NormalizedRecord]:
    return [NormalizedRecord(row_number=i + 1, values={"title": f"Req {i + 1}"}) for i in range(n)]


class RecordingBulkCreate:
    def __init__(self, fail_at: int | None = None, errors_per_call: int = 0) -> None:
        self.calls: list[list[dict]] = []
        self.fail_at = fail_at
        self.errors_per_call = errors_per_call

    def __call__(self, payloads):
        index = len(self.calls)
        self.calls.append(payloads)
        if self.fail_at is not None and index == self.fail_at:
            raise RuntimeError("remote unavailable")
        errors = [f"err-{index}-{i}" for i in range(self.errors_per_call)]
        return BulkCreateResult(created=len(payloads) - len(errors), errors=errors)


@pytest.mark.parametrize("n", [0, 1, 24, 25, 26, 60, 100])
def test_batch_accounting(n):
    bulk = RecordingBulkCreate()
    progress: list[CommitProgress] = []
    result = commit_in_batches(_records(n), bulk, batch_size=25, progress_callback=progress.append)

    assert len(bulk.calls) == math.ceil(n / 25)
    assert all(len(c) <= 25 for c in bulk.calls)
    assert result.created == result.total == n
    assert result.batches == len(bulk.calls)
    if n:
        assert progress[-1] == CommitProgress(current=n, total=n)
    currents = [p.current for p in progress]
    assert currents == sorted(currents)


def test_payloads_are_sent_in_order():
    bulk = RecordingBulkCreate()
    commit_in_batches(_records(30), bulk, batch_size=25)
    titles = [p["title"] for call in bulk.calls for p in call]
    assert titles == [f"Req {i}" for i in range(1, 31)]


def test_created_plus_errors_never_exceeds_sent():
    bulk = RecordingBulkCreate(errors_per_call=2)
    result = commit_in_batches(_records(60), bulk, batch_size=25)
    assert result.created + len(result.errors) <= result.sent == 60
    assert len(result.errors) == 6


def test_failure_stops_loop_and_keeps_partial():
    bulk = RecordingBulkCreate(fail_at=1)
    progress: list[CommitProgress] = []
    with pytest.raises(CommitBatchError) as excinfo:
        commit_in_batches(_records(60), bulk, batch_size=25, progress_callback=progress.append)

    err = excinfo.value
    assert err.batch_index == 1
    assert err.partial.created == 25
    assert err.partial.sent == 25
    assert err.partial.total == 60
    assert not err.partial.complete
    assert len(bulk.calls) == 2  # no retry, no further batches
    assert progress == [CommitProgress(current=25, total=60)]
    assert "remote unavailable" in str(err)


def test_metrics_callback_per_batch():
    metrics = []
    result = commit_in_batches(_records(30), RecordingBulkCreate(), batch_size=10, metrics_callback=metrics.append)
    assert [m.batch_size for m in metrics] == [10, 10, 10]
    assert all(m.elapsed_seconds >= 0 for m in metrics)
    assert result.avg_batch_seconds >= 0
    assert result.p95_batch_seconds >= 0


def test_chunked_rejects_bad_size():
    with pytest.raises(ValueError):
        chunked([1, 2], 0)
    assert chunked([1, 2, 3], 2) == [[1, 2], [3]]
