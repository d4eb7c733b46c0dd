from __future__ import annotations

import json
from pathlib import Path

import pytest

from req_ingest.cli.__main__ import main as cli_main
from req_ingest.db.store import InMemoryRequirementStore, PersistenceError
from req_ingest.logging.init import reset_logging
from req_ingest.models.commit_result import BulkCreateResult

"""Integration test: partial outcomes surface in exit code, SUMMARY and error log."""


@pytest.fixture(autouse=True)
def mock_mode(monkeypatch, temp_workdir):
    monkeypatch.setenv("DISABLE_DB_CONNECT", "1")
    reset_logging()
    yield
    reset_logging()


def _source(temp_workdir: Path, n: int, blank_titles: tuple[int, ...] = ()) -> Path:
    lines = ["Title,Priority"]
    for i in range(1, n + 1):
        lines.append(f",must" if i in blank_titles else f"Requirement {i},should")
    path = temp_workdir / "data" / "reqs.csv"
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def test_row_errors_give_exit_2_and_error_log(temp_workdir: Path, capsys):
    src = _source(temp_workdir, 30, blank_titles=(3, 17))
    code = cli_main([str(src), "--container", "p"])
    out = capsys.readouterr().out

    assert code == 2
    assert "valid=28 errors=2 warnings=0" in out
    assert "SUMMARY created=28/28 errors=0 batches=2" in out
    (log,) = (temp_workdir / "logs").glob("errors-*.log")
    rows = [json.loads(line)["row"] for line in log.read_text(encoding="utf-8").splitlines()]
    assert rows == [3, 17]


def test_store_reported_errors_give_exit_2(temp_workdir: Path, monkeypatch, capsys):
    original = InMemoryRequirementStore.bulk_create

    def lossy(self, container_id, records):
        result = original(self, container_id, records[1:])
        return BulkCreateResult(created=result.created, errors=["duplicate title"], records=result.records)

    monkeypatch.setattr(InMemoryRequirementStore, "bulk_create", lossy)
    code = cli_main([str(_source(temp_workdir, 30)), "--container", "p"])
    out = capsys.readouterr().out

    assert code == 2
    assert "SUMMARY created=28/30 errors=2 batches=2" in out
    assert out.count("WARN bulk create: duplicate title") == 2


def test_failing_batch_stops_commit(temp_workdir: Path, monkeypatch, capsys):
    original = InMemoryRequirementStore.bulk_create
    calls = []

    def second_batch_fails(self, container_id, records):
        calls.append(len(records))
        if len(calls) == 2:
            raise PersistenceError("bulk_create failed: deadlock detected")
        return original(self, container_id, records)

    monkeypatch.setattr(InMemoryRequirementStore, "bulk_create", second_batch_fails)
    code = cli_main([str(_source(temp_workdir, 60)), "--container", "p"])
    out = capsys.readouterr().out

    assert code == 1
    assert calls == [25, 25]
    assert "SUMMARY created=25/60 errors=0 batches=1" in out
    (log,) = (temp_workdir / "logs").glob("errors-*.log")
    record = json.loads(log.read_text(encoding="utf-8").splitlines()[-1])
    assert record["error_type"] == "COMMIT_BATCH_ERROR"
    assert record["row"] == -1
    assert record["message"].startswith("batch 2:")
