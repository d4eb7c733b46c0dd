# Shared pytest fixtures
from __future__ import annotations
import tempfile
from pathlib import Path
import pytest

from req_ingest.db.store import InMemoryRequirementStore
from req_ingest.models.field_catalog import Lookups
from req_ingest.models.grid_row import GridRow


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """batch_size: 10
debounce_seconds: 0.25
undo_limit: 20
logs_dir: ./logs
table: requirements
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: appdb
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "ingest.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def lookups() -> Lookups:
    return Lookups.from_dicts(
        categories=[{"id": 1, "name": "Finance"}, {"id": 2, "name": "Security"}],
        stakeholder_areas=[{"id": 10, "name": "Operations"}],
    )


@pytest.fixture()
def store() -> InMemoryRequirementStore:
    return InMemoryRequirementStore()


class FakeTimer:
    """Stand-in for threading.Timer; tests call fire() instead of sleeping."""

    def __init__(self, interval: float, function) -> None:
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        assert self.started and not self.cancelled, "timer fired after cancel"
        self.function()


@pytest.fixture()
def timers() -> list[FakeTimer]:
    return []


@pytest.fixture()
def timer_factory(timers: list[FakeTimer]):
    def factory(interval: float, function) -> FakeTimer:
        t = FakeTimer(interval, function)
        timers.append(t)
        return t
    return factory


@pytest.fixture()
def persisted_rows() -> list[GridRow]:
    return [
        GridRow(id="1", values={"title": "Login", "status": "draft", "priority": "must_have", "reference_code": "REQ-001"}),
        GridRow(id="2", values={"title": "Export", "status": "approved", "priority": "should_have", "reference_code": "REQ-002"}),
        GridRow(id="3", values={"title": "Audit", "status": "draft", "priority": "could_have", "reference_code": "REQ-003"}),
    ]
