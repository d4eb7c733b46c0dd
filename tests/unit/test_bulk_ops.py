from __future__ import annotations

import pytest

from req_ingest.db.store import InMemoryRequirementStore
from req_ingest.models.grid_row import GridRow, SaveStatus
from req_ingest.services.bulk_ops import BulkFieldOperator
from req_ingest.services.grid_session import GridSession, RemoteCallError


@pytest.fixture()
def rows():
    return [
        GridRow(id="1", values={"title": "Login", "status": "draft"}),
        GridRow(id="2", values={"title": "Export", "status": "approved"}),
        GridRow(id="3", values={"title": "Audit", "status": "draft"}),
        GridRow(id="temp-a", values={"title": "Unsaved", "status": "draft"}, is_new=True, is_dirty=True),
    ]


@pytest.fixture()
def store(rows):
    return InMemoryRequirementStore([{"id": r.id, **r.values} for r in rows if not r.is_new])


@pytest.fixture()
def operator(store, rows, lookups, timer_factory):
    session = GridSession(store, "proj", actor_id="user-7", rows=rows, lookups=lookups, timer_factory=timer_factory)
    return BulkFieldOperator(session)


def _calls(store, name):
    return [args for op, args in store.calls if op == name]


def test_set_field_sends_durable_ids_and_updates_all_selected(operator, store):
    outcome = operator.set_field(["1", "temp-a"], "priority", "must_have")

    assert outcome.updated == 2
    assert outcome.message == "Updated 2 requirement(s)"
    assert _calls(store, "bulk_update") == [(["1"], {"priority": "must_have"})]
    session = operator.session
    assert session.row("1").get("priority") == "must_have"
    assert session.row("temp-a").get("priority") == "must_have"
    assert session.row("2").get("priority") is None
    assert session.undo_count == 1


def test_set_field_only_temporaries_skips_remote(operator, store):
    outcome = operator.set_field(["temp-a"], "status", "approved")
    assert outcome.updated == 1
    assert _calls(store, "bulk_update") == []


def test_set_field_resolves_lookup_names(operator, store):
    operator.set_field(["2"], "category_id", "security")
    assert operator.session.row("2").get("category_id") == 2
    operator.set_field(["2"], "category_id", None)
    assert operator.session.row("2").get("category_id") is None
    operator.set_field(["2"], "stakeholder_area_id", 10)
    assert _calls(store, "bulk_update")[-1] == (["2"], {"stakeholder_area_id": 10})


@pytest.mark.parametrize(
    "field,value",
    [("status", "done"), ("priority", "high"), ("category_id", "Unknown"), ("title", "x")],
)
def test_set_field_rejects_invalid_input(operator, store, field, value):
    with pytest.raises(ValueError):
        operator.set_field(["1"], field, value)
    assert store.calls == []


def test_set_field_failure_leaves_state_untouched(operator, store):
    store.fail_on.add("bulk_update")
    before = operator.session.rows
    with pytest.raises(RemoteCallError):
        operator.set_field(["1", "3"], "status", "rejected")
    assert operator.session.rows == before
    assert operator.session.save_status == SaveStatus.ERROR
    assert operator.session.undo_count == 0


def test_set_field_empty_selection(operator, store):
    outcome = operator.set_field([], "status", "approved")
    assert outcome.updated == 0
    assert store.calls == []


def test_bulk_update_supersedes_pending_edit(operator, store):
    session = operator.session
    session.edit_cell("1", "status", "approved")
    operator.set_field(["1"], "status", "rejected")
    session.flush()
    assert _calls(store, "update") == []
    assert store.rows["1"]["status"] == "rejected"


def test_submit_for_approval_filters_to_drafts(operator, store):
    outcome = operator.submit_for_approval(["1", "2", "3", "temp-a"])

    assert outcome.updated == 2
    assert outcome.message == "Submitted 2 requirement(s) for approval"
    assert _calls(store, "bulk_submit_for_review") == [("proj", ["1", "3"], "user-7")]
    session = operator.session
    assert session.row("1").get("status") == "under_review"
    assert session.row("3").get("status") == "under_review"
    assert session.row("2").get("status") == "approved"
    assert session.row("temp-a").get("status") == "draft"


def test_submit_for_approval_noop_message(operator, store):
    outcome = operator.submit_for_approval(["2", "temp-a"])
    assert outcome.updated == 0
    assert "No draft requirements" in outcome.message
    assert store.calls == []


def test_submit_for_approval_failure(operator, store):
    store.fail_on.add("bulk_submit_for_review")
    with pytest.raises(RemoteCallError, match="approval"):
        operator.submit_for_approval(["1"])
    assert operator.session.row("1").get("status") == "draft"
