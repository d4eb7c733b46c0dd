from __future__ import annotations

import pytest

from req_ingest.config.loader import load_config
from req_ingest.db.store import InMemoryRequirementStore
from req_ingest.models.grid_row import GridRow, SaveStatus, is_temporary_id
from req_ingest.services.grid_session import COPY_HEADERS, GridSession, RemoteCallError, validate_row


def _store_for(rows: list[GridRow]) -> InMemoryRequirementStore:
    return InMemoryRequirementStore(
        [{"id": r.id, "evaluation_project_id": "proj", **r.values} for r in rows]
    )


@pytest.fixture()
def store(persisted_rows):
    return _store_for(persisted_rows)


@pytest.fixture()
def session(store, persisted_rows, timer_factory, lookups):
    return GridSession(
        store, "proj", actor_id="user-7", rows=persisted_rows, lookups=lookups, timer_factory=timer_factory
    )


def _remote_calls(store: InMemoryRequirementStore, name: str):
    return [args for op, args in store.calls if op == name]


# ── Cell edits and debounce ──────────────────────────────────────────


def test_edit_cell_is_optimistic_and_debounced(session, store, timers):
    row = session.edit_cell("1", "title", "Login v2")
    assert row.is_dirty and row.get("title") == "Login v2"
    assert session.row("1").get("title") == "Login v2"
    assert store.calls == []
    assert len(timers) == 1 and timers[0].interval == 0.5 and timers[0].started


def test_rapid_edits_coalesce_into_one_update(session, store, timers):
    session.edit_cell("1", "title", "Login v2")
    session.edit_cell("1", "priority", "could_have")
    assert timers[0].cancelled and not timers[1].cancelled

    timers[-1].fire()

    assert _remote_calls(store, "update") == [("1", {"title": "Login v2", "priority": "could_have"})]
    assert session.row("1").is_dirty is False
    assert session.save_status == SaveStatus.SAVED
    assert store.rows["1"]["title"] == "Login v2"


def test_edits_on_different_rows_are_all_saved(session, store, timers):
    session.edit_cell("1", "title", "Login v2")
    session.edit_cell("2", "title", "Export v2")
    timers[-1].fire()

    saved = {args[0] for args in _remote_calls(store, "update")}
    assert saved == {"1", "2"}
    assert not any(r.is_dirty for r in session.rows)


def test_new_row_is_created_with_generated_reference(session, store, timers):
    temp = session.add_row()
    assert is_temporary_id(temp.id) and temp.is_new and temp.is_dirty
    assert temp.get("reference_code") == "NEW"
    assert store.calls == []

    session.edit_cell(temp.id, "title", "Brand new")
    session.flush()

    (payload,) = _remote_calls(store, "create_with_generated_reference")[0]
    assert payload["evaluation_project_id"] == "proj"
    assert payload["title"] == "Brand new"
    assert "reference_code" not in payload

    created = session.rows[-1]
    assert not is_temporary_id(created.id)
    assert created.get("reference_code") == "REQ-004"
    assert not created.is_new and not created.is_dirty
    assert session.row(temp.id) is None
    assert timers[-1].cancelled


def test_invalid_row_is_not_saved(session, store, timers):
    session.edit_cell("1", "title", "   ")
    status = session.flush()

    assert status == SaveStatus.ERROR
    assert store.calls == []
    assert session.validation_errors["1"] == {"title": "Title is required"}
    assert session.row("1").is_dirty

    session.edit_cell("1", "title", "Fixed")
    assert "1" not in session.validation_errors


def test_remote_failure_keeps_row_dirty_without_retry(session, store, timers):
    store.fail_on.add("update")
    session.edit_cell("1", "title", "Login v2")
    timers[-1].fire()

    assert session.save_status == SaveStatus.ERROR
    assert session.row("1").is_dirty
    assert len(_remote_calls(store, "update")) == 1
    assert session.pending_ids == ["1"]
    assert len(timers) == 1  # nothing rescheduled


def test_failed_update_is_resent_with_next_edit(session, store, timers):
    store.fail_on.add("update")
    session.edit_cell("1", "description", "EDIT-A")
    timers[-1].fire()
    assert session.save_status == SaveStatus.ERROR

    store.fail_on.clear()
    session.edit_cell("1", "priority", "could_have")
    timers[-1].fire()

    assert _remote_calls(store, "update")[-1] == ("1", {"description": "EDIT-A", "priority": "could_have"})
    assert store.rows["1"]["description"] == "EDIT-A"
    assert not session.row("1").is_dirty
    assert session.pending_ids == []
    assert session.save_status == SaveStatus.SAVED


def test_rejected_row_keeps_edits_until_fixed(session, store, timers):
    session.edit_cell("1", "title", "")
    session.edit_cell("1", "description", "EDIT-B")
    assert session.flush() == SaveStatus.ERROR
    assert store.calls == []
    assert session.pending_ids == ["1"]

    session.edit_cell("1", "title", "Fixed")
    assert session.flush() == SaveStatus.SAVED

    assert _remote_calls(store, "update") == [("1", {"title": "Fixed", "description": "EDIT-B"})]
    assert store.rows["1"]["title"] == "Fixed"
    assert store.rows["1"]["description"] == "EDIT-B"
    assert not session.row("1").is_dirty


def test_newer_edit_wins_over_failed_value(session, store, timers):
    store.fail_on.add("update")
    session.edit_cell("1", "title", "Old")
    session.flush()

    store.fail_on.clear()
    session.edit_cell("1", "title", "New")
    session.flush()

    assert _remote_calls(store, "update")[-1] == ("1", {"title": "New"})
    assert store.rows["1"]["title"] == "New"


def test_failed_create_is_retried_on_next_save(session, store, timers):
    store.fail_on.add("create_with_generated_reference")
    temp = session.add_row()
    session.edit_cell(temp.id, "title", "Brand new")
    assert session.flush() == SaveStatus.ERROR
    assert session.pending_ids == [temp.id]

    store.fail_on.clear()
    assert session.flush() == SaveStatus.SAVED
    created = session.rows[-1]
    assert not is_temporary_id(created.id)
    assert created.get("title") == "Brand new"
    assert not created.is_dirty


def test_edit_during_flush_keeps_row_dirty(persisted_rows, timer_factory, timers):
    class EditingStore(InMemoryRequirementStore):
        session: GridSession | None = None

        def update(self, record_id, fields):
            super().update(record_id, fields)
            if fields.get("title") == "first":
                self.session.edit_cell(record_id, "title", "second")

    store = EditingStore([{"id": r.id, **r.values} for r in persisted_rows])
    session = GridSession(store, "proj", rows=persisted_rows, timer_factory=timer_factory)
    store.session = session

    session.edit_cell("1", "title", "first")
    session.flush()

    assert session.row("1").is_dirty
    assert session.pending_ids == ["1"]
    session.flush()
    assert not session.row("1").is_dirty
    assert store.rows["1"]["title"] == "second"


def test_unchanged_value_is_noop(session, timers):
    session.edit_cell("1", "title", "Login")
    assert session.undo_count == 0
    assert timers == []


def test_edit_unknown_row_raises(session):
    with pytest.raises(KeyError):
        session.edit_cell("404", "title", "x")
    with pytest.raises(ValueError):
        session.edit_cell("1", "id", "9")


def test_close_flushes_pending(session, store):
    with session:
        session.edit_cell("3", "status", "approved")
    assert _remote_calls(store, "update") == [("3", {"status": "approved"})]


# ── Add / delete ─────────────────────────────────────────────────────


def test_bulk_delete_excludes_temporaries(store, timer_factory):
    rows = [
        GridRow(id="temp-1", values={"title": ""}, is_new=True, is_dirty=True),
        GridRow(id="42", values={"title": "Keep me?"}),
    ]
    store.rows["42"] = {"id": "42", "title": "Keep me?"}
    session = GridSession(store, "proj", actor_id="user-7", rows=rows, timer_factory=timer_factory)

    removed = session.delete_rows(["temp-1", "42"])

    assert removed == 2
    assert _remote_calls(store, "bulk_delete") == [(["42"], "user-7")]
    assert session.rows == ()
    assert store.rows["42"]["is_deleted"] is True


def test_delete_only_temporaries_skips_remote(session, store):
    temp = session.add_row()
    assert session.delete_rows([temp.id]) == 1
    assert _remote_calls(store, "bulk_delete") == []


def test_delete_failure_changes_nothing(session, store):
    store.fail_on.add("bulk_delete")
    before = session.rows
    with pytest.raises(RemoteCallError):
        session.delete_rows(["1", "2"])
    assert session.rows == before
    assert session.undo_count == 0
    assert session.save_status == SaveStatus.ERROR


def test_delete_drops_pending_edits(session, store):
    session.edit_cell("2", "title", "Export v2")
    session.delete_rows(["2"])
    session.flush()
    assert _remote_calls(store, "update") == []


# ── Undo / redo ──────────────────────────────────────────────────────


def test_undo_redo_symmetry(session):
    states = [session.rows]
    session.add_row()
    states.append(session.rows)
    session.edit_cell("1", "title", "Login v2")
    states.append(session.rows)
    session.delete_rows(["2"])
    states.append(session.rows)
    session.apply_field_values(["1", "3"], {"status": "approved"}, lambda ids: None)
    states.append(session.rows)

    for expected in reversed(states[:-1]):
        assert session.undo()
        assert session.rows == expected
    assert not session.undo()

    for expected in states[1:]:
        assert session.redo()
        assert session.rows == expected
    assert not session.redo()


def test_new_action_clears_redo(session):
    session.edit_cell("1", "title", "a")
    session.undo()
    assert session.redo_count == 1
    session.edit_cell("1", "title", "b")
    assert session.redo_count == 0


def test_undo_stack_is_bounded(session):
    snapshots = []
    for i in range(60):
        snapshots.append(session.rows)
        session.edit_cell("1", "title", f"Title {i}")
    assert session.undo_count == 50

    for _ in range(50):
        assert session.undo()
    assert not session.undo()
    # the ten oldest frames were discarded
    assert session.rows == snapshots[10]


def test_session_from_config_uses_debounce_and_undo_limit(store, timer_factory, timers, write_config):
    config = load_config(write_config)
    session = GridSession.from_config(config, store, "proj", store.all("proj"), timer_factory=timer_factory)
    assert session.debounce_seconds == 0.25
    assert session.undo_limit == 20

    for i in range(25):
        session.edit_cell("1", "title", f"Title {i}")
    assert session.undo_count == 20
    assert timers[-1].interval == 0.25


def test_undo_is_local_only(session, store):
    session.delete_rows(["3"])
    calls = len(store.calls)
    session.undo()
    assert session.row("3") is not None
    assert len(store.calls) == calls


def test_undo_redo_descriptions(session):
    assert session.undo_description() == "Nothing to undo"
    session.add_row()
    session.add_row()
    assert session.undo_description() == "Undo add 1 row(s)"
    session.delete_rows(["1", "2"])
    assert session.undo_description() == "Undo delete 2 row(s)"
    session.undo()
    assert session.redo_description() == "Redo delete 2 row(s)"
    session.edit_cell("3", "title", "x")
    assert session.undo_description() == "Undo last edit"
    assert session.redo_description() == "Nothing to redo"


def test_replace_rows_resets_history(session, timers):
    session.edit_cell("1", "title", "x")
    session.replace_rows([{"id": "9", "title": "Fresh"}])
    assert [r.id for r in session.rows] == ["9"]
    assert session.undo_count == session.redo_count == 0
    assert session.pending_ids == []
    assert timers[-1].cancelled


# ── Permissions, copy, validation ────────────────────────────────────


def test_read_only_session_ignores_mutations(store, persisted_rows, timer_factory):
    session = GridSession(store, "proj", rows=persisted_rows, can_manage=False, timer_factory=timer_factory)
    assert session.edit_cell("1", "title", "x") is None
    assert session.add_row() is None
    assert session.delete_rows(["1"]) == 0
    assert session.apply_field_values(["1"], {"status": "approved"}, lambda ids: None) == 0
    assert session.rows == tuple(persisted_rows)
    assert store.calls == []


def test_copy_rows_as_tsv(session):
    session.apply_field_values(["1"], {"category_id": 1, "description": "Via SSO"}, None)
    text = session.copy_rows(["1", "3"])
    lines = text.split("\n")
    assert lines[0] == "\t".join(COPY_HEADERS)
    assert lines[1] == "Login\tVia SSO\tmust_have\tdraft\tFinance\t"
    assert lines[2].startswith("Audit\t\tcould_have\tdraft")
    assert session.copy_rows([]) == ""


def test_validate_row_limits():
    assert validate_row(GridRow(id="1", values={"title": "ok"})) == {}
    errors = validate_row(GridRow(id="1", values={"title": "t" * 256, "description": "d" * 5001}))
    assert set(errors) == {"title", "description"}
