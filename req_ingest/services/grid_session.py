from __future__ import annotations

import logging
import threading
import uuid
from collections import deque
from collections.abc import Callable, Iterable
from typing import Any

from ..config.loader import IngestConfig
from ..db.store import PersistenceError, RequirementStore
from ..models.field_catalog import (
    DEFAULT_PRIORITY,
    DEFAULT_SOURCE_TYPE,
    DEFAULT_STATUS,
    DESCRIPTION_MAX_LENGTH,
    TITLE_MAX_LENGTH,
    Lookups,
)
from ..models.grid_row import TEMP_ID_PREFIX, GridRow, SaveStatus, is_temporary_id

"""Editable grid session.

Holds the live row collection for one requirements container and keeps it in
sync with the store:

- Cell edits are applied locally first, merged into per-row pending deltas
  and flushed by a single debounce timer (0.5 s after the last edit). One
  remote call is made per pending row.
- Every mutating action pushes the pre-action collection onto a bounded undo
  deque and clears redo. Undo/redo swap local snapshots only; no remote call
  is re-issued or reversed.
- Delete and bulk updates wait for the store before touching local state. On
  failure nothing changes locally, save_status becomes ERROR and
  RemoteCallError is raised.

All state is guarded by an RLock because the debounce timer fires on its own
thread. Remote calls made by a flush run outside the lock, so edits arriving
meanwhile keep their rows dirty.
"""

__all__ = [
    "GridSession",
    "RemoteCallError",
    "NEW_ROW_DEFAULTS",
    "COPY_HEADERS",
    "validate_row",
]

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.5
DEFAULT_UNDO_LIMIT = 50

# Placeholder code shown on unsaved rows; the store allocates the real one
_PLACEHOLDER_REFERENCE = "NEW"

NEW_ROW_DEFAULTS: dict[str, Any] = {
    "reference_code": _PLACEHOLDER_REFERENCE,
    "title": "",
    "description": "",
    "priority": DEFAULT_PRIORITY,
    "status": DEFAULT_STATUS,
    "source_type": DEFAULT_SOURCE_TYPE,
    "weighting": 0,
}

COPY_HEADERS = ("Title", "Description", "Priority", "Status", "Category", "Stakeholder Area")

TimerFactory = Callable[[float, Callable[[], None]], Any]
Snapshot = tuple[GridRow, ...]


class RemoteCallError(Exception):
    """A user-initiated grid/bulk remote call failed."""


def validate_row(row: GridRow) -> dict[str, str]:
    """Field → message for a row that must not be saved yet."""
    errors: dict[str, str] = {}
    title = row.get("title")
    if title is None or not str(title).strip():
        errors["title"] = "Title is required"
    elif len(str(title)) > TITLE_MAX_LENGTH:
        errors["title"] = f"Title must be {TITLE_MAX_LENGTH} characters or less"
    description = row.get("description")
    if description and len(str(description)) > DESCRIPTION_MAX_LENGTH:
        errors["description"] = f"Description must be {DESCRIPTION_MAX_LENGTH} characters or less"
    return errors


def _describe(action: str, before: Snapshot, after: Snapshot) -> str:
    diff = len(after) - len(before)
    if diff > 0:
        return f"{action} add {diff} row(s)"
    if diff < 0:
        return f"{action} delete {-diff} row(s)"
    return f"{action} last edit"


class GridSession:
    """Live, undoable view of a container's requirements."""

    def __init__(
        self,
        store: RequirementStore,
        container_id: Any,
        *,
        actor_id: Any = None,
        rows: Iterable[GridRow] = (),
        lookups: Lookups | None = None,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        undo_limit: int = DEFAULT_UNDO_LIMIT,
        can_manage: bool = True,
        timer_factory: TimerFactory = threading.Timer,
    ) -> None:
        self.store = store
        self.container_id = container_id
        self.actor_id = actor_id
        self.lookups = lookups or Lookups()
        self.debounce_seconds = debounce_seconds
        self.undo_limit = undo_limit
        self.can_manage = can_manage
        self._timer_factory = timer_factory

        self._lock = threading.RLock()
        self._rows: Snapshot = tuple(rows)
        self._undo: deque[Snapshot] = deque(maxlen=undo_limit)
        self._redo: list[Snapshot] = []
        self._pending: dict[Any, dict[str, Any]] = {}
        self._timer: Any = None
        self.save_status = SaveStatus.IDLE
        self.validation_errors: dict[Any, dict[str, str]] = {}

    @classmethod
    def from_records(cls, store: RequirementStore, container_id: Any, records: Iterable[dict[str, Any]], **kwargs: Any) -> GridSession:
        return cls(store, container_id, rows=[GridRow.from_record(r) for r in records], **kwargs)

    @classmethod
    def from_config(
        cls,
        config: IngestConfig,
        store: RequirementStore,
        container_id: Any,
        records: Iterable[dict[str, Any]] = (),
        **kwargs: Any,
    ) -> GridSession:
        """Session whose debounce and undo depth come from the loaded config."""
        kwargs.setdefault("debounce_seconds", config.debounce_seconds)
        kwargs.setdefault("undo_limit", config.undo_limit)
        return cls.from_records(store, container_id, records, **kwargs)

    # ── Read access ──────────────────────────────────────────────────

    @property
    def rows(self) -> Snapshot:
        with self._lock:
            return self._rows

    def row(self, row_id: Any) -> GridRow | None:
        with self._lock:
            return next((r for r in self._rows if r.id == row_id), None)

    @property
    def undo_count(self) -> int:
        return len(self._undo)

    @property
    def redo_count(self) -> int:
        return len(self._redo)

    @property
    def pending_ids(self) -> list[Any]:
        with self._lock:
            return list(self._pending)

    def undo_description(self) -> str:
        with self._lock:
            if not self._undo:
                return "Nothing to undo"
            return _describe("Undo", self._undo[-1], self._rows)

    def redo_description(self) -> str:
        with self._lock:
            if not self._redo:
                return "Nothing to redo"
            return _describe("Redo", self._rows, self._redo[-1])

    # ── History ──────────────────────────────────────────────────────

    def _push_history(self) -> None:
        self._undo.append(self._rows)
        self._redo.clear()

    def undo(self) -> bool:
        with self._lock:
            if not self._undo:
                return False
            self._redo.append(self._rows)
            self._rows = self._undo.pop()
            return True

    def redo(self) -> bool:
        with self._lock:
            if not self._redo:
                return False
            self._undo.append(self._rows)
            self._rows = self._redo.pop()
            return True

    def replace_rows(self, records: Iterable[dict[str, Any] | GridRow]) -> None:
        """Reload from persisted truth; history and pending edits are dropped."""
        rows: list[GridRow] = []
        for rec in records:
            if isinstance(rec, GridRow):
                rows.append(rec)
            else:
                rows.append(GridRow.from_record(rec))
        with self._lock:
            self._cancel_timer()
            self._rows = tuple(rows)
            self._undo.clear()
            self._redo.clear()
            self._pending.clear()
            self.validation_errors.clear()

    # ── Local mutations ──────────────────────────────────────────────

    def _index(self, row_id: Any) -> int:
        for i, r in enumerate(self._rows):
            if r.id == row_id:
                return i
        raise KeyError(f"row not found: {row_id}")

    def edit_cell(self, row_id: Any, field: str, value: Any) -> GridRow | None:
        """Optimistically set one field and schedule a debounced save."""
        if not self.can_manage:
            return None
        if field == "id":
            raise ValueError("the id column is not editable")
        with self._lock:
            index = self._index(row_id)
            current = self._rows[index]
            if current.get(field) == value and field in current.values:
                return current
            self._push_history()
            updated = current.with_values(dirty=True, **{field: value})
            self._rows = self._rows[:index] + (updated,) + self._rows[index + 1:]
            self._pending.setdefault(row_id, {})[field] = value
            self.validation_errors.pop(row_id, None)
            self._restart_timer()
            return updated

    def add_row(self) -> GridRow | None:
        if not self.can_manage:
            return None
        row = GridRow(
            id=f"{TEMP_ID_PREFIX}{uuid.uuid4().hex}",
            values=dict(NEW_ROW_DEFAULTS),
            is_new=True,
            is_dirty=True,
        )
        with self._lock:
            self._push_history()
            self._rows = self._rows + (row,)
        logger.debug("added row id=%s", row.id)
        return row

    def delete_rows(self, ids: Iterable[Any]) -> int:
        """Soft-delete durable rows remotely, then drop every selected row.

        Returns the number of rows removed locally.
        """
        if not self.can_manage:
            return 0
        selected = set(ids)
        with self._lock:
            targets = [r for r in self._rows if r.id in selected]
            if not targets:
                return 0
            durable = [r.id for r in targets if not is_temporary_id(r.id)]
            if durable:
                try:
                    self.store.bulk_delete(durable, self.actor_id)
                except PersistenceError as e:
                    self.save_status = SaveStatus.ERROR
                    logger.error("bulk delete failed count=%d: %s", len(durable), e)
                    raise RemoteCallError(f"Failed to delete requirements: {e}") from e
            self._push_history()
            self._rows = tuple(r for r in self._rows if r.id not in selected)
            for r in targets:
                self._pending.pop(r.id, None)
                self.validation_errors.pop(r.id, None)
        logger.info("deleted rows=%d remote=%d", len(targets), len(durable))
        return len(targets)

    def apply_field_values(
        self,
        ids: Iterable[Any],
        fields: dict[str, Any],
        remote_call: Callable[[list[Any]], None] | None,
        *,
        failure_message: str = "Failed to update requirements",
    ) -> int:
        """Set ``fields`` on every selected row after ``remote_call(durable_ids)`` succeeds.

        ``remote_call`` is skipped when no durable row is selected. Pending
        deltas for the same fields are dropped so a later flush cannot write
        the older values back.
        """
        if not self.can_manage:
            return 0
        selected = set(ids)
        with self._lock:
            targets = [r for r in self._rows if r.id in selected]
            if not targets:
                return 0
            durable = [r.id for r in targets if not is_temporary_id(r.id)]
            if durable and remote_call is not None:
                try:
                    remote_call(durable)
                except PersistenceError as e:
                    self.save_status = SaveStatus.ERROR
                    logger.error("bulk update failed fields=%s count=%d: %s", sorted(fields), len(durable), e)
                    raise RemoteCallError(f"{failure_message}: {e}") from e
            self._push_history()
            self._rows = tuple(
                r.with_values(**fields) if r.id in selected else r for r in self._rows
            )
            for r in targets:
                delta = self._pending.get(r.id)
                if delta is None:
                    continue
                for key in fields:
                    delta.pop(key, None)
                if not delta:
                    del self._pending[r.id]
        return len(targets)

    def copy_rows(self, ids: Iterable[Any]) -> str:
        """Selected rows as tab-separated text with a header line ("" when none)."""
        selected = set(ids)
        categories = {str(c.id): c.name for c in self.lookups.categories}
        areas = {str(a.id): a.name for a in self.lookups.stakeholder_areas}
        lines = []
        for r in self.rows:
            if r.id not in selected:
                continue
            lines.append("\t".join([
                str(r.get("title") or ""),
                str(r.get("description") or ""),
                str(r.get("priority") or ""),
                str(r.get("status") or ""),
                categories.get(str(r.get("category_id")), ""),
                areas.get(str(r.get("stakeholder_area_id")), ""),
            ]))
        if not lines:
            return ""
        return "\n".join(["\t".join(COPY_HEADERS), *lines])

    # ── Debounced persistence ────────────────────────────────────────

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _restart_timer(self) -> None:
        self._cancel_timer()
        timer = self._timer_factory(self.debounce_seconds, self._on_timer)
        if hasattr(timer, "daemon"):
            timer.daemon = True
        self._timer = timer
        timer.start()

    def _on_timer(self) -> None:
        with self._lock:
            self._timer = None
        self.flush()

    def _create_payload(self, row: GridRow) -> dict[str, Any]:
        payload = {k: v for k, v in row.values.items() if k != "id"}
        if payload.get("reference_code") == _PLACEHOLDER_REFERENCE:
            payload.pop("reference_code")
        payload["evaluation_project_id"] = self.container_id
        return payload

    def _requeue(self, row_id: Any, delta: dict[str, Any]) -> None:
        # Edits made while the save was in flight win over the failed ones
        with self._lock:
            self._pending[row_id] = {**delta, **self._pending.get(row_id, {})}

    def flush(self) -> SaveStatus:
        """Save every pending row now.

        Failures set ERROR and keep the row's edits pending. Nothing is
        rescheduled; the edits go out with the row's next save.
        """
        with self._lock:
            self._cancel_timer()
            if not self._pending:
                return self.save_status
            batch = self._pending
            self._pending = {}
            work: list[tuple[GridRow, dict[str, Any]]] = []
            failed = False
            for row_id, delta in batch.items():
                row = self.row(row_id)
                if row is None:
                    logger.debug("pending row id=%s no longer present; dropped", row_id)
                    continue
                errors = validate_row(row)
                if errors:
                    self.validation_errors[row_id] = errors
                    failed = True
                    self._requeue(row_id, delta)
                    logger.warning("row id=%s not saved: %s", row_id, "; ".join(errors.values()))
                    continue
                work.append((row, delta))
            if work:
                self.save_status = SaveStatus.SAVING

        for row, delta in work:
            try:
                if row.is_new:
                    created = self.store.create_with_generated_reference(self._create_payload(row))
                    self._on_created(row.id, created)
                else:
                    self.store.update(row.id, delta)
                    self._on_updated(row.id)
            except PersistenceError as e:
                failed = True
                self._requeue(row.id, delta)
                logger.error("save failed row id=%s: %s", row.id, e)

        with self._lock:
            if failed:
                self.save_status = SaveStatus.ERROR
            elif work:
                self.save_status = SaveStatus.SAVED
            return self.save_status

    def _on_created(self, temp_id: Any, created: dict[str, Any]) -> None:
        with self._lock:
            try:
                index = self._index(temp_id)
            except KeyError:
                logger.debug("created row id=%s was removed locally", created.get("id"))
                return
            newer = self._pending.pop(temp_id, None)
            saved = GridRow.from_record(created)
            if newer:
                saved = saved.with_values(dirty=True, **newer)
                self._pending[saved.id] = newer
            self._rows = self._rows[:index] + (saved,) + self._rows[index + 1:]
            self.validation_errors.pop(temp_id, None)
        logger.debug("created row temp=%s id=%s", temp_id, saved.id)

    def _on_updated(self, row_id: Any) -> None:
        with self._lock:
            if row_id in self._pending:
                return
            try:
                index = self._index(row_id)
            except KeyError:
                return
            self._rows = self._rows[:index] + (self._rows[index].mark_saved(),) + self._rows[index + 1:]

    def close(self) -> SaveStatus:
        """Stop the timer and save whatever is still pending."""
        return self.flush()

    def __enter__(self) -> GridSession:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

