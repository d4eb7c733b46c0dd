from __future__ import annotations

import itertools
import re
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from typing import Any, Protocol

from ..models.commit_result import BulkCreateResult
from ..models.field_catalog import DEFAULT_PRIORITY, DEFAULT_SOURCE_TYPE, DEFAULT_STATUS

"""Remote persistence contract and the in-memory store.

The wizard, grid session and bulk operator only talk to a RequirementStore.
InMemoryRequirementStore backs mock mode and the tests;
PostgresRequirementStore (db.postgres) backs live mode.
"""

__all__ = [
    "PersistenceError",
    "RequirementStore",
    "InMemoryRequirementStore",
    "next_reference_code",
    "build_create_payloads",
    "sanitize_update",
    "REFERENCE_PREFIX",
]

REFERENCE_PREFIX = "REQ-"
_REFERENCE_PATTERN = re.compile(r"REQ-(\d+)")

# Never written through a bulk update
_PROTECTED_FIELDS = frozenset({"id", "reference_code", "is_deleted", "deleted_at", "deleted_by"})

_OPTIONAL_TEXT_FIELDS = ("description", "source_reference", "acceptance_criteria")


class PersistenceError(Exception):
    """Raised when a remote persistence call fails."""


class RequirementStore(Protocol):
    def bulk_create(
        self, container_id: Any, records: Sequence[dict[str, Any]]
    ) -> BulkCreateResult: ...

    def bulk_update(self, ids: Sequence[Any], fields: dict[str, Any]) -> None: ...

    def bulk_delete(self, ids: Sequence[Any], actor_id: Any = None) -> None: ...

    def create_with_generated_reference(self, record: dict[str, Any]) -> dict[str, Any]: ...

    def update(self, record_id: Any, fields: dict[str, Any]) -> None: ...

    def bulk_submit_for_review(
        self, container_id: Any, ids: Sequence[Any], actor_id: Any = None
    ) -> None: ...


def next_reference_code(last_code: str | None, offset: int = 0) -> str:
    """Reference code following ``last_code`` (REQ-001 when none).

    >>> next_reference_code("REQ-009")
    'REQ-010'
    >>> next_reference_code(None, offset=2)
    'REQ-003'
    """
    base = 0
    if last_code:
        match = _REFERENCE_PATTERN.search(last_code)
        if match:
            base = int(match.group(1))
    return f"{REFERENCE_PREFIX}{base + 1 + offset:03d}"


def _clean_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def build_create_payloads(
    container_id: Any, records: Iterable[dict[str, Any]], last_code: str | None
) -> list[dict[str, Any]]:
    """Apply bulk-create defaults and allocate reference codes.

    Records without a title are dropped.
    """
    payloads: list[dict[str, Any]] = []
    for rec in records:
        title = _clean_text(rec.get("title"))
        if not title:
            continue
        payload = {
            "evaluation_project_id": container_id,
            "reference_code": next_reference_code(last_code, offset=len(payloads)),
            "title": title,
            "priority": rec.get("priority") or DEFAULT_PRIORITY,
            "status": rec.get("status") or DEFAULT_STATUS,
            "category_id": rec.get("category_id"),
            "stakeholder_area_id": rec.get("stakeholder_area_id"),
            "source_type": rec.get("source_type") or DEFAULT_SOURCE_TYPE,
            "weighting": rec.get("weighting") or 0,
        }
        for key in _OPTIONAL_TEXT_FIELDS:
            payload[key] = _clean_text(rec.get(key))
        payloads.append(payload)
    return payloads


def sanitize_update(fields: dict[str, Any]) -> dict[str, Any]:
    data = {k: v for k, v in fields.items() if k not in _PROTECTED_FIELDS}
    data["updated_at"] = datetime.now(UTC).isoformat()
    return data


class InMemoryRequirementStore:
    """Dict-backed RequirementStore.

    Soft delete mirrors the live table: rows get ``is_deleted`` and are
    hidden from ``all()``. ``fail_on`` makes the named operations raise
    PersistenceError, which is how tests exercise failure paths.
    """

    def __init__(self, records: Iterable[dict[str, Any]] = ()) -> None:
        self.rows: dict[Any, dict[str, Any]] = {}
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.fail_on: set[str] = set()
        seeded = [dict(rec) for rec in records]
        # New ids continue after the largest numeric seed id
        start = max((int(r["id"]) for r in seeded if str(r.get("id", "")).isdigit()), default=0) + 1
        self._ids = itertools.count(start)
        for rec in seeded:
            if "id" not in rec:
                rec["id"] = str(next(self._ids))
            self.rows[rec["id"]] = rec

    def _enter(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        if name in self.fail_on:
            raise PersistenceError(f"{name} failed (simulated)")

    def _last_reference(self, container_id: Any) -> str | None:
        codes = sorted(
            (
                r["reference_code"]
                for r in self.rows.values()
                if r.get("evaluation_project_id") == container_id and r.get("reference_code")
            ),
            key=lambda code: (len(code), code),
        )
        return codes[-1] if codes else None

    def _insert(self, payload: dict[str, Any]) -> dict[str, Any]:
        row = {"id": str(next(self._ids)), **payload, "is_deleted": False}
        self.rows[row["id"]] = row
        return dict(row)

    def all(self, container_id: Any = None) -> list[dict[str, Any]]:
        return [
            dict(r) for r in self.rows.values()
            if not r.get("is_deleted")
            and (container_id is None or r.get("evaluation_project_id") == container_id)
        ]

    def bulk_create(self, container_id: Any, records: Sequence[dict[str, Any]]) -> BulkCreateResult:
        self._enter("bulk_create", container_id, [dict(r) for r in records])
        if not records:
            return BulkCreateResult(created=0)
        payloads = build_create_payloads(container_id, records, self._last_reference(container_id))
        if not payloads:
            return BulkCreateResult(created=0, errors=["No valid requirements to create"])
        created = [self._insert(p) for p in payloads]
        return BulkCreateResult(created=len(created), records=created)

    def bulk_update(self, ids: Sequence[Any], fields: dict[str, Any]) -> None:
        self._enter("bulk_update", list(ids), dict(fields))
        data = sanitize_update(fields)
        for rid in ids:
            if rid in self.rows:
                self.rows[rid].update(data)

    def bulk_delete(self, ids: Sequence[Any], actor_id: Any = None) -> None:
        self._enter("bulk_delete", list(ids), actor_id)
        now = datetime.now(UTC).isoformat()
        for rid in ids:
            if rid in self.rows:
                self.rows[rid].update(is_deleted=True, deleted_at=now, deleted_by=actor_id)

    def create_with_generated_reference(self, record: dict[str, Any]) -> dict[str, Any]:
        self._enter("create_with_generated_reference", dict(record))
        container_id = record.get("evaluation_project_id")
        if container_id is None:
            raise PersistenceError("evaluation_project_id is required")
        payload = {
            **record,
            "reference_code": record.get("reference_code")
            or next_reference_code(self._last_reference(container_id)),
            "status": record.get("status") or DEFAULT_STATUS,
            "priority": record.get("priority") or DEFAULT_PRIORITY,
            "source_type": record.get("source_type") or DEFAULT_SOURCE_TYPE,
        }
        payload.pop("id", None)
        return self._insert(payload)

    def update(self, record_id: Any, fields: dict[str, Any]) -> None:
        self._enter("update", record_id, dict(fields))
        if record_id not in self.rows:
            raise PersistenceError(f"requirement not found: {record_id}")
        self.rows[record_id].update(sanitize_update(fields))

    def bulk_submit_for_review(
        self, container_id: Any, ids: Sequence[Any], actor_id: Any = None
    ) -> None:
        self._enter("bulk_submit_for_review", container_id, list(ids), actor_id)
        data = sanitize_update({"status": "under_review"})
        for rid in ids:
            if rid in self.rows:
                self.rows[rid].update(data)
