from __future__ import annotations

import logging
import re
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

import psycopg2
from psycopg2.extras import RealDictCursor

from ..models.commit_result import BulkCreateResult
from ..models.field_catalog import DEFAULT_PRIORITY, DEFAULT_SOURCE_TYPE, DEFAULT_STATUS
from .batch_insert import BatchMetrics, batch_insert
from .store import PersistenceError, build_create_payloads, next_reference_code, sanitize_update

"""PostgreSQL RequirementStore (live mode).

Each store call runs in its own transaction: committed on success, rolled
back on failure and surfaced as PersistenceError. Deletes are soft
(is_deleted / deleted_at / deleted_by).
"""

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_INSERT_COLUMNS = (
    "evaluation_project_id",
    "reference_code",
    "title",
    "description",
    "priority",
    "status",
    "category_id",
    "stakeholder_area_id",
    "source_type",
    "source_reference",
    "acceptance_criteria",
    "weighting",
)


def _assignments(data: dict[str, Any]) -> str:
    for key in data:
        if not _IDENTIFIER.match(key):
            raise PersistenceError(f"invalid column name: {key!r}")
    return ", ".join(f'"{k}" = %s' for k in data)


def connect(dsn: str) -> Any:  # pragma: no cover (thin wrapper; live DB only)
    conn = psycopg2.connect(dsn)
    conn.autocommit = False
    return conn


class PostgresRequirementStore:
    def __init__(
        self,
        connection: Any,
        table: str = "requirements",
        metrics_callback: Any = None,
    ) -> None:
        if not _IDENTIFIER.match(table):
            raise ValueError(f"invalid table name: {table!r}")
        self._conn = connection
        self._table = table
        self._metrics_callback = metrics_callback

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[Any]:
        cur = self._conn.cursor(cursor_factory=RealDictCursor)
        try:
            yield cur
            self._conn.commit()
        except PersistenceError:
            self._conn.rollback()
            raise
        except Exception as e:
            self._conn.rollback()
            logger.error("%s failed table=%s: %s", operation, self._table, e)
            raise PersistenceError(f"{operation} failed: {e}") from e
        finally:
            cur.close()

    def _last_reference(self, cur: Any, container_id: Any) -> str | None:
        # 削除済みも含めて最大値を取得 (コード再利用防止)
        cur.execute(
            f"SELECT reference_code FROM {self._table} "
            "WHERE evaluation_project_id = %s AND reference_code LIKE 'REQ-%%' "
            "ORDER BY length(reference_code) DESC, reference_code DESC LIMIT 1",
            (container_id,),
        )
        row = cur.fetchone()
        return row["reference_code"] if row else None

    def _on_metrics(self, metrics: BatchMetrics) -> None:
        logger.debug("batch_insert rows=%d elapsed=%.4f", metrics.batch_size, metrics.elapsed_seconds)
        if self._metrics_callback is not None:
            self._metrics_callback(metrics)

    def bulk_create(self, container_id: Any, records: Sequence[dict[str, Any]]) -> BulkCreateResult:
        if not records:
            return BulkCreateResult(created=0)
        with self._transaction("bulk_create") as cur:
            payloads = build_create_payloads(container_id, records, self._last_reference(cur, container_id))
            if not payloads:
                return BulkCreateResult(created=0, errors=["No valid requirements to create"])
            result = batch_insert(
                cur,
                table=self._table,
                columns=_INSERT_COLUMNS,
                rows=[[p[c] for c in _INSERT_COLUMNS] for p in payloads],
                returning=True,
                metrics_callback=self._on_metrics,
            )
        created = [dict(r) for r in result.returned_values or []]
        return BulkCreateResult(created=len(created), records=created)

    def bulk_update(self, ids: Sequence[Any], fields: dict[str, Any]) -> None:
        if not ids:
            return
        data = sanitize_update(fields)
        assignments = _assignments(data)
        with self._transaction("bulk_update") as cur:
            cur.execute(
                f"UPDATE {self._table} SET {assignments} WHERE id = ANY(%s)",
                (*data.values(), list(ids)),
            )

    def bulk_delete(self, ids: Sequence[Any], actor_id: Any = None) -> None:
        if not ids:
            return
        with self._transaction("bulk_delete") as cur:
            cur.execute(
                f"UPDATE {self._table} SET is_deleted = TRUE, deleted_at = %s, deleted_by = %s "
                "WHERE id = ANY(%s)",
                (datetime.now(UTC), actor_id, list(ids)),
            )

    def create_with_generated_reference(self, record: dict[str, Any]) -> dict[str, Any]:
        container_id = record.get("evaluation_project_id")
        if container_id is None:
            raise PersistenceError("evaluation_project_id is required")
        with self._transaction("create_with_generated_reference") as cur:
            payload = {
                **{c: record.get(c) for c in _INSERT_COLUMNS},
                "reference_code": record.get("reference_code")
                or next_reference_code(self._last_reference(cur, container_id)),
                "status": record.get("status") or DEFAULT_STATUS,
                "priority": record.get("priority") or DEFAULT_PRIORITY,
                "source_type": record.get("source_type") or DEFAULT_SOURCE_TYPE,
            }
            result = batch_insert(
                cur,
                table=self._table,
                columns=_INSERT_COLUMNS,
                rows=[[payload[c] for c in _INSERT_COLUMNS]],
                returning=True,
                metrics_callback=self._on_metrics,
            )
        returned = result.returned_values or []
        if not returned:
            raise PersistenceError("create returned no row")
        return dict(returned[0])

    def update(self, record_id: Any, fields: dict[str, Any]) -> None:
        data = sanitize_update(fields)
        assignments = _assignments(data)
        with self._transaction("update") as cur:
            cur.execute(
                f"UPDATE {self._table} SET {assignments} WHERE id = %s",
                (*data.values(), record_id),
            )
            if cur.rowcount == 0:
                raise PersistenceError(f"requirement not found: {record_id}")

    def bulk_submit_for_review(
        self, container_id: Any, ids: Sequence[Any], actor_id: Any = None
    ) -> None:
        logger.info(
            "submit for review container=%s count=%d actor=%s", container_id, len(ids), actor_id
        )
        self.bulk_update(ids, {"status": "under_review"})
