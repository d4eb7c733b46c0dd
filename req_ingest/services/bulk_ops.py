from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from ..models.field_catalog import PRIORITY_VALUES, STATUS_VALUES, LookupEntry, Lookups
from ..models.grid_row import is_temporary_id
from .grid_session import GridSession

"""Bulk field operations on the selected rows of a grid session."""

__all__ = [
    "BULK_FIELDS",
    "BulkOutcome",
    "BulkFieldOperator",
]

logger = logging.getLogger(__name__)

BULK_FIELDS = ("status", "priority", "category_id", "stakeholder_area_id")

SUBMITTABLE_STATUS = "draft"
REVIEW_STATUS = "under_review"


@dataclass(frozen=True)
class BulkOutcome:
    updated: int
    message: str


def _resolve_lookup(entries: Iterable[LookupEntry], value: Any, label: str) -> Any:
    """Return the lookup id for ``value`` given as an id or a display name."""
    if value is None or value == "":
        return None
    for entry in entries:
        if str(entry.id) == str(value):
            return entry.id
    text = str(value).strip().lower()
    for entry in entries:
        if entry.name.lower() == text:
            return entry.id
    raise ValueError(f"unknown {label}: {value!r}")


class BulkFieldOperator:
    def __init__(self, session: GridSession, lookups: Lookups | None = None) -> None:
        self.session = session
        self.lookups = lookups or session.lookups

    def _coerce(self, field: str, value: Any) -> Any:
        if field == "status":
            if value not in STATUS_VALUES:
                raise ValueError(f"invalid status: {value!r}")
        elif field == "priority":
            if value not in PRIORITY_VALUES:
                raise ValueError(f"invalid priority: {value!r}")
        elif field == "category_id":
            return _resolve_lookup(self.lookups.categories, value, "category")
        elif field == "stakeholder_area_id":
            return _resolve_lookup(self.lookups.stakeholder_areas, value, "stakeholder area")
        else:
            raise ValueError(f"field not supported for bulk update: {field!r}")
        return value

    def set_field(self, selected_ids: Iterable[Any], field: str, value: Any) -> BulkOutcome:
        """Set one field on every selected row (one remote call for durable rows).

        Raises:
            ValueError: unsupported field or value
            RemoteCallError: the store rejected the update; nothing changed locally
        """
        value = self._coerce(field, value)
        store = self.session.store
        updated = self.session.apply_field_values(
            list(selected_ids),
            {field: value},
            lambda ids: store.bulk_update(ids, {field: value}),
        )
        if not updated:
            return BulkOutcome(updated=0, message="No requirements selected")
        logger.info("bulk set field=%s value=%r rows=%d", field, value, updated)
        return BulkOutcome(updated=updated, message=f"Updated {updated} requirement(s)")

    def submit_for_approval(self, selected_ids: Iterable[Any]) -> BulkOutcome:
        """Send the selected draft rows for review.

        Only durable rows whose status is exactly ``draft`` take part.
        """
        selected = set(selected_ids)
        eligible = [
            r.id for r in self.session.rows
            if r.id in selected
            and not is_temporary_id(r.id)
            and r.get("status") == SUBMITTABLE_STATUS
        ]
        if not eligible:
            return BulkOutcome(updated=0, message="No draft requirements selected to submit")

        session = self.session
        updated = session.apply_field_values(
            eligible,
            {"status": REVIEW_STATUS},
            lambda ids: session.store.bulk_submit_for_review(
                session.container_id, ids, session.actor_id
            ),
            failure_message="Failed to submit requirements for approval",
        )
        logger.info("submitted for approval rows=%d", updated)
        return BulkOutcome(
            updated=updated, message=f"Submitted {updated} requirement(s) for approval"
        )
