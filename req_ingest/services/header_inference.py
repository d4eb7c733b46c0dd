from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

from ..models.mapping import ColumnMapping

"""Header inference: guess a column mapping from a header row.

The guess is a keyword heuristic, never authoritative: the mapping step
always lets the user override it before validation.
"""

__all__ = [
    "HEADER_KEYWORDS",
    "infer_mapping",
    "match_header",
    "looks_like_header",
]

# Paste flow: any of these in a first-row cell marks the row as headers
HEADER_KEYWORDS = ("title", "description", "name", "requirement", "priority", "status", "category")


def _contains_any(*words: str) -> Callable[[str], bool]:
    return lambda header: any(w in header for w in words)


# Ordered: first matching predicate wins. source_type sits before
# category_name, otherwise "source type" would be caught by "type".
_PREDICATES: tuple[tuple[str, Callable[[str], bool]], ...] = (
    ("title", lambda h: "title" in h or "name" in h or h == "requirement"),
    ("description", _contains_any("description", "desc", "detail")),
    ("priority", _contains_any("priority", "moscow")),
    ("status", _contains_any("status", "state")),
    ("source_type", lambda h: "source" in h and "type" in h),
    ("category_name", _contains_any("category", "cat", "type")),
    ("stakeholder_area_name", _contains_any("stakeholder", "area", "department")),
    ("source_reference", _contains_any("source", "reference")),
    ("acceptance_criteria", _contains_any("acceptance", "criteria")),
    ("weighting", _contains_any("weight")),
)


def _header_text(cell: Any) -> str:
    if cell is None:
        return ""
    return str(cell).strip().lower()


def match_header(cell: Any) -> str | None:
    """Field key guessed for one header cell, None when nothing matches."""
    header = _header_text(cell)
    if not header:
        return None
    for field_key, predicate in _PREDICATES:
        if predicate(header):
            return field_key
    return None


def infer_mapping(header_row: Sequence[Any] | None) -> ColumnMapping:
    """Seed a ColumnMapping from the candidate header row.

    Unmatched columns are left out (implicit skip).

    >>> infer_mapping(["Req Title", "Priority", "Status"]).as_dict()
    {0: 'title', 1: 'priority', 2: 'status'}
    """
    mapping = ColumnMapping()
    for idx, cell in enumerate(header_row or ()):
        field_key = match_header(cell)
        if field_key is not None:
            mapping.assign(idx, field_key)
    return mapping


def looks_like_header(rows: Sequence[Sequence[Any]]) -> bool:
    """Detect a header row in pasted data.

    Needs at least two rows (a lone row is always data) and a first-row cell
    containing one of ``HEADER_KEYWORDS``.
    """
    if len(rows) < 2:
        return False
    for cell in rows[0]:
        text = _header_text(cell)
        if text and any(kw in text for kw in HEADER_KEYWORDS):
            return True
    return False
