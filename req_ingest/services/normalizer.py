from __future__ import annotations

import math
import re
from collections.abc import Mapping, Sequence
from typing import Any

from ..models.field_catalog import (
    DEFAULT_PRIORITY,
    DEFAULT_STATUS,
    DESCRIPTION_MAX_LENGTH,
    PRIORITY_SYNONYMS,
    STATUS_SYNONYMS,
    TITLE_MAX_LENGTH,
    WEIGHTING_MAX,
    WEIGHTING_MIN,
    LookupEntry,
    Lookups,
)
from ..models.mapping import ColumnMapping
from ..models.records import NormalizedRecord, RowError, RowWarning, ValidationResult

"""Row normalizer & validator.

Turns raw tabular rows into NormalizedRecords using a ColumnMapping and the
lookup collections. Title is the only hard gate: a row without a usable
title is reported as an error and excluded. Every other problem degrades to
a default value plus a warning.

Pure and deterministic: no I/O, safe to call on every mapping change.
"""

__all__ = [
    "normalize_rows",
    "clamp_weighting",
    "cell_text",
    "is_blank_row",
    "MISSING_TITLE_MESSAGE",
]

MISSING_TITLE_MESSAGE = "Missing or empty title"

_WHITESPACE_RUN = re.compile(r"\s+")


def clamp_weighting(value: float) -> float:
    """Clamp into [0, 100]. Idempotent."""
    return max(WEIGHTING_MIN, min(WEIGHTING_MAX, value))


def _is_blank(cell: Any) -> bool:
    if cell is None:
        return True
    if isinstance(cell, float) and math.isnan(cell):
        return True
    if isinstance(cell, str):
        return cell == ""
    return not cell


def is_blank_row(row: Sequence[Any] | None) -> bool:
    """True when the row is missing or every cell is empty/falsy."""
    return not row or all(_is_blank(c) for c in row)


def cell_text(value: Any) -> str:
    """Coerce a raw cell to trimmed text ("" for missing cells).

    Integral floats render without a trailing ".0" (spreadsheets hand back
    5 as 5.0).
    """
    if value is None:
        return ""
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
    return str(value).strip()


def _format_number(value: float) -> str:
    return str(int(value)) if value.is_integer() else str(value)


def _parse_weighting(text: str) -> float | None:
    try:
        num = float(text)
    except ValueError:
        return None
    if not math.isfinite(num):
        return None
    return num


def _find_lookup(entries: Sequence[LookupEntry], text: str) -> LookupEntry | None:
    needle = text.lower()
    for entry in entries:
        if entry.name.lower() == needle:
            return entry
    return None


def _normalize_row(
    row: Sequence[Any],
    row_number: int,
    mapping: ColumnMapping,
    lookups: Lookups,
    priority_synonyms: Mapping[str, str],
    status_synonyms: Mapping[str, str],
) -> tuple[NormalizedRecord | None, list[RowError], list[str]]:
    record = NormalizedRecord(row_number=row_number)
    errors: list[RowError] = []
    warnings: list[str] = []
    has_title = False

    for column, field_key in mapping.active_items():
        raw = row[column] if column < len(row) else None
        if raw is None or raw == "":
            continue
        text = cell_text(raw)
        if not text:
            continue

        if field_key == "title":
            if len(text) > TITLE_MAX_LENGTH:
                errors.append(RowError(
                    row_number, f"Title too long ({len(text)}/{TITLE_MAX_LENGTH} chars)"
                ))
            else:
                record.values["title"] = text
                has_title = True

        elif field_key == "description":
            if len(text) > DESCRIPTION_MAX_LENGTH:
                warnings.append(f"Description truncated to {DESCRIPTION_MAX_LENGTH} chars")
                record.values["description"] = text[:DESCRIPTION_MAX_LENGTH]
            else:
                record.values["description"] = text

        elif field_key in ("source_reference", "acceptance_criteria"):
            record.values[field_key] = text

        elif field_key == "priority":
            mapped = priority_synonyms.get(text.lower())
            if mapped is None:
                warnings.append(f'Unknown priority "{text}", defaulting to "{DEFAULT_PRIORITY}"')
            record.values["priority"] = mapped or DEFAULT_PRIORITY

        elif field_key == "status":
            mapped = status_synonyms.get(text.lower())
            if mapped is None:
                warnings.append(f'Unknown status "{text}", defaulting to "{DEFAULT_STATUS}"')
            record.values["status"] = mapped or DEFAULT_STATUS

        elif field_key == "category_name":
            category = _find_lookup(lookups.categories, text)
            if category is not None:
                record.values["category_id"] = category.id
                record.category_display = category.name
            else:
                warnings.append(f'Category "{text}" not found, will be skipped')

        elif field_key == "stakeholder_area_name":
            area = _find_lookup(lookups.stakeholder_areas, text)
            if area is not None:
                record.values["stakeholder_area_id"] = area.id
                record.stakeholder_area_display = area.name
            else:
                warnings.append(f'Stakeholder area "{text}" not found, will be skipped')

        elif field_key == "source_type":
            record.values["source_type"] = _WHITESPACE_RUN.sub("_", text.lower())

        elif field_key == "weighting":
            num = _parse_weighting(text)
            if num is None:
                warnings.append(f'Invalid weighting "{text}", set to 0')
                record.values["weighting"] = 0
            elif num < WEIGHTING_MIN or num > WEIGHTING_MAX:
                warnings.append(f"Weighting {_format_number(num)} clamped to 0-100")
                record.values["weighting"] = clamp_weighting(num)
            else:
                record.values["weighting"] = num

    if not has_title:
        errors.append(RowError(row_number, MISSING_TITLE_MESSAGE))
        return None, errors, []
    return record, errors, warnings


def normalize_rows(
    rows: Sequence[Sequence[Any]],
    mapping: ColumnMapping,
    lookups: Lookups | None = None,
    *,
    skip_header: bool = False,
    priority_synonyms: Mapping[str, str] = PRIORITY_SYNONYMS,
    status_synonyms: Mapping[str, str] = STATUS_SYNONYMS,
) -> ValidationResult:
    """Validate ``rows`` against ``mapping``.

    Parameters
    ----------
    rows: decoded sheet rows, header row included when present
    mapping: column index -> field key
    lookups: categories / stakeholder areas for name resolution
    skip_header: ignore rows[0]

    Row numbers are 1-based positions among the rows considered, so toggling
    ``skip_header`` shifts every issue's row number by one.
    Fully blank rows are skipped without an issue.
    """
    lookups = lookups or Lookups()
    start = 1 if skip_header else 0
    records: list[NormalizedRecord] = []
    errors: list[RowError] = []
    warnings: list[RowWarning] = []

    for offset, row in enumerate(rows[start:]):
        if is_blank_row(row):
            continue
        row_number = offset + 1
        record, row_errors, row_warnings = _normalize_row(
            row, row_number, mapping, lookups, priority_synonyms, status_synonyms
        )
        errors.extend(row_errors)
        if record is None:
            continue
        records.append(record)
        if row_warnings:
            warnings.append(RowWarning(row_number, tuple(row_warnings)))

    return ValidationResult(records=records, errors=errors, warnings=warnings)
