from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

"""Validation output models: NormalizedRecord, RowError, RowWarning.

Row issues are tracked in separate collections keyed by row number, they
are not attached to the NormalizedRecord itself.
"""

__all__ = [
    "NormalizedRecord",
    "RowError",
    "RowWarning",
    "ValidationResult",
]


@dataclass
class NormalizedRecord:
    """Validated requirement produced from one source row.

    ``values`` holds persistable fields only (title, description, priority,
    status, category_id, stakeholder_area_id, source_type, source_reference,
    acceptance_criteria, weighting). The remaining attributes are provenance
    for display and are dropped by ``to_payload()``.
    """
    row_number: int
    values: dict[str, Any] = field(default_factory=dict)
    category_display: str | None = None
    stakeholder_area_display: str | None = None

    @property
    def title(self) -> str | None:
        return self.values.get("title")

    def to_payload(self) -> dict[str, Any]:
        return dict(self.values)


@dataclass(frozen=True)
class RowError:
    """Row-level error: the row is excluded from the importable set."""
    row_number: int
    message: str


@dataclass(frozen=True)
class RowWarning:
    """Row-level warnings: the row is imported with substituted defaults."""
    row_number: int
    messages: tuple[str, ...]


@dataclass(frozen=True)
class ValidationResult:
    records: list[NormalizedRecord]
    errors: list[RowError]
    warnings: list[RowWarning]

    @property
    def valid_count(self) -> int:
        return len(self.records)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def warning_count(self) -> int:
        return len(self.warnings)

    @property
    def error_rows(self) -> int:
        """Distinct rows carrying at least one error."""
        return len({e.row_number for e in self.errors})

    @staticmethod
    def empty() -> ValidationResult:
        return ValidationResult(records=[], errors=[], warnings=[])
