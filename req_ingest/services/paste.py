from __future__ import annotations

import logging
from collections.abc import Sequence

from ..models.field_catalog import Lookups
from ..models.mapping import ColumnMapping
from ..models.records import NormalizedRecord, ValidationResult
from ..sources.reader import RawRow, parse_clipboard
from .header_inference import infer_mapping, looks_like_header
from .normalizer import normalize_rows
from .wizard import WizardTransitionError

"""Paste wizard: map clipboard rows and recompute validation on every change."""

__all__ = ["PasteWizard"]

logger = logging.getLogger(__name__)


class PasteWizard:
    def __init__(self, rows: Sequence[RawRow], lookups: Lookups | None = None) -> None:
        self.rows = [list(r) for r in rows]
        self.lookups = lookups or Lookups()
        if looks_like_header(self.rows):
            self.skip_header = True
            self.mapping = infer_mapping(self.rows[0])
        else:
            self.skip_header = False
            self.mapping = ColumnMapping()
        self.result = ValidationResult.empty()
        self._recompute()

    @classmethod
    def from_clipboard(cls, text: str | None, lookups: Lookups | None = None) -> PasteWizard:
        return cls(parse_clipboard(text), lookups)

    def _recompute(self) -> None:
        self.result = normalize_rows(
            self.rows, self.mapping, self.lookups, skip_header=self.skip_header
        )
        logger.debug(
            "paste recompute rows=%d valid=%d errors=%d",
            len(self.rows), self.result.valid_count, self.result.error_count,
        )

    @property
    def column_count(self) -> int:
        return max((len(r) for r in self.rows), default=0)

    def assign_column(self, column: int, field: str) -> None:
        self.mapping.assign(column, field)
        self._recompute()

    def clear_column(self, column: int) -> None:
        self.mapping.clear(column)
        self._recompute()

    def set_skip_header(self, skip: bool) -> None:
        self.skip_header = skip
        self._recompute()

    def commit(self) -> list[NormalizedRecord]:
        """Hand the current valid records to the host for creation."""
        if not self.mapping.has_title:
            raise WizardTransitionError("a column must be mapped to 'title'")
        if not self.result.records:
            raise WizardTransitionError("nothing to import: no valid records")
        return list(self.result.records)
