from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from ..db.store import RequirementStore
from ..logging.error_log import ErrorLogBuffer
from ..models.commit_result import CommitProgress, CommitResult
from ..models.error_record import ErrorRecord
from ..models.field_catalog import Lookups
from ..models.mapping import ColumnMapping
from ..models.records import ValidationResult
from ..sources.reader import RawRow, SourceDecodeError, decode_source
from .batch_commit import DEFAULT_BATCH_SIZE, CommitBatchError, commit_in_batches
from .header_inference import infer_mapping
from .normalizer import normalize_rows

"""Import wizard: explicit state machine for file-based requirement import.

    AWAITING_SOURCE → [SHEET_SELECTION] → COLUMN_MAPPING → VALIDATED
        → COMMITTING → COMPLETE

SHEET_SELECTION is skipped when the source has exactly one sheet. Every
transition checks its precondition and raises WizardTransitionError when it
does not hold; ``can_validate`` / ``can_commit`` let the host disable the
matching actions up front. ``cancel()`` is always allowed and never touches
the remote store.
"""

__all__ = [
    "WizardStep",
    "WizardTransitionError",
    "ValidationSummary",
    "ImportWizard",
]

logger = logging.getLogger(__name__)


class WizardStep(Enum):
    AWAITING_SOURCE = "awaiting_source"
    SHEET_SELECTION = "sheet_selection"
    COLUMN_MAPPING = "column_mapping"
    VALIDATED = "validated"
    COMMITTING = "committing"
    COMPLETE = "complete"
    CANCELLED = "cancelled"


class WizardTransitionError(Exception):
    """Raised when an action is not allowed in the current step."""


@dataclass(frozen=True)
class ValidationSummary:
    """Row counts shown on the validation step."""
    valid_rows: int
    error_rows: int
    warning_rows: int

    @staticmethod
    def from_result(result: ValidationResult) -> ValidationSummary:
        return ValidationSummary(
            valid_rows=result.valid_count,
            error_rows=result.error_rows,
            warning_rows=result.warning_count,
        )


class ImportWizard:
    """Working state of one file-import session (single writer, single reader)."""

    def __init__(
        self,
        lookups: Lookups | None = None,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        error_log: ErrorLogBuffer | None = None,
        decoder: Callable[[Path], dict[str, list[RawRow]]] = decode_source,
    ) -> None:
        self.lookups = lookups or Lookups()
        self.batch_size = batch_size
        self.error_log = error_log
        self._decoder = decoder
        self._reset()

    def _reset(self) -> None:
        self.step = WizardStep.AWAITING_SOURCE
        self.source_name: str | None = None
        self.sheets: dict[str, list[RawRow]] = {}
        self.selected_sheet: str | None = None
        self.rows: list[RawRow] = []
        self.mapping = ColumnMapping()
        self.skip_header = True
        self.validation: ValidationResult | None = None
        self.progress = CommitProgress(current=0, total=0)
        self.result: CommitResult | None = None
        self.error: str | None = None

    # ── Guards ────────────────────────────────────────────────────────

    def _require(self, *steps: WizardStep) -> None:
        if self.step == WizardStep.CANCELLED:
            raise WizardTransitionError("import session was cancelled")
        if self.step not in steps:
            allowed = ", ".join(s.value for s in steps)
            raise WizardTransitionError(
                f"not allowed in step '{self.step.value}' (expected {allowed})"
            )

    @property
    def can_validate(self) -> bool:
        return self.step == WizardStep.COLUMN_MAPPING and self.mapping.has_title

    @property
    def can_commit(self) -> bool:
        return (
            self.step == WizardStep.VALIDATED
            and self.validation is not None
            and self.validation.valid_count > 0
        )

    def _log_error(self, row: int, error_type: str, message: str) -> None:
        if self.error_log is None:
            return
        self.error_log.append(ErrorRecord.create(
            source=self.source_name or "<unknown>",
            sheet=self.selected_sheet or "",
            row=row,
            error_type=error_type,
            message=message,
        ))

    # ── Source acquisition ───────────────────────────────────────────

    def load_file(self, path: Path) -> WizardStep:
        """Decode ``path`` and advance; decode failures keep AWAITING_SOURCE."""
        self._require(WizardStep.AWAITING_SOURCE)
        self.source_name = path.name
        try:
            sheets = self._decoder(path)
        except SourceDecodeError as e:
            self.error = str(e)
            logger.error("decode failed source=%s: %s", path.name, e)
            self._log_error(-1, "SOURCE_DECODE_ERROR", str(e))
            raise
        return self.load_sheets(sheets, source_name=path.name)

    def load_sheets(self, sheets: dict[str, list[RawRow]], source_name: str = "<memory>") -> WizardStep:
        """Accept already decoded sheets (sheet order = dict order)."""
        self._require(WizardStep.AWAITING_SOURCE)
        if not sheets:
            self.error = "source contains no sheets"
            raise SourceDecodeError(self.error)
        self.source_name = source_name
        self.sheets = dict(sheets)
        self.error = None
        if len(self.sheets) == 1:
            self._enter_sheet(next(iter(self.sheets)))
        else:
            self.step = WizardStep.SHEET_SELECTION
        logger.info(
            "source=%s sheets=%d step=%s", source_name, len(self.sheets), self.step.value
        )
        return self.step

    def _enter_sheet(self, name: str) -> None:
        self.selected_sheet = name
        self.rows = list(self.sheets[name])
        self.mapping = infer_mapping(self.rows[0] if self.rows else [])
        self.validation = None
        self.step = WizardStep.COLUMN_MAPPING

    def select_sheet(self, name: str) -> WizardStep:
        self._require(WizardStep.SHEET_SELECTION, WizardStep.COLUMN_MAPPING)
        if self.step == WizardStep.COLUMN_MAPPING and len(self.sheets) < 2:
            raise WizardTransitionError("source has a single sheet")
        if name not in self.sheets:
            raise WizardTransitionError(f"unknown sheet: {name!r}")
        self._enter_sheet(name)
        return self.step

    # ── Mapping ───────────────────────────────────────────────────────

    @property
    def headers(self) -> list[Any]:
        return list(self.rows[0]) if self.rows else []

    def assign_column(self, column: int, field: str) -> None:
        self._require(WizardStep.COLUMN_MAPPING)
        self.mapping.assign(column, field)

    def clear_column(self, column: int) -> None:
        self._require(WizardStep.COLUMN_MAPPING)
        self.mapping.clear(column)

    def set_skip_header(self, skip: bool) -> None:
        self._require(WizardStep.COLUMN_MAPPING)
        self.skip_header = skip

    def preview(self, limit: int = 5) -> list[RawRow]:
        start = 1 if self.skip_header else 0
        return self.rows[start:start + limit]

    # ── Validation ────────────────────────────────────────────────────

    def validate(self) -> ValidationResult:
        self._require(WizardStep.COLUMN_MAPPING)
        if not self.mapping.has_title:
            raise WizardTransitionError("a column must be mapped to 'title' before validation")

        for field_key, columns in self.mapping.duplicate_targets().items():
            logger.warning(
                "field=%s mapped from columns %s; column %d wins", field_key, columns, columns[-1]
            )

        result = normalize_rows(
            self.rows, self.mapping, self.lookups, skip_header=self.skip_header
        )
        self.validation = result
        if self.error_log is not None and result.errors:
            self.error_log.extend_row_errors(
                self.source_name or "<unknown>", self.selected_sheet or "", result.errors
            )
        self.step = WizardStep.VALIDATED
        logger.info(
            "validated sheet=%s valid=%d errors=%d warnings=%d",
            self.selected_sheet, result.valid_count, result.error_count, result.warning_count,
        )
        return result

    def summary(self) -> ValidationSummary | None:
        if self.validation is None:
            return None
        return ValidationSummary.from_result(self.validation)

    # ── Navigation ────────────────────────────────────────────────────

    def back(self) -> WizardStep:
        """Step back; the mapping survives and inference is not re-run."""
        self._require(
            WizardStep.SHEET_SELECTION, WizardStep.COLUMN_MAPPING, WizardStep.VALIDATED
        )
        if self.step == WizardStep.VALIDATED:
            self.validation = None
            self.step = WizardStep.COLUMN_MAPPING
        elif self.step == WizardStep.COLUMN_MAPPING and len(self.sheets) > 1:
            self.step = WizardStep.SHEET_SELECTION
        else:
            self._reset()
        return self.step

    def cancel(self) -> None:
        """Discard the session. No remote calls are made."""
        self._reset()
        self.step = WizardStep.CANCELLED
        logger.debug("import session cancelled")

    # ── Commit ────────────────────────────────────────────────────────

    def commit(
        self,
        store: RequirementStore,
        container_id: Any,
        progress_callback: Callable[[CommitProgress], None] | None = None,
    ) -> CommitResult:
        """Bulk-create the validated records in batches.

        On a failing batch the wizard goes back to VALIDATED with ``error``
        set and ``result`` holding what was committed, then re-raises.
        """
        self._require(WizardStep.VALIDATED)
        validation = self.validation
        if validation is None or not self.can_commit:
            raise WizardTransitionError("nothing to import: no valid records")

        records = validation.records
        self.step = WizardStep.COMMITTING
        self.error = None
        self.progress = CommitProgress(current=0, total=len(records))

        def on_progress(progress: CommitProgress) -> None:
            self.progress = progress
            if progress_callback is not None:
                progress_callback(progress)

        try:
            result = commit_in_batches(
                records,
                lambda payloads: store.bulk_create(container_id, payloads),
                batch_size=self.batch_size,
                progress_callback=on_progress,
            )
        except CommitBatchError as e:
            self.result = e.partial
            self.error = str(e)
            self.step = WizardStep.VALIDATED
            self._log_error(-1, "COMMIT_BATCH_ERROR", f"batch {e.batch_index + 1}: {e}")
            raise

        self.result = result
        self.step = WizardStep.COMPLETE
        logger.info(
            "import complete created=%d total=%d errors=%d",
            result.created, result.total, len(result.errors),
        )
        return result
