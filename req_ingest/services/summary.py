from __future__ import annotations

from ..models.commit_result import CommitResult
from ..models.records import ValidationResult

"""SUMMARY line rendering for the import CLI.

Formats:
    SUMMARY source={name} sheet={sheet} valid={n} errors={n} warnings={n}
    SUMMARY created={n}/{total} errors={n} batches={n} avg_batch_sec={s} p95_batch_sec={s} mode={mode}
"""

__all__ = [
    "SUMMARY_PREFIX",
    "format_seconds",
    "render_validation_summary",
    "render_commit_summary",
]

SUMMARY_PREFIX = "SUMMARY "


def format_seconds(value: float) -> str:
    """Render seconds without scientific notation.

    >>> format_seconds(2.0)
    '2'
    >>> format_seconds(0.0001234)
    '0.000123'
    """
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return f"{value:.3f}".rstrip("0").rstrip(".")


def render_validation_summary(source: str, sheet: str, result: ValidationResult) -> str:
    sheet_label = sheet.replace(" ", "_") if sheet else "-"
    return (
        f"{SUMMARY_PREFIX}source={source} sheet={sheet_label} "
        f"valid={result.valid_count} "
        f"errors={result.error_rows} "
        f"warnings={result.warning_count}"
    )


def render_commit_summary(result: CommitResult, mode: str = "live") -> str:
    """Render the commit SUMMARY line.

    >>> r = CommitResult(created=30, total=30, errors=[], batches=2, sent=30,
    ...                  avg_batch_seconds=0.5, p95_batch_seconds=1.0)
    >>> render_commit_summary(r, mode="mock")
    'SUMMARY created=30/30 errors=0 batches=2 avg_batch_sec=0.5 p95_batch_sec=1 mode=mock'
    """
    return (
        f"{SUMMARY_PREFIX}created={result.created}/{result.total} "
        f"errors={len(result.errors)} "
        f"batches={result.batches} "
        f"avg_batch_sec={format_seconds(result.avg_batch_seconds)} "
        f"p95_batch_sec={format_seconds(result.p95_batch_seconds)} "
        f"mode={mode}"
    )
