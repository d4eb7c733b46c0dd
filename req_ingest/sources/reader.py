from __future__ import annotations

from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd

"""Source decoding for the import wizard.

Spreadsheet and CSV files are decoded with pandas into header=None style
sheets: every row, the header included, is a plain list of cell values.
Empty cells become None. CSV yields exactly one sheet named "Sheet 1".
"""

__all__ = [
    "SourceDecodeError",
    "SUPPORTED_EXTENSIONS",
    "CSV_SHEET_NAME",
    "decode_source",
    "parse_clipboard",
]

SUPPORTED_EXTENSIONS = frozenset({".xlsx", ".xls", ".csv"})
CSV_SHEET_NAME = "Sheet 1"

RawRow = list[Any]


class SourceDecodeError(Exception):
    """Raised when a source file cannot be decoded into sheets."""


def _cell(value: Any) -> Any:
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):  # list-like cells never come out of read_excel
        return value
    if isinstance(value, np.generic):
        return value.item()
    return value


def _frame_to_rows(df: pd.DataFrame) -> list[RawRow]:
    rows = [[_cell(v) for v in raw] for raw in df.itertuples(index=False, name=None)]
    # 末尾の空行は除去 (Excel の書式だけ残った行)
    while rows and all(c is None or c == "" for c in rows[-1]):
        rows.pop()
    return rows


def decode_source(path: Path) -> dict[str, list[RawRow]]:
    """Decode a .csv/.xlsx/.xls file into ``{sheet name: rows}``.

    Sheet order follows the workbook. Text such as "NA" or "None" is kept
    verbatim instead of being turned into missing values.

    Raises:
        SourceDecodeError: unsupported extension, unreadable file, or no sheets
    """
    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_EXTENSIONS:
        raise SourceDecodeError(
            f"Unsupported file format '{suffix or path.name}'. Please use .xlsx, .xls, or .csv"
        )
    if not path.exists():
        raise SourceDecodeError(f"file not found: {path}")

    try:
        if suffix == ".csv":
            df = pd.read_csv(
                path,
                header=None,
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=False,
            )
            return {CSV_SHEET_NAME: _frame_to_rows(df)}

        sheets: dict[str, list[RawRow]] = {}
        with pd.ExcelFile(path) as xls:
            for name in xls.sheet_names:
                df = xls.parse(name, header=None, keep_default_na=False)
                sheets[str(name)] = _frame_to_rows(df)
    except pd.errors.EmptyDataError:
        return {CSV_SHEET_NAME: []}
    except Exception as e:
        raise SourceDecodeError(f"Failed to parse file: {e}") from e

    if not sheets:
        raise SourceDecodeError(f"workbook has no sheets: {path.name}")
    return sheets


def parse_clipboard(text: str | None) -> list[RawRow]:
    """Split tab-separated clipboard text into rows of cells.

    Only text containing a tab or a newline is treated as tabular; anything
    else returns an empty list so the host can handle it as a plain paste.
    """
    if not text or ("\t" not in text and "\n" not in text):
        return []
    lines = text.strip("\r\n").splitlines()
    return [line.split("\t") for line in lines]
