#!/usr/bin/env python3
"""Generate synthetic requirement workbooks for manual and performance testing.

The sheets look like real stakeholder exports:
- Row 1: header row with human column names ("Requirement", "Priority", ...)
- Row 2+: requirement rows, with a configurable share of messy values
  (synonym priorities, unknown statuses, blank titles, out-of-range weights)

Usage examples are in ``--help``.
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

import numpy as np
import pandas as pd

HEADERS = [
    "Requirement",
    "Details",
    "Priority",
    "Status",
    "Category",
    "Stakeholder",
    "Acceptance Criteria",
    "Weight",
]

PRIORITY_TEXT = ["Must have", "Should", "could_have", "Low", "High", "wont_have"]
STATUS_TEXT = ["Draft", "New", "Under review", "approved", "rejected"]
CATEGORIES = ["Functional", "Security", "Integration", "Reporting", "Usability"]
STAKEHOLDERS = ["Finance", "IT", "Operations", "Procurement"]


def generate_requirements(rows: int, messy_ratio: float = 0.1, seed: int = 42) -> pd.DataFrame:
    """Build a DataFrame of requirement rows.

    Args:
        rows: number of data rows
        messy_ratio: share of rows that get one invalid or unusual value
        seed: random seed for reproducible data
    """
    rng = np.random.default_rng(seed)

    data = {
        "Requirement": [f"Requirement {i + 1}: system shall support case {i + 1}" for i in range(rows)],
        "Details": [f"Details for requirement {i + 1}" for i in range(rows)],
        "Priority": rng.choice(PRIORITY_TEXT, rows).tolist(),
        "Status": rng.choice(STATUS_TEXT, rows).tolist(),
        "Category": rng.choice(CATEGORIES, rows).tolist(),
        "Stakeholder": rng.choice(STAKEHOLDERS, rows).tolist(),
        "Acceptance Criteria": ["Given/When/Then" for _ in range(rows)],
        "Weight": np.round(rng.uniform(0, 100, rows), 1).tolist(),
    }
    df = pd.DataFrame(data, columns=HEADERS)

    messy = rng.random(rows) < messy_ratio
    kinds = rng.integers(0, 4, rows)
    for i in np.flatnonzero(messy):
        kind = kinds[i]
        if kind == 0:
            df.at[i, "Requirement"] = ""
        elif kind == 1:
            df.at[i, "Priority"] = "urgent"
        elif kind == 2:
            df.at[i, "Weight"] = 250
        else:
            df.at[i, "Category"] = "Unknown Category"
    return df


def create_workbook(
    output_path: Path,
    rows: int,
    sheets: list[str] | None = None,
    messy_ratio: float = 0.1,
    seed: int = 42,
) -> None:
    """Write one sheet per name; CSV output when the suffix is ``.csv``."""
    if sheets is None:
        sheets = ["Requirements"]
    output_path.parent.mkdir(parents=True, exist_ok=True)

    if output_path.suffix.lower() == ".csv":
        generate_requirements(rows, messy_ratio, seed).to_csv(output_path, index=False)
    else:
        with pd.ExcelWriter(output_path, engine="openpyxl") as writer:
            for offset, sheet_name in enumerate(sheets):
                df = generate_requirements(rows, messy_ratio, seed + offset)
                df.to_excel(writer, sheet_name=sheet_name, index=False)

    print(f"Created: {output_path}")
    print(f"  Sheets: {len(sheets)} ({', '.join(sheets)})")
    print(f"  Rows per sheet: {rows} (+ 1 header row)")


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Generate synthetic requirement workbooks",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s data/requirements.xlsx --rows 500
  %(prog)s data/requirements.csv --rows 100 --messy 0.3
  %(prog)s data/multi.xlsx --sheets Phase1 Phase2 --seed 7
        """,
    )
    parser.add_argument("output", type=Path, help="Output .xlsx or .csv path")
    parser.add_argument("--rows", type=int, default=200, help="Data rows per sheet (default: 200)")
    parser.add_argument("--sheets", nargs="+", default=["Requirements"], help="Sheet names")
    parser.add_argument("--messy", type=float, default=0.1, help="Share of messy rows (default: 0.1)")
    parser.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")
    args = parser.parse_args()

    if args.rows <= 0:
        print("Error: --rows must be positive", file=sys.stderr)
        return 1
    if not 0 <= args.messy <= 1:
        print("Error: --messy must be between 0 and 1", file=sys.stderr)
        return 1

    create_workbook(args.output, args.rows, args.sheets, args.messy, args.seed)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
