from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

from req_ingest.models.error_record import ErrorRecord
from req_ingest.models.records import RowError

"""Error log generation & buffering.

- JSON Lines with a fixed schema (no extra keys)
- One ``errors-YYYYMMDD-HHMMSS.log`` (UTC) per buffer, created on first flush
- Records are buffered and written in one go by ``flush()``
"""

__all__ = [
    "ErrorRecord",
    "ErrorLogBuffer",
]

LOGS_DIR = Path("./logs")
TIMESTAMP_FMT = "%Y%m%d-%H%M%S"


class ErrorLogBuffer:
    """In-memory buffer for error records. Flush writes JSON Lines.

    - flush() appends to the file (created when missing)
    - the file path is fixed on first access
    - not thread safe (one wizard session writes at a time)
    """
    def __init__(self, logs_dir: Path | None = None) -> None:
        self._records: list[ErrorRecord] = []
        self._file_path: Path | None = None
        self._logs_dir = logs_dir if logs_dir is not None else LOGS_DIR

    @property
    def file_path(self) -> Path:
        if self._file_path is None:
            self._logs_dir.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now(UTC).strftime(TIMESTAMP_FMT)
            self._file_path = self._logs_dir / f"errors-{stamp}.log"
        return self._file_path

    @property
    def records(self) -> list[ErrorRecord]:
        return list(self._records)

    def append(self, record: ErrorRecord) -> None:
        self._records.append(record)

    def extend_row_errors(self, source: str, sheet: str, errors: list[RowError]) -> None:
        """Buffer validation errors as ROW_VALIDATION_ERROR records."""
        for err in errors:
            self.append(ErrorRecord.create(
                source=source,
                sheet=sheet,
                row=err.row_number,
                error_type="ROW_VALIDATION_ERROR",
                message=err.message,
            ))

    def clear(self) -> None:
        self._records.clear()

    def __len__(self) -> int:  # pragma: no cover (trivial)
        return len(self._records)

    def flush(self) -> Path | None:
        """Write buffered records; returns the log path, None when nothing was buffered."""
        if not self._records:
            return None
        fp = self.file_path
        with fp.open("a", encoding="utf-8") as f:
            for r in self._records:
                f.write(r.to_json_line() + "\n")
        self._records.clear()
        return fp
