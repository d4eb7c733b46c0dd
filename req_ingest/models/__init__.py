"""Domain models for the requirements bulk-ingest pipeline.

This package contains the data classes shared by the header inference,
normalizer, wizards, batch commit driver and grid edit session.
"""

from .commit_result import BatchStatsAccumulator, BulkCreateResult, CommitProgress, CommitResult
from .error_record import ErrorRecord
from .field_catalog import (
    REQUIREMENT_FIELDS,
    SKIP,
    FieldSpec,
    LookupEntry,
    Lookups,
)
from .grid_row import GridRow, SaveStatus
from .mapping import ColumnMapping
from .records import NormalizedRecord, RowError, RowWarning, ValidationResult

__all__ = [
    # Catalog
    "FieldSpec",
    "LookupEntry",
    "Lookups",
    "REQUIREMENT_FIELDS",
    "SKIP",
    # Mapping / validation
    "ColumnMapping",
    "NormalizedRecord",
    "RowError",
    "RowWarning",
    "ValidationResult",
    # Commit
    "BulkCreateResult",
    "CommitProgress",
    "CommitResult",
    "BatchStatsAccumulator",
    # Grid
    "GridRow",
    "SaveStatus",
    # Logging
    "ErrorRecord",
]
