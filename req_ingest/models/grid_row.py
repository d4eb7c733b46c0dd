from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

"""GridRow model and SaveStatus enum for the editable requirements grid.

GridRow is frozen: every mutation produces a new instance, so undo frames
can share unchanged rows between snapshots.
"""

__all__ = [
    "GridRow",
    "SaveStatus",
    "TEMP_ID_PREFIX",
    "is_temporary_id",
]

TEMP_ID_PREFIX = "temp-"


def is_temporary_id(row_id: Any) -> bool:
    """True for session-local ids handed out before the first save."""
    return str(row_id).startswith(TEMP_ID_PREFIX)


class SaveStatus(Enum):
    """Grid persistence status shown by the host UI.

    State transitions: idle → saving → (saved | error)
    """
    IDLE = "idle"
    SAVING = "saving"
    SAVED = "saved"
    ERROR = "error"


@dataclass(frozen=True)
class GridRow:
    """Persisted requirement plus session-local flags.

    ``values`` is never mutated in place; ``with_values`` returns a copy.
    """
    id: Any
    values: dict[str, Any] = field(default_factory=dict)
    is_new: bool = False  # no durable identity yet
    is_dirty: bool = False  # local edits not yet confirmed saved

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)

    def with_values(self, dirty: bool | None = None, **changes: Any) -> GridRow:
        merged = {**self.values, **changes}
        return replace(
            self,
            values=merged,
            is_dirty=self.is_dirty if dirty is None else dirty,
        )

    def mark_saved(self) -> GridRow:
        return replace(self, is_dirty=False, is_new=False)

    @staticmethod
    def from_record(record: dict[str, Any]) -> GridRow:
        """Build a clean row from a persisted record (must carry ``id``)."""
        values = {k: v for k, v in record.items() if k != "id"}
        return GridRow(id=record["id"], values=values, is_new=False, is_dirty=False)
