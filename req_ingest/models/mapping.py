from __future__ import annotations

from collections.abc import Iterator, Mapping

from .field_catalog import FIELD_KEYS, SKIP

"""ColumnMapping model: source column index -> requirement field key.

Keys are not required to be unique. When two columns target the same field
the later column (ascending index) wins during normalization;
``duplicate_targets()`` lets the wizard report the ambiguity.
"""

__all__ = [
    "ColumnMapping",
]


class ColumnMapping:
    """Mutable mapping of column index to field key (or ``SKIP``)."""

    def __init__(self, initial: Mapping[int, str] | None = None) -> None:
        self._fields: dict[int, str] = {}
        for column, field in (initial or {}).items():
            self.assign(column, field)

    def assign(self, column: int, field: str) -> None:
        """Map ``column`` to ``field``. ``SKIP`` keeps the column explicitly ignored."""
        if column < 0:
            raise ValueError(f"column index must be >= 0: {column}")
        if field != SKIP and field not in FIELD_KEYS:
            raise ValueError(f"unknown field key: {field!r}")
        self._fields[int(column)] = field

    def clear(self, column: int) -> None:
        self._fields.pop(column, None)

    def field_for(self, column: int) -> str:
        return self._fields.get(column, SKIP)

    def active_items(self) -> list[tuple[int, str]]:
        """Mapped (column, field) pairs in ascending column order, skips excluded."""
        return [(c, f) for c, f in sorted(self._fields.items()) if f != SKIP]

    @property
    def has_title(self) -> bool:
        return any(f == "title" for _, f in self.active_items())

    def duplicate_targets(self) -> dict[str, list[int]]:
        """Fields mapped from more than one column -> the columns, ascending."""
        by_field: dict[str, list[int]] = {}
        for column, field in self.active_items():
            by_field.setdefault(field, []).append(column)
        return {f: cols for f, cols in by_field.items() if len(cols) > 1}

    def copy(self) -> ColumnMapping:
        return ColumnMapping(self._fields)

    def as_dict(self) -> dict[int, str]:
        return dict(self._fields)

    def __iter__(self) -> Iterator[int]:
        return iter(sorted(self._fields))

    def __len__(self) -> int:
        return len(self._fields)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ColumnMapping):
            return self._fields == other._fields
        if isinstance(other, Mapping):
            return self._fields == dict(other)
        return NotImplemented

    def __repr__(self) -> str:
        return f"ColumnMapping({self._fields!r})"
