"""Age-indexed lookup tables (life tables, utility weights, ...).

One row per integer key. Lookups are exact: a key outside the table is an
error, never an interpolation or extrapolation.
"""
from __future__ import annotations

from types import MappingProxyType
from typing import Any, Iterable, Mapping

from markov_cea.exceptions import KeyNotFound


class LookupTable:
    """Immutable mapping from integer key to named column values."""

    def __init__(self, name: str, rows: Mapping[int, Mapping[str, float]]):
        self.name = name
        table: dict[int, Mapping[str, float]] = {}
        columns: list[str] = []
        for key, values in rows.items():
            int_key = _as_key(key)
            if int_key in table:
                raise ValueError(f"Duplicate key {int_key} in lookup table '{name}'")
            table[int_key] = MappingProxyType({str(c): float(v) for c, v in values.items()})
            for col in table[int_key]:
                if col not in columns:
                    columns.append(col)
        self._rows = dict(sorted(table.items()))
        self.columns: tuple[str, ...] = tuple(columns)

    @classmethod
    def from_records(
        cls, name: str, records: Iterable[Mapping[str, Any]], key_column: str = "age",
    ) -> "LookupTable":
        """Build from row dicts that carry the key in `key_column`."""
        rows: dict[int, dict[str, float]] = {}
        for record in records:
            key = _as_key(record[key_column])
            if key in rows:
                raise ValueError(f"Duplicate key {key} in lookup table '{name}'")
            rows[key] = {c: v for c, v in record.items() if c != key_column}
        return cls(name, rows)

    @classmethod
    def from_frame(cls, name: str, frame, key_column: str = "age") -> "LookupTable":
        """Build from a pandas DataFrame with one row per key."""
        if key_column not in frame.columns:
            raise ValueError(f"Lookup table '{name}' has no key column '{key_column}'")
        return cls.from_records(name, frame.to_dict(orient="records"), key_column)

    @property
    def keys(self) -> tuple[int, ...]:
        return tuple(self._rows)

    @property
    def key_range(self) -> tuple[int, int] | None:
        if not self._rows:
            return None
        keys = self.keys
        return keys[0], keys[-1]

    def lookup(self, key: Any, column: str) -> float:
        try:
            int_key = _as_key(key)
        except ValueError:
            raise KeyNotFound(f"Key {key!r} is not an integer key of table '{self.name}'") from None
        row = self._rows.get(int_key)
        if row is None:
            raise KeyNotFound(
                f"Key {int_key} not found in table '{self.name}' (range {self.key_range})"
            )
        if column not in row:
            raise KeyNotFound(f"Column '{column}' not found in table '{self.name}'")
        return row[column]

    def __len__(self) -> int:
        return len(self._rows)

    def __repr__(self) -> str:
        return f"LookupTable(name={self.name!r}, rows={len(self)}, columns={self.columns})"


def lookup(table: LookupTable, key: Any, column: str) -> float:
    """Return `column` for `key` in `table`; raises KeyNotFound on a miss."""
    return table.lookup(key, column)


def _as_key(key: Any) -> int:
    """Coerce integral numbers (7, 7.0, numpy ints) to int; reject 7.5."""
    if isinstance(key, bool):
        raise ValueError(f"Invalid lookup key {key!r}")
    try:
        as_float = float(key)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid lookup key {key!r}") from None
    if not as_float.is_integer():
        raise ValueError(f"Lookup key {key!r} is not integral")
    return int(as_float)
