"""Table registry: scans TABLE_DIR once at startup and keeps lookup tables.

Every `*.csv` file becomes a LookupTable named after the file stem, keyed on
the `age` column. Tables are read-only for the lifetime of the process.
"""
from __future__ import annotations

import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

from markov_cea.config import settings
from markov_cea.data.loaders import load_lookup_table
from markov_cea.exceptions import KeyNotFound
from markov_cea.simulation.lookup import LookupTable

logger = logging.getLogger(__name__)


class TableRegistry:
    """Singleton holding the lookup tables available to models."""

    _instance: "TableRegistry | None" = None

    def __init__(self) -> None:
        self._tables: dict[str, LookupTable] = {}
        self._loaded = False
        self._table_dir: Path | None = None

    @classmethod
    def get(cls) -> "TableRegistry":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset singleton, mainly for testing."""
        cls._instance = None

    def load(self, table_dir: str | Path | None = None, key_column: str | None = None) -> None:
        self._table_dir = Path(table_dir or settings.TABLE_DIR).resolve()
        key_column = key_column or settings.TABLE_KEY_COLUMN
        logger.info("Loading lookup tables from %s", self._table_dir)

        if not self._table_dir.is_dir():
            logger.warning("Table directory %s not found; no lookup tables loaded", self._table_dir)
            self._loaded = True
            return

        for path in sorted(self._table_dir.glob("*.csv")):
            try:
                table = load_lookup_table(path, key_column=key_column)
            except (OSError, ValueError) as e:
                logger.warning("Failed to load lookup table %s: %s", path.name, e)
                continue
            self._tables[table.name] = table
            logger.info("Loaded table '%s': %d rows, columns %s", table.name, len(table), table.columns)

        self._loaded = True
        logger.info("Table loading complete: %d tables", len(self._tables))

    def register(self, table: LookupTable) -> None:
        self._tables[table.name] = table

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    @property
    def tables(self) -> Mapping[str, LookupTable]:
        return MappingProxyType(self._tables)

    def select(self, names: list[str] | None = None) -> dict[str, LookupTable]:
        """Return the named tables (all when `names` is None)."""
        if names is None:
            return dict(self._tables)
        missing = [n for n in names if n not in self._tables]
        if missing:
            raise KeyNotFound(f"Lookup tables not loaded: {missing}")
        return {n: self._tables[n] for n in names}

    def get_status(self) -> dict[str, Any]:
        if not self._loaded:
            return {"status": "not_loaded"}
        return {
            "status": "loaded",
            "table_dir": str(self._table_dir) if self._table_dir else None,
            "tables": {
                name: {
                    "rows": len(table),
                    "columns": list(table.columns),
                    "key_range": list(table.key_range) if table.key_range else None,
                }
                for name, table in self._tables.items()
            },
        }
