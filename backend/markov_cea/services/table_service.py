"""Lookup table service.

Facade for table registry loading and status.
"""
from __future__ import annotations

import logging
from typing import Any

from markov_cea.data.registry import TableRegistry

logger = logging.getLogger(__name__)


def initialize_tables(table_dir: str | None = None) -> None:
    """Load all lookup tables at startup."""
    registry = TableRegistry.get()
    registry.load(table_dir)
    logger.info("Tables initialized, status: %s", registry.get_status().get("status"))


def get_table_status() -> dict[str, Any]:
    """Return current table registry status for API consumption."""
    return TableRegistry.get().get_status()
