"""Tabular inputs: lookup tables and initial populations via pandas."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

import pandas as pd

from markov_cea.exceptions import InvalidInitialPopulation
from markov_cea.simulation.lookup import LookupTable

logger = logging.getLogger(__name__)


def load_lookup_table(path: str | Path, key_column: str = "age", name: str | None = None) -> LookupTable:
    """Read a CSV with one row per integer key into a LookupTable."""
    path = Path(path)
    frame = pd.read_csv(path)
    if frame.empty:
        raise ValueError(f"Lookup table file {path.name} has no rows")
    return LookupTable.from_frame(name or path.stem, frame, key_column=key_column)


def initial_population_from_frame(
    frame: pd.DataFrame,
    row: int,
    states: Sequence[str] | None = None,
    scale: float | None = None,
) -> dict[str, float]:
    """Pick one row of per-state counts (or proportions) as an initial cohort.

    `states` restricts/orders the columns read (default: every numeric
    column). `scale` multiplies the row, e.g. proportions x 1000.
    """
    if row < 0 or row >= len(frame):
        raise IndexError(f"Row {row} out of range for {len(frame)} initial populations")
    columns = list(states) if states is not None else list(frame.select_dtypes("number").columns)
    missing = [c for c in columns if c not in frame.columns]
    if missing:
        raise ValueError(f"Initial population table has no columns {missing}")
    record = frame.iloc[row][columns]
    population = {str(c): float(v) for c, v in record.items()}
    if scale is not None:
        population = {c: v * scale for c, v in population.items()}
    negative = [c for c, v in population.items() if not v >= 0.0]
    if negative:
        raise InvalidInitialPopulation(f"Row {row} has negative counts for {negative}")
    return population


def load_initial_populations(path: str | Path) -> pd.DataFrame:
    frame = pd.read_csv(Path(path))
    logger.info("Loaded %d initial population rows from %s", len(frame), path)
    return frame
