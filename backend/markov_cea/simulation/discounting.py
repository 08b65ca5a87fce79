"""Discounting: present value of a per-cycle value."""
from __future__ import annotations


def discount_factor(rate: float, cycle_index: int, first_cycle: bool = False) -> float:
    """1 / (1+r)^t, with t shifted by one when discounting from the first cycle."""
    if rate < 0:
        raise ValueError(f"Discount rate must be non-negative, got {rate}")
    if cycle_index < 0:
        raise ValueError(f"Cycle index must be non-negative, got {cycle_index}")
    exponent = cycle_index + 1 if first_cycle else cycle_index
    return 1.0 / (1.0 + rate) ** exponent


def discount(raw_value: float, rate: float, cycle_index: int, first_cycle: bool = False) -> float:
    """Present value of `raw_value` realized at `cycle_index`.

    With `first_cycle=False` a value realized at cycle 0 is undiscounted.
    With `first_cycle=True` discounting starts at cycle 0, which is how values
    are treated when transitions happen at the beginning of a cycle.
    """
    return raw_value * discount_factor(rate, cycle_index, first_cycle)
