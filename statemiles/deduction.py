"""
Deduction engine.

A trip's deduction budget is spent exactly once across all of its region
entries. High-rate regions absorb it first, then everything else; within each
group entries are charged in trip order.
"""

import logging
import math
from dataclasses import replace
from typing import List

from statemiles.config import RateTable
from statemiles.errors import InputRowError
from statemiles.models import TripMileage

logger = logging.getLogger(__name__)


def deduction_order(trip_mileage: TripMileage, rates: RateTable) -> List[int]:
    """Entry positions in the order they are charged: high-rate group first, each group in trip order"""
    high = [i for i, entry in enumerate(trip_mileage.entries) if rates.is_high_rate(entry.region)]
    rest = [i for i, entry in enumerate(trip_mileage.entries) if not rates.is_high_rate(entry.region)]
    return high + rest


def apply_deduction(deduction_budget: float, trip_mileage: TripMileage, rates: RateTable) -> TripMileage:
    """
    Return a copy of trip_mileage with the budget deducted.

    Each entry is charged min(miles, remaining budget) until the budget is gone.
    The total deducted equals min(budget, total miles) and no entry goes below
    zero final miles. Entries that are never reached keep deducted == 0.
    """
    try:
        valid = math.isfinite(deduction_budget) and deduction_budget >= 0
    except TypeError:
        valid = False
    if not valid:
        raise InputRowError(f"Invalid deduction budget: {deduction_budget!r}",
                            trip_id=trip_mileage.trip_id, stage="deduction")

    deducted = [0.0] * len(trip_mileage)
    remaining = float(deduction_budget)

    for position in deduction_order(trip_mileage, rates):
        if remaining <= 0:
            break
        take = min(trip_mileage.entries[position].miles, remaining)
        deducted[position] = take
        remaining -= take

    if remaining > 0:
        logger.debug(f"Trip {trip_mileage.trip_id}: {remaining:.2f} deduction miles left unused")

    entries = tuple(replace(entry, deducted=amount) for entry, amount in zip(trip_mileage.entries, deducted))
    return replace(trip_mileage, entries=entries)
