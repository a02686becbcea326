"""Leg aggregator: one trip's per-leg traversals combined into a single mileage list."""

import logging
from typing import Dict, Iterable, List

from statemiles.models import OrderedTraversal, RegionMileage, TripMileage

logger = logging.getLogger(__name__)


def aggregate(trip_id: str, traversals: Iterable[OrderedTraversal], merge_repeats: bool = False) -> TripMileage:
    """
    Concatenate traversals leg by leg, keeping each leg's travel order.

    By default every crossing stays its own entry, even when a region is
    crossed twice. With merge_repeats the miles of a repeated region are added
    to the entry of its first crossing instead.
    """
    entries: List[RegionMileage] = []
    for traversal in traversals:
        entries.extend(traversal)

    if merge_repeats:
        merged: Dict[str, float] = {}
        for entry in entries:
            merged[entry.region] = merged.get(entry.region, 0.0) + entry.miles
        if len(merged) < len(entries):
            logger.debug(f"Trip {trip_id}: merged {len(entries)} crossings into {len(merged)} regions")
        # dict keeps first-seen order
        entries = [RegionMileage(region, miles) for region, miles in merged.items()]

    return TripMileage(trip_id, tuple(entries))
