"""Record types flowing through the mileage pipeline."""

from dataclasses import dataclass
from typing import Iterator, Tuple


@dataclass(frozen=True)
class Trip:
    """Trip-level metadata (one row of the trips table)"""
    trip_id: str
    trip_date: str
    reported_distance: float
    deduction_budget: float
    actual_amount: float


@dataclass(frozen=True)
class Leg:
    """One GPS leg of a trip (one row of the legs table)"""
    trip_id: str
    leg_date: str
    start_lat: float
    start_lon: float
    end_lat: float
    end_lon: float
    reported_distance: float


@dataclass(frozen=True)
class RegionMileage:
    """Miles traveled inside one region on one crossing"""
    region: str
    miles: float
    deducted: float = 0.0

    @property
    def final_miles(self) -> float:
        return self.miles - self.deducted


# Entries of one path in the order the path enters them
OrderedTraversal = Tuple[RegionMileage, ...]


@dataclass(frozen=True)
class TripMileage:
    """
    Every crossing of one trip: leg order first, then travel order inside each leg.
    """
    trip_id: str
    entries: Tuple[RegionMileage, ...] = ()

    def __iter__(self) -> Iterator[RegionMileage]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def total_miles(self) -> float:
        return sum(entry.miles for entry in self.entries)

    @property
    def total_deducted(self) -> float:
        return sum(entry.deducted for entry in self.entries)


@dataclass(frozen=True)
class RegionResult:
    """Priced mileage for one region entry of a trip (per-region output row)"""
    trip_id: str
    trip_date: str
    region: str
    rate: float
    miles: float
    deducted: float
    final_miles: float
    reimbursement: float


@dataclass(frozen=True)
class TripSummary:
    """Computed totals for a trip next to what was reported and paid"""
    trip_id: str
    trip_date: str
    reported_distance: float
    actual_amount: float
    total_final_miles: float
    total_reimbursement: float
    high_rate_affected: bool
