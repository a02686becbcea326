"""Reimbursement calculator: rates, per-region amounts and per-trip summaries."""

from typing import List, Sequence

from statemiles.config import RateTable
from statemiles.models import RegionResult, Trip, TripMileage, TripSummary


def rate(region: str, rates: RateTable) -> float:
    """Dollars per mile for a region"""
    return rates.rate(region)


def compute(trip: Trip, trip_mileage: TripMileage, rates: RateTable) -> List[RegionResult]:
    results = []
    for entry in trip_mileage:
        region_rate = rate(entry.region, rates)
        final_miles = entry.miles - entry.deducted
        results.append(RegionResult(
            trip_id=trip.trip_id,
            trip_date=trip.trip_date,
            region=entry.region,
            rate=region_rate,
            miles=entry.miles,
            deducted=entry.deducted,
            final_miles=final_miles,
            reimbursement=final_miles * region_rate,
        ))
    return results


def is_high_rate_affected(results: Sequence[RegionResult], rates: RateTable) -> bool:
    """A trip is high-rate-affected when any of its entries lies in a high-rate region"""
    return any(rates.is_high_rate(result.region) for result in results)


def summarize(trip: Trip, results: Sequence[RegionResult], rates: RateTable) -> TripSummary:
    """Totals of the computed results next to the trip's reported distance and paid amount"""
    return TripSummary(
        trip_id=trip.trip_id,
        trip_date=trip.trip_date,
        reported_distance=trip.reported_distance,
        actual_amount=trip.actual_amount,
        total_final_miles=sum(result.final_miles for result in results),
        total_reimbursement=sum(result.reimbursement for result in results),
        high_rate_affected=is_high_rate_affected(results, rates),
    )
