"""
State Miles processing pipeline.

Phase 1 reads trips and legs, phase 2 loads region boundaries, phase 3 turns
every trip's legs into deducted, priced per-region mileage, phase 4 builds the
three reports and phase 5 writes them.
"""

import logging
import time
from pathlib import Path
from typing import Dict, List, Sequence, Tuple

import pandas as pd
from shapely.errors import GEOSException

from statemiles import tables
from statemiles.aggregation import aggregate
from statemiles.config import Settings, describe_rates
from statemiles.deduction import apply_deduction
from statemiles.errors import InputRowError
from statemiles.models import Leg, RegionResult, Trip, TripSummary
from statemiles.paths import build_path
from statemiles.regions import RegionIndex
from statemiles.reimbursement import compute, summarize
from statemiles.traversal import resolve

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────────────────────────────────────
# Per-trip computation
# ──────────────────────────────────────────────────────────────────────────────

def process_trip(trip: Trip, legs: Sequence[Leg], region_index: RegionIndex,
                 settings: Settings) -> Tuple[List[RegionResult], TripSummary]:
    """
    Legs -> traversals -> trip mileage -> deduction -> priced results.

    Pure with respect to its inputs: nothing shared between trips is modified.
    """
    traversals = []
    for leg_number, leg in enumerate(legs, 1):
        try:
            path = build_path(leg.start_lat, leg.start_lon, leg.end_lat, leg.end_lon)
            traversal = resolve(path, region_index, settings.earth_radius_miles)
        except InputRowError as e:
            e.trip_id = trip.trip_id
            raise
        except GEOSException as e:
            raise InputRowError(f"Geometry error on leg {leg_number}: {e}",
                                trip_id=trip.trip_id, stage="traversal") from e

        logger.debug(
            f"Trip {trip.trip_id} leg {leg_number}: "
            + (" → ".join(f"{m.region} {m.miles:.1f}" for m in traversal) or "outside all regions")
        )
        traversals.append(traversal)

    trip_mileage = aggregate(trip.trip_id, traversals, merge_repeats=settings.merge_repeat_crossings)
    trip_mileage = apply_deduction(trip.deduction_budget, trip_mileage, settings.rates)
    results = compute(trip, trip_mileage, settings.rates)
    return results, summarize(trip, results, settings.rates)


# ──────────────────────────────────────────────────────────────────────────────
# Phase 1: Input
# ──────────────────────────────────────────────────────────────────────────────

def step1_read_inputs(settings: Settings) -> Tuple[pd.DataFrame, pd.DataFrame]:
    logger.info("Phase 1: Reading trip and leg data...")

    trips = tables.read_trips(settings.trips_file)
    legs = tables.read_legs(settings.legs_file)

    logger.info("Phase 1 completed:")
    logger.info(f"  • Trip rows: {len(trips)} ({trips[tables.TRIP_ID].nunique()} unique trips)")
    logger.info(f"  • Leg rows: {len(legs)}")
    logger.info("--------------------------------")

    tables.save_debug_frame(settings.debug_dir, "phase1_trips", trips)
    tables.save_debug_frame(settings.debug_dir, "phase1_legs", legs)
    return trips, legs


# ──────────────────────────────────────────────────────────────────────────────
# Phase 2: Region boundaries
# ──────────────────────────────────────────────────────────────────────────────

def step2_load_regions(settings: Settings) -> RegionIndex:
    logger.info("Phase 2: Loading region boundaries...")

    region_index = RegionIndex.from_file(settings.regions_file, id_field=settings.regions_id_field)
    region_index.require(settings.rates.high_rate_regions)

    logger.info("Phase 2 completed:")
    logger.info(f"  • Regions loaded: {len(region_index)}")
    for region, described in describe_rates(settings.rates).items():
        logger.info(f"  • {region}: {described}")
    logger.info("--------------------------------")

    tables.save_debug_frame(settings.debug_dir, "phase2_regions", region_index.describe())
    return region_index


# ──────────────────────────────────────────────────────────────────────────────
# Phase 3: Mileage, deduction and reimbursement per trip
# ──────────────────────────────────────────────────────────────────────────────

def step3_calculate_trip_mileage(trips: pd.DataFrame, legs: pd.DataFrame, region_index: RegionIndex,
                                 settings: Settings) -> Tuple[List[RegionResult], List[TripSummary], Dict[str, str]]:
    """
    Run every trip that has legs through process_trip.

    Returns all per-region results, one summary per processed trip, and the
    failed trips (trip id -> reason). With on_trip_error == "abort" the first
    failure is re-raised instead.
    """
    logger.info("Phase 3: Calculating state-by-state mileage per trip...")
    start_time = time.time()

    trip_rows = tables.group_by_trip(trips)
    leg_rows = tables.group_by_trip(legs)

    results: List[RegionResult] = []
    summaries: List[TripSummary] = []
    failed: Dict[str, str] = {}

    for trip_id, rows in leg_rows.items():
        try:
            if trip_id not in trip_rows:
                raise InputRowError("Leg references a trip with no trip record", trip_id=trip_id, stage="match")
            trip = tables.to_trip(trip_id, trip_rows[trip_id])
            trip_legs = [tables.to_leg(row) for _, row in rows.iterrows()]
            trip_results, summary = process_trip(trip, trip_legs, region_index, settings)
        except InputRowError as e:
            if e.trip_id is None:
                e.trip_id = trip_id
            if settings.on_trip_error == "abort":
                logger.error(f"Trip {trip_id} failed at stage {e.stage}: {e}")
                raise
            logger.error(f"Skipping trip {trip_id}, failed at stage {e.stage}: {e}")
            failed[trip_id] = str(e)
            continue

        results.extend(trip_results)
        summaries.append(summary)

    without_legs = [trip_id for trip_id in trip_rows if trip_id not in leg_rows]
    high_rate_trips = sum(1 for summary in summaries if summary.high_rate_affected)

    logger.info(f"Phase 3 completed in {time.time() - start_time:.1f} seconds:")
    logger.info(f"  • Trips processed: {len(summaries)}")
    logger.info(f"  • Trips failed: {len(failed)}")
    logger.info(f"  • Trips without legs: {len(without_legs)}")
    logger.info(f"  • High-rate-affected trips: {high_rate_trips}")
    logger.info(f"  • Region mileage records: {len(results)}")
    logger.info("--------------------------------")

    tables.save_debug_frame(settings.debug_dir, "phase3_state_miles", tables.results_frame(results))
    return results, summaries, failed


# ──────────────────────────────────────────────────────────────────────────────
# Phase 4: Reports
# ──────────────────────────────────────────────────────────────────────────────

def step4_build_reports(results: Sequence[RegionResult], summaries: Sequence[TripSummary]) -> Dict[str, pd.DataFrame]:
    """All-region rows, the same rows for high-rate-affected trips only, and their summaries"""
    logger.info("Phase 4: Building reports...")

    all_rows = tables.results_frame(results)
    affected = [summary for summary in summaries if summary.high_rate_affected]
    affected_ids = {summary.trip_id for summary in affected}
    high_rate_rows = all_rows[all_rows[tables.TRIP_ID].isin(affected_ids)].reset_index(drop=True)

    reports = {
        tables.ALL_STATES_REPORT: all_rows,
        tables.HIGH_PAY_REPORT: high_rate_rows,
        tables.SUMMARY_REPORT: tables.summary_frame(affected),
    }

    logger.info("Phase 4 completed:")
    for name, df in reports.items():
        logger.info(f"  • {name}: {len(df)} rows")
    logger.info("--------------------------------")
    return reports


# ──────────────────────────────────────────────────────────────────────────────
# Phase 5: Output
# ──────────────────────────────────────────────────────────────────────────────

def step5_write_output(reports: Dict[str, pd.DataFrame], settings: Settings) -> List[Path]:
    logger.info("Phase 5: Writing output...")

    written = tables.write_reports(settings.output_dir, reports, excel=settings.excel_output)

    logger.info("Phase 5 completed: Output written to:")
    for path in written:
        logger.info(f"  • {path}")
    return written


# ──────────────────────────────────────────────────────────────────────────────
# Main Processing Function
# ──────────────────────────────────────────────────────────────────────────────

def run(settings: Settings) -> Dict[str, pd.DataFrame]:
    """
    Execute all phases. Reports are only written once every phase succeeded,
    so an aborted run leaves no partial output behind.
    """
    logger.info("Starting State Miles processing...")

    trips, legs = step1_read_inputs(settings)
    region_index = step2_load_regions(settings)
    results, summaries, failed = step3_calculate_trip_mileage(trips, legs, region_index, settings)
    reports = step4_build_reports(results, summaries)
    step5_write_output(reports, settings)

    if failed:
        logger.warning(f"{len(failed)} trip(s) skipped; their rows are missing from every report:")
        for trip_id, reason in failed.items():
            logger.warning(f"  • {trip_id}: {reason}")

    logger.info("Processing completed")
    return reports
