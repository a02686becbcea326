"""
Tabular input and output.

Trip and leg rows are read with pandas from CSV or Excel; report rows are
written back as CSV and, optionally, Excel. Column names follow the travel
system exports the reports are compared against.
"""

import logging
import math
from pathlib import Path
from typing import Dict, Iterable, List, Sequence, Union

import pandas as pd

from statemiles.errors import ConfigurationError, InputRowError
from statemiles.models import Leg, RegionResult, Trip, TripSummary

logger = logging.getLogger(__name__)

TRIP_ID = "travel_id"
TRIP_DATE = "travel_dt"

TRIP_COLUMNS = [TRIP_ID, TRIP_DATE, "travel_distance", "deduct_miles", "actual_amount"]
LEG_COLUMNS = [
    TRIP_ID, TRIP_DATE, "Start_latitude", "Start_longitude",
    "End_latitude", "End_longitude", "travel_distance",
]
OUTPUT_COLUMNS = [TRIP_ID, TRIP_DATE, "State", "Rate", "Miles", "Deducted", "Final_Mile", "Reimbursement"]
SUMMARY_COLUMNS = [TRIP_ID, TRIP_DATE, "travel_distance", "actual_amount", "MilesByState", "adjusted_amount"]

ALL_STATES_REPORT = "AllStateMileageOutput"
HIGH_PAY_REPORT = "HighPayTravelOnly"
SUMMARY_REPORT = "TravelSummaryComparison"

EXCEL_SUFFIXES = (".xlsx",)


# ──────────────────────────────────────────────────────────────────────────────
# Input
# ──────────────────────────────────────────────────────────────────────────────

def _read_table(path: Union[str, Path], required: Sequence[str], numeric: Sequence[str]) -> pd.DataFrame:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")

    if path.suffix.lower() == ".xls":
        raise ConfigurationError(f"{path.name}: legacy .xls workbooks are not supported, save it as .xlsx or .csv")

    text_columns = {TRIP_ID: str, TRIP_DATE: str}
    if path.suffix.lower() in EXCEL_SUFFIXES:
        df = pd.read_excel(path, dtype=text_columns)
    else:
        df = pd.read_csv(path, dtype=text_columns)

    missing = [column for column in required if column not in df.columns]
    if missing:
        raise ConfigurationError(f"{path.name} is missing column(s): {', '.join(missing)}")

    df[TRIP_ID] = df[TRIP_ID].fillna("").astype(str).str.strip()
    df[TRIP_DATE] = df[TRIP_DATE].fillna("").astype(str).str.strip()
    for column in numeric:
        df[column] = pd.to_numeric(df[column], errors="coerce")

    logger.info(f"Read {len(df)} rows from {path}")
    return df


def read_trips(path: Union[str, Path]) -> pd.DataFrame:
    return _read_table(path, TRIP_COLUMNS, TRIP_COLUMNS[2:])


def read_legs(path: Union[str, Path]) -> pd.DataFrame:
    return _read_table(path, LEG_COLUMNS, LEG_COLUMNS[2:])


def _number(row: pd.Series, column: str, trip_id: str, stage: str) -> float:
    value = row[column]
    if pd.isna(value) or not math.isfinite(float(value)):
        raise InputRowError(f"Missing or non-finite {column}", trip_id=trip_id, stage=stage)
    return float(value)


def to_trip(trip_id: str, rows: pd.DataFrame) -> Trip:
    """
    Trip record from the trip-table rows carrying trip_id.

    Duplicate rows are consolidated the way the travel system reports them:
    date and deduction from the first row, distance and paid amount summed.
    """
    if not trip_id:
        raise InputRowError("Trip row without travel_id", stage="read")
    if len(rows) > 1:
        logger.warning(f"Trip {trip_id}: {len(rows)} trip rows found, consolidating")

    first = rows.iloc[0]
    return Trip(
        trip_id=trip_id,
        trip_date=first[TRIP_DATE],
        reported_distance=sum(_number(row, "travel_distance", trip_id, "read") for _, row in rows.iterrows()),
        deduction_budget=_number(first, "deduct_miles", trip_id, "read"),
        actual_amount=sum(_number(row, "actual_amount", trip_id, "read") for _, row in rows.iterrows()),
    )


def to_leg(row: pd.Series) -> Leg:
    trip_id = row[TRIP_ID]
    return Leg(
        trip_id=trip_id,
        leg_date=row[TRIP_DATE],
        start_lat=_number(row, "Start_latitude", trip_id, "read"),
        start_lon=_number(row, "Start_longitude", trip_id, "read"),
        end_lat=_number(row, "End_latitude", trip_id, "read"),
        end_lon=_number(row, "End_longitude", trip_id, "read"),
        # Reported leg distance is informational only
        reported_distance=row["travel_distance"],
    )


def group_by_trip(df: pd.DataFrame) -> Dict[str, pd.DataFrame]:
    """Rows per trip id, in first-appearance order, row order kept inside each group"""
    return {trip_id: rows for trip_id, rows in df.groupby(TRIP_ID, sort=False)}


# ──────────────────────────────────────────────────────────────────────────────
# Output
# ──────────────────────────────────────────────────────────────────────────────

def results_frame(results: Iterable[RegionResult]) -> pd.DataFrame:
    """Per-region rows ordered by trip then region; repeated crossings keep travel order"""
    df = pd.DataFrame(
        [
            [r.trip_id, r.trip_date, r.region, r.rate, r.miles, r.deducted, r.final_miles, r.reimbursement]
            for r in results
        ],
        columns=OUTPUT_COLUMNS,
    )
    return df.sort_values([TRIP_ID, "State"], kind="mergesort").reset_index(drop=True)


def summary_frame(summaries: Iterable[TripSummary]) -> pd.DataFrame:
    df = pd.DataFrame(
        [
            [s.trip_id, s.trip_date, s.reported_distance, s.actual_amount, s.total_final_miles, s.total_reimbursement]
            for s in summaries
        ],
        columns=SUMMARY_COLUMNS,
    )
    return df.sort_values(TRIP_ID, kind="mergesort").reset_index(drop=True)


def write_reports(output_dir: Union[str, Path], reports: Dict[str, pd.DataFrame], excel: bool = False) -> List[Path]:
    """Write each report as <name>.csv (and <name>.xlsx when excel is set)"""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    written = []
    for name, df in reports.items():
        csv_file = output_dir / f"{name}.csv"
        df.to_csv(csv_file, index=False)
        written.append(csv_file)
        if excel:
            excel_file = output_dir / f"{name}.xlsx"
            df.to_excel(excel_file, index=False, sheet_name=name[:31], engine="openpyxl")
            written.append(excel_file)
    return written


def save_debug_frame(debug_dir: Union[str, Path, None], name: str, df: pd.DataFrame) -> None:
    """Phase-by-phase CSV dump, skipped when no debug directory is configured"""
    if debug_dir is None:
        return
    debug_dir = Path(debug_dir)
    debug_dir.mkdir(parents=True, exist_ok=True)
    debug_file = debug_dir / f"{name}.csv"
    df.to_csv(debug_file, index=False)
    logger.info(f"Debug file saved: {debug_file}")
