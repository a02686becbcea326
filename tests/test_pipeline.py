import json
import math

import pandas as pd
import pytest

from statemiles import pipeline, tables
from statemiles.config import RateTable, Settings
from statemiles.errors import ConfigurationError, InputRowError
from statemiles.models import Leg, Trip

DEGREE_MILES = 3958.8 * math.pi / 180

TRIPS_CSV = """travel_id,travel_dt,travel_distance,deduct_miles,actual_amount
T1,2024-03-01,140,20,50.0
T2,2024-03-02,40,5,12.0
T4,2024-03-04,10,0,3.0
T5,2024-03-05,10,0,3.0
"""

LEGS_CSV = """travel_id,travel_dt,Start_latitude,Start_longitude,End_latitude,End_longitude,travel_distance
T1,2024-03-01,0.0,0.5,0.0,2.5,140
T2,2024-03-02,0.0,2.2,0.0,2.8,40
T3,2024-03-03,0.0,0.5,0.0,2.5,140
T4,2024-03-04,0.0,0.5,nan,2.5,10
"""


def _feature(fips, minx, maxx):
    return {
        "type": "Feature",
        "properties": {"STATE": fips},
        "geometry": {
            "type": "Polygon",
            "coordinates": [[[minx, -1], [maxx, -1], [maxx, 1], [minx, 1], [minx, -1]]],
        },
    }


@pytest.fixture
def run_settings(tmp_path):
    regions_file = tmp_path / "us_states.geojson"
    # GA | CA | AL along the equator
    regions_file.write_text(json.dumps({
        "type": "FeatureCollection",
        "features": [_feature("13", 0, 1), _feature("06", 1, 2), _feature("01", 2, 3)],
    }))
    trips_file = tmp_path / "TravelItems.csv"
    trips_file.write_text(TRIPS_CSV)
    legs_file = tmp_path / "TravelItemDetails.csv"
    legs_file.write_text(LEGS_CSV)

    return Settings(
        rates=RateTable(high_rates={"CA": 0.70}, default_rate=0.30),
        regions_file=regions_file,
        trips_file=trips_file,
        legs_file=legs_file,
        output_dir=tmp_path / "output",
    )


def test_run_writes_three_reports(run_settings):
    reports = pipeline.run(run_settings)

    output_dir = run_settings.output_dir
    for name in (tables.ALL_STATES_REPORT, tables.HIGH_PAY_REPORT, tables.SUMMARY_REPORT):
        assert (output_dir / f"{name}.csv").exists()

    all_rows = pd.read_csv(output_dir / f"{tables.ALL_STATES_REPORT}.csv", dtype={"travel_id": str})
    assert list(zip(all_rows["travel_id"], all_rows["State"])) == [
        ("T1", "AL"), ("T1", "CA"), ("T1", "GA"), ("T2", "AL"),
    ]
    t1 = all_rows[all_rows["travel_id"] == "T1"].set_index("State")
    assert t1.loc["CA", "Deducted"] == pytest.approx(20.0)
    assert t1.loc["CA", "Final_Mile"] == pytest.approx(DEGREE_MILES - 20.0)
    assert t1.loc["GA", "Deducted"] == 0
    assert t1.loc["GA", "Miles"] == pytest.approx(DEGREE_MILES / 2)
    assert t1.loc["CA", "Rate"] == 0.70

    assert set(reports[tables.HIGH_PAY_REPORT]["travel_id"]) == {"T1"}

    summary = reports[tables.SUMMARY_REPORT]
    assert list(summary["travel_id"]) == ["T1"]
    assert summary.iloc[0]["MilesByState"] == pytest.approx(2 * DEGREE_MILES - 20.0)
    assert summary.iloc[0]["adjusted_amount"] == pytest.approx((DEGREE_MILES - 20.0) * 0.70 + DEGREE_MILES * 0.30)
    assert summary.iloc[0]["travel_distance"] == 140
    assert summary.iloc[0]["actual_amount"] == 50.0


def test_failed_trips_are_skipped(run_settings):
    trips, legs = pipeline.step1_read_inputs(run_settings)
    region_index = pipeline.step2_load_regions(run_settings)

    results, summaries, failed = pipeline.step3_calculate_trip_mileage(trips, legs, region_index, run_settings)

    assert set(failed) == {"T3", "T4"}
    assert "no trip record" in failed["T3"]
    assert [s.trip_id for s in summaries] == ["T1", "T2"]
    assert {r.trip_id for r in results} == {"T1", "T2"}


def test_abort_policy_writes_nothing(run_settings):
    settings = Settings(**{**run_settings.__dict__, "on_trip_error": "abort"})

    with pytest.raises(InputRowError) as excinfo:
        pipeline.run(settings)

    assert excinfo.value.trip_id == "T3"
    assert excinfo.value.stage == "match"
    assert not settings.output_dir.exists()


def test_unknown_high_rate_region_stops_the_run(run_settings):
    settings = Settings(**{**run_settings.__dict__, "rates": RateTable(high_rates={"NY": 0.7})})

    with pytest.raises(ConfigurationError, match="NY"):
        pipeline.run(settings)


def test_debug_dir_gets_phase_files(run_settings, tmp_path):
    settings = Settings(**{**run_settings.__dict__, "debug_dir": tmp_path / "debug"})

    pipeline.run(settings)

    names = {p.name for p in (tmp_path / "debug").iterdir()}
    assert {"phase1_trips.csv", "phase1_legs.csv", "phase2_regions.csv", "phase3_state_miles.csv"} <= names


def test_process_trip_keeps_repeated_crossings(region_index, settings):
    trip = Trip("T9", "2024-03-09", 0.0, 10.0, 0.0)
    legs = [
        Leg("T9", "2024-03-09", 0.0, 0.5, 0.0, 1.5, 0.0),
        Leg("T9", "2024-03-09", 0.0, 1.5, 0.0, 0.5, 0.0),
    ]

    results, summary = pipeline.process_trip(trip, legs, region_index, settings)

    assert [r.region for r in results] == ["AA", "BB", "BB", "AA"]
    assert [r.deducted for r in results] == pytest.approx([10.0, 0.0, 0.0, 0.0])
    assert summary.total_final_miles == pytest.approx(2 * DEGREE_MILES - 10.0)
    assert not summary.high_rate_affected


def test_process_trip_merges_repeated_crossings_when_configured(region_index, settings):
    settings = Settings(**{**settings.__dict__, "merge_repeat_crossings": True})
    trip = Trip("T9", "2024-03-09", 0.0, 0.0, 0.0)
    legs = [
        Leg("T9", "2024-03-09", 0.0, 0.5, 0.0, 1.5, 0.0),
        Leg("T9", "2024-03-09", 0.0, 1.5, 0.0, 0.5, 0.0),
    ]

    results, _ = pipeline.process_trip(trip, legs, region_index, settings)

    assert [r.region for r in results] == ["AA", "BB"]
    assert [r.miles for r in results] == pytest.approx([DEGREE_MILES, DEGREE_MILES])


def test_process_trip_names_trip_on_bad_leg(region_index, settings):
    trip = Trip("T9", "2024-03-09", 0.0, 0.0, 0.0)
    legs = [Leg("T9", "2024-03-09", math.nan, 0.5, 0.0, 1.5, 0.0)]

    with pytest.raises(InputRowError) as excinfo:
        pipeline.process_trip(trip, legs, region_index, settings)

    assert (excinfo.value.trip_id, excinfo.value.stage) == ("T9", "path")
