import json

from statemiles.cli import main


def _write_regions(path):
    path.write_text(json.dumps({
        "type": "FeatureCollection",
        "features": [{
            "type": "Feature",
            "properties": {"STATE": "06", "NAME": "California"},
            "geometry": {"type": "Polygon", "coordinates": [[[0, 0], [1, 0], [1, 1], [0, 1], [0, 0]]]},
        }],
    }))
    return path


def test_describe_prints_regions(tmp_path, capsys):
    regions_file = _write_regions(tmp_path / "states.geojson")

    assert main(["describe", str(regions_file)]) == 0
    assert "CA" in capsys.readouterr().out


def test_run_with_missing_config_fails(tmp_path):
    assert main(["run", "--config", str(tmp_path / "missing.toml")]) == 1


def test_run_end_to_end(tmp_path):
    regions_file = _write_regions(tmp_path / "states.geojson")
    (tmp_path / "trips.csv").write_text(
        "travel_id,travel_dt,travel_distance,deduct_miles,actual_amount\nT1,2024-03-01,50,0,10\n"
    )
    (tmp_path / "legs.csv").write_text(
        "travel_id,travel_dt,Start_latitude,Start_longitude,End_latitude,End_longitude,travel_distance\n"
        "T1,2024-03-01,0.5,0.2,0.5,0.8,50\n"
    )
    config_file = tmp_path / "statemiles.toml"
    config_file.write_text(
        "[rates.high]\nCA = 0.70\n\n"
        "[paths]\n"
        f"regions = {json.dumps(str(regions_file))}\n"
        f"trips = {json.dumps(str(tmp_path / 'trips.csv'))}\n"
        f"legs = {json.dumps(str(tmp_path / 'legs.csv'))}\n"
        f"output_dir = {json.dumps(str(tmp_path / 'out'))}\n"
    )

    assert main(["run", "--config", str(config_file)]) == 0
    assert (tmp_path / "out" / "TravelSummaryComparison.csv").exists()
