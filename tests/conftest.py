import pytest
from shapely.geometry import box

from statemiles.config import RateTable, Settings
from statemiles.regions import RegionIndex


def strip_regions():
    """Three 1x2 degree boxes side by side along the equator: AA | BB | CC"""
    return [
        ("AA", box(0.0, -1.0, 1.0, 1.0)),
        ("BB", box(1.0, -1.0, 2.0, 1.0)),
        ("CC", box(2.0, -1.0, 3.0, 1.0)),
    ]


@pytest.fixture
def region_index():
    return RegionIndex.load(strip_regions())


@pytest.fixture
def rates():
    return RateTable(high_rates={"CA": 0.70, "IL": 0.70, "MA": 0.70}, default_rate=0.30)


@pytest.fixture
def settings(rates):
    return Settings(rates=rates)
