import math

import pytest

from statemiles.errors import InputRowError
from statemiles.paths import build_path


def test_build_path_stores_lon_lat():
    path = build_path(33.7, -84.4, 32.4, -86.3)

    assert list(path.coords) == [(-84.4, 33.7), (-86.3, 32.4)]


def test_out_of_range_coordinates_are_accepted():
    path = build_path(95.0, 200.0, -95.0, -200.0)

    assert path.length > 0


@pytest.mark.parametrize("bad", [math.nan, math.inf, None, "north"])
def test_non_finite_coordinates_rejected(bad):
    with pytest.raises(InputRowError) as excinfo:
        build_path(33.7, bad, 32.4, -86.3)

    assert excinfo.value.stage == "path"
