"""Straight-line path geometry for one travel leg."""

import math

from shapely.geometry import LineString

from statemiles.errors import InputRowError


def build_path(start_lat: float, start_lon: float, end_lat: float, end_lon: float) -> LineString:
    """
    LineString from the leg's start point to its end point.

    Coordinates are stored as (lon, lat) to match shapely's x/y order. Values
    outside the usual lat/lon ranges are accepted; only non-finite ones fail.
    """
    values = {
        "start latitude": start_lat,
        "start longitude": start_lon,
        "end latitude": end_lat,
        "end longitude": end_lon,
    }
    for name, value in values.items():
        try:
            finite = math.isfinite(value)
        except TypeError:
            finite = False
        if not finite:
            raise InputRowError(f"Invalid {name}: {value!r}", stage="path")

    return LineString([(float(start_lon), float(start_lat)), (float(end_lon), float(end_lat))])
