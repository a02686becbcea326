"""
Traversal resolver: which regions a path crosses, how far it travels in each,
and the order in which it enters them.
"""

import logging
import math
from typing import List, Tuple

from shapely.geometry import LineString
from shapely.geometry.base import BaseGeometry

from statemiles.config import EARTH_RADIUS_MILES
from statemiles.models import OrderedTraversal, RegionMileage
from statemiles.regions import RegionIndex

logger = logging.getLogger(__name__)


def haversine_miles(lat1: float, lon1: float, lat2: float, lon2: float,
                    radius: float = EARTH_RADIUS_MILES) -> float:
    """Great-circle distance in miles between two (lat, lon) points given in degrees"""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    a = min(a, 1.0)  # rounding can push antipodal points just past 1
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return radius * c


def distance_from_start(path: LineString, part: BaseGeometry) -> float:
    """
    Ordering key for one region: how far along the path (in coordinate units)
    the centroid of the region's intersection sits.

    Walks the path segment by segment. Once the centroid falls inside a
    segment's bounding box, the distance from that segment's start to the
    centroid is added and the walk stops. A centroid that never lands in a
    box gets the full path length, which sorts it last.
    """
    centroid = part.centroid
    cx, cy = centroid.x, centroid.y
    coords = list(path.coords)

    distance = 0.0
    for (ax, ay), (bx, by) in zip(coords, coords[1:]):
        if min(ax, bx) <= cx <= max(ax, bx) and min(ay, by) <= cy <= max(ay, by):
            return distance + math.hypot(cx - ax, cy - ay)
        distance += math.hypot(bx - ax, by - ay)

    logger.debug(f"Centroid ({cx:.5f}, {cy:.5f}) not on any path segment, ordering last")
    return distance


def resolve(path: LineString, region_index: RegionIndex,
            earth_radius_miles: float = EARTH_RADIUS_MILES) -> OrderedTraversal:
    """
    Per-region mileage for one path, in the order the path enters the regions.

    Mileage is the Haversine distance between the first and last coordinate of
    the line parts of the path's intersection with the region. Points where the
    path only touches a boundary are ignored, and an intersection with no length
    produces no entry.
    """
    keyed: List[Tuple[float, str, RegionMileage]] = []

    for crossing in region_index.intersect(path):
        linear = crossing.linear
        if linear.is_empty or linear.length == 0:
            logger.debug(f"Path touches {crossing.region} without entering it, skipping")
            continue

        entry_lon, entry_lat = crossing.entry
        exit_lon, exit_lat = crossing.exit
        miles = haversine_miles(entry_lat, entry_lon, exit_lat, exit_lon, earth_radius_miles)
        order_key = distance_from_start(path, linear)

        logger.debug(f"{crossing.region}: {miles:.2f} miles, ordering key {order_key:.5f}")
        keyed.append((order_key, crossing.region, RegionMileage(crossing.region, miles)))

    # Region code breaks ties so the result never depends on lookup order
    keyed.sort(key=lambda item: (item[0], item[1]))
    return tuple(mileage for _, _, mileage in keyed)
