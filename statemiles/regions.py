"""
Region index: region codes mapped to boundary polygons, queried with travel paths.

Boundaries live in a GeoDataFrame (EPSG:4326, lon/lat degrees) so candidate
regions for a path come from the geopandas spatial index before the exact
shapely intersection runs.
"""

import logging
import math
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Optional, Tuple, Union

import geopandas as gpd
import numpy as np
import pandas as pd
import shapely
from shapely.geometry import LineString, MultiLineString, shape
from shapely.errors import GEOSException
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union
from shapely.validation import explain_validity, make_valid

from statemiles.config import FIPS_TO_POSTAL, STATE_NAMES
from statemiles.errors import ConfigurationError

logger = logging.getLogger(__name__)

REGION_CRS = "EPSG:4326"
POLYGONAL_TYPES = ("Polygon", "MultiPolygon")
LINEAR_TYPES = ("LineString", "LinearRing")


class RegionCrossing(NamedTuple):
    """Intersection of one path with one (pooled) region boundary"""
    region: str
    geometry: BaseGeometry

    @property
    def linear(self) -> BaseGeometry:
        """Line parts of the intersection; points where the path only touches the boundary are dropped"""
        lines = [part for part in shapely.get_parts(self.geometry) if part.geom_type in LINEAR_TYPES]
        if len(lines) == 1:
            return lines[0]
        return MultiLineString(lines)

    @property
    def coordinates(self) -> np.ndarray:
        # Line parts pooled, in geometry order, as (lon, lat) rows
        return shapely.get_coordinates(self.linear)

    @property
    def entry(self) -> Tuple[float, float]:
        lon, lat = self.coordinates[0]
        return float(lon), float(lat)

    @property
    def exit(self) -> Tuple[float, float]:
        lon, lat = self.coordinates[-1]
        return float(lon), float(lat)


# ──────────────────────────────────────────────────────────────────────────────
# Boundary validation
# ──────────────────────────────────────────────────────────────────────────────

def _check_rings_closed(region: str, geometry: Mapping[str, Any]) -> None:
    """GeoJSON rings must repeat their first position; shapely would silently close them."""
    geom_type = geometry.get("type")
    coordinates = geometry.get("coordinates")
    if geom_type == "Polygon":
        polygons = [coordinates]
    elif geom_type == "MultiPolygon":
        polygons = coordinates
    else:
        raise ConfigurationError(f"Region {region}: boundary must be Polygon or MultiPolygon, got {geom_type}")

    if not polygons:
        raise ConfigurationError(f"Region {region}: boundary has no coordinates")

    for rings in polygons:
        for ring in rings or []:
            if len(ring) < 4 or tuple(ring[0]) != tuple(ring[-1]):
                raise ConfigurationError(f"Region {region}: boundary ring is not closed")


def _polygonal_parts(geometry: BaseGeometry) -> List[BaseGeometry]:
    if geometry.is_empty:
        return []
    if geometry.geom_type == "Polygon":
        return [geometry]
    if geometry.geom_type in ("MultiPolygon", "GeometryCollection"):
        parts = []
        for part in geometry.geoms:
            parts.extend(_polygonal_parts(part))
        return parts
    # Points and lines left over from make_valid carry no interior
    return []


def _coerce_boundary(region: str, boundary: Any) -> List[BaseGeometry]:
    """Turn one boundary value into a list of valid polygons"""
    if boundary is None:
        raise ConfigurationError(f"Region {region}: boundary geometry is missing")

    if isinstance(boundary, (list, tuple)):
        polygons = []
        for part in boundary:
            polygons.extend(_coerce_boundary(region, part))
        return polygons

    if isinstance(boundary, Mapping):
        _check_rings_closed(region, boundary)
        try:
            geometry = shape(boundary)
        except (ValueError, TypeError, AttributeError, GEOSException) as e:
            raise ConfigurationError(f"Region {region}: malformed boundary geometry: {e}") from e
    elif isinstance(boundary, BaseGeometry):
        geometry = boundary
    else:
        raise ConfigurationError(f"Region {region}: unsupported boundary type {type(boundary).__name__}")

    if geometry.is_empty:
        raise ConfigurationError(f"Region {region}: boundary geometry is empty")
    if geometry.geom_type not in POLYGONAL_TYPES:
        raise ConfigurationError(f"Region {region}: boundary must be Polygon or MultiPolygon, got {geometry.geom_type}")

    if not geometry.is_valid:
        reason = explain_validity(geometry)
        polygons = [p for p in _polygonal_parts(make_valid(geometry)) if p.area > 0]
        if not polygons:
            raise ConfigurationError(f"Region {region}: invalid boundary with no recoverable interior ({reason})")
        logger.warning(f"Region {region}: repaired invalid boundary ({reason})")
        return polygons

    return _polygonal_parts(geometry)


def _clean_code(raw: Any, code_map: Optional[Mapping[str, str]] = None) -> str:
    if raw is None or (isinstance(raw, float) and math.isnan(raw)):
        raise ConfigurationError("Region identifier is missing")
    code = str(raw).strip()
    if not code:
        raise ConfigurationError("Region identifier is empty")
    if code_map:
        if code in code_map:
            return code_map[code]
        # FIPS codes sometimes arrive as integers ("6" rather than "06")
        if code.isdigit() and code.zfill(2) in code_map:
            return code_map[code.zfill(2)]
    return code


# ──────────────────────────────────────────────────────────────────────────────
# Region Index
# ──────────────────────────────────────────────────────────────────────────────

class RegionIndex:
    """
    Read-only lookup of region boundaries.

    Build it with RegionIndex.load() or RegionIndex.from_file(); it is never
    mutated afterwards and can be shared by any number of trip computations.
    """

    def __init__(self, regions_gdf: gpd.GeoDataFrame):
        self._gdf = regions_gdf.reset_index(drop=True)
        self._sindex = self._gdf.sindex

    @classmethod
    def load(cls, regions: Iterable[Tuple[Any, Any]]) -> "RegionIndex":
        """
        Build the index from (identifier, boundary) pairs.

        A boundary is a shapely Polygon/MultiPolygon, a GeoJSON geometry mapping,
        or a list of either. Pairs sharing an identifier are pooled into one
        logical region, so exclaves and islands count as the same region.
        """
        pooled: Dict[str, List[BaseGeometry]] = {}
        for raw_id, boundary in regions:
            region = _clean_code(raw_id)
            pooled.setdefault(region, []).extend(_coerce_boundary(region, boundary))

        if not pooled:
            raise ConfigurationError("No regions supplied to the region index")

        codes = sorted(pooled)
        geometries = []
        for code in codes:
            parts = pooled[code]
            geometries.append(parts[0] if len(parts) == 1 else unary_union(parts))

        gdf = gpd.GeoDataFrame({"region": codes}, geometry=geometries, crs=REGION_CRS)
        logger.info(f"Region index built with {len(gdf)} regions")
        return cls(gdf)

    @classmethod
    def from_file(cls, path: Union[str, Path], id_field: str = "STATE",
                  code_map: Optional[Mapping[str, str]] = FIPS_TO_POSTAL) -> "RegionIndex":
        """Load region boundaries from any file geopandas can read (GeoJSON, shapefile, ...)"""
        path = Path(path)
        logger.info(f"Loading region boundary data from {path}...")

        if not path.exists():
            raise ConfigurationError(f"Region boundary file not found: {path}")

        try:
            gdf = gpd.read_file(path)
        except Exception as e:
            raise ConfigurationError(f"Error reading region boundary file {path}: {e}") from e

        if id_field not in gdf.columns:
            raise ConfigurationError(f"{id_field} field missing in {path}")

        if gdf.crs is not None and gdf.crs.to_epsg() != 4326:
            logger.info(f"Reprojecting boundaries from {gdf.crs} to {REGION_CRS}")
            gdf = gdf.to_crs(REGION_CRS)

        codes = [_clean_code(raw, code_map) for raw in gdf[id_field]]
        return cls.load(zip(codes, gdf.geometry))

    @staticmethod
    def attribute_names(path: Union[str, Path]) -> List[str]:
        """Field names of a boundary dataset, to find the identifier column"""
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"Region boundary file not found: {path}")
        gdf = gpd.read_file(path, rows=1)
        return [column for column in gdf.columns if column != gdf.geometry.name]

    @property
    def regions(self) -> Tuple[str, ...]:
        return tuple(self._gdf["region"])

    def __len__(self) -> int:
        return len(self._gdf)

    def __contains__(self, region: str) -> bool:
        return region in set(self._gdf["region"])

    def geometry(self, region: str) -> BaseGeometry:
        matches = self._gdf.loc[self._gdf["region"] == region, "geometry"]
        if matches.empty:
            raise ConfigurationError(f"Unknown region identifier: {region}")
        return matches.iloc[0]

    def require(self, regions: Iterable[str]) -> None:
        """Fail when a region the configuration depends on is absent from the boundaries"""
        missing = sorted(set(regions) - set(self._gdf["region"]))
        if missing:
            raise ConfigurationError(f"Unknown region identifier(s) in configuration: {', '.join(missing)}")

    def intersect(self, path: LineString) -> List[RegionCrossing]:
        """Every region the path crosses or touches, ordered by region identifier"""
        crossings = []
        # Index rows are sorted by region, so sorted positions keep identifier order
        for position in sorted(self._sindex.query(path)):
            region = self._gdf["region"].iat[position]
            boundary = self._gdf.geometry.iat[position]
            if not path.intersects(boundary):
                continue
            part = path.intersection(boundary)
            if part.is_empty:
                continue
            crossings.append(RegionCrossing(region, part))
        return crossings

    def describe(self) -> pd.DataFrame:
        """One row per region: code, name, polygon count and bounding box"""
        summary = pd.DataFrame({
            "region": self._gdf["region"],
            "name": [STATE_NAMES.get(code, "") for code in self._gdf["region"]],
            "polygons": [int(shapely.get_num_geometries(g)) for g in self._gdf.geometry],
        })
        return pd.concat([summary, self._gdf.bounds.round(4)], axis=1)
