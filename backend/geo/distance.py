from __future__ import annotations

import math

from geo.aoi import BBox

EARTH_RADIUS_M = 6_371_000.0

# Meters per degree at the equator. Used only for the circle prefilter box; the
# exact haversine filter runs afterwards.
DEGREES_TO_METERS = 111_320.0

EARTH_CIRCUMFERENCE_M = 40_075_000.0

DEG_TO_RAD = math.pi / 180.0


def distance_meters(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Great-circle distance in meters (haversine, mean Earth radius).

    The persisted backend evaluates the same expression in SQL with the same
    operation order (see `engine/duckdb_sql.py`), keep the two in sync.
    """
    d_lat = (lat2 - lat1) * DEG_TO_RAD
    d_lng = (lng2 - lng1) * DEG_TO_RAD
    s_lat = math.sin(d_lat / 2.0)
    s_lng = math.sin(d_lng / 2.0)
    a = s_lat * s_lat + math.cos(lat1 * DEG_TO_RAD) * math.cos(
        lat2 * DEG_TO_RAD
    ) * (s_lng * s_lng)
    # Rounding can push `a` just past 1 for near-antipodal points.
    a = min(1.0, max(0.0, a))
    return EARTH_RADIUS_M * (2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a)))


def radius_in_degrees(radius_m: float) -> float:
    return float(radius_m) / DEGREES_TO_METERS


def circle_bbox(lat: float, lng: float, radius_m: float) -> BBox:
    """
    Square prefilter box around a circle center, `2 * radius / 111_320` degrees wide.

    Not latitude-corrected and not clamped to valid coordinate ranges.
    """
    r = radius_in_degrees(radius_m)
    return BBox(min_lon=lng - r, min_lat=lat - r, max_lon=lng + r, max_lat=lat + r)


def is_valid_coordinate(lat: float, lng: float) -> bool:
    try:
        lat_f = float(lat)
        lng_f = float(lng)
    except (TypeError, ValueError):
        return False
    if not (math.isfinite(lat_f) and math.isfinite(lng_f)):
        return False
    return -90.0 <= lat_f <= 90.0 and -180.0 <= lng_f <= 180.0
