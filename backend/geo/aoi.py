from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from engine.types import Bounds


@dataclass(frozen=True)
class BBox:
    """
    WGS84 bounding box in lon/lat degrees.

    Convention used throughout this repo:
    - minLon, minLat, maxLon, maxLat

    Engine queries never normalize the box: a viewport crossing the antimeridian
    (east < west) is an inverted box and matches nothing.
    """

    min_lon: float
    min_lat: float
    max_lon: float
    max_lat: float

    @classmethod
    def from_bounds(cls, bounds: "Bounds") -> "BBox":
        return cls(
            min_lon=float(bounds.west),
            min_lat=float(bounds.south),
            max_lon=float(bounds.east),
            max_lat=float(bounds.north),
        )

    def as_tuple(self) -> tuple[float, float, float, float]:
        return (self.min_lon, self.min_lat, self.max_lon, self.max_lat)
