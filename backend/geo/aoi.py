from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from shapely.geometry import MultiPolygon
from shapely.geometry import box as shapely_box


# Full Web-Mercator extent, used when a container does not declare bounds.
WORLD_BOUNDS: tuple[float, float, float, float] = (-180.0, -85.0511, 180.0, 85.0511)


@dataclass(frozen=True)
class BBox:
    """
    WGS84 bounding box in lon/lat degrees.

    Convention used throughout this repo:
    - minLon, minLat, maxLon, maxLat (same order as MBTiles `bounds`: west,south,east,north)
    - min_lon > max_lon means the box crosses the antimeridian
    """

    min_lon: float
    min_lat: float
    max_lon: float
    max_lat: float

    @classmethod
    def from_bounds(cls, bounds: Sequence[float]) -> "BBox":
        w, s, e, n = (float(v) for v in bounds)
        return cls(min_lon=w, min_lat=s, max_lon=e, max_lat=n).normalized()

    def normalized(self) -> "BBox":
        # Only latitudes are ordered; swapping longitudes would turn a wrapping box into its complement.
        min_lat = min(self.min_lat, self.max_lat)
        max_lat = max(self.min_lat, self.max_lat)
        return BBox(min_lon=self.min_lon, min_lat=min_lat, max_lon=self.max_lon, max_lat=max_lat)

    @property
    def crosses_antimeridian(self) -> bool:
        return self.min_lon > self.max_lon

    def as_list(self) -> list[float]:
        return [self.min_lon, self.min_lat, self.max_lon, self.max_lat]

    def to_shape(self):
        b = self.normalized()
        if b.crosses_antimeridian:
            return MultiPolygon(
                [
                    shapely_box(b.min_lon, b.min_lat, 180.0, b.max_lat),
                    shapely_box(-180.0, b.min_lat, b.max_lon, b.max_lat),
                ]
            )
        return shapely_box(b.min_lon, b.min_lat, b.max_lon, b.max_lat)

    def intersects(self, other: "BBox") -> bool:
        """
        Closed-interval intersection; tiles that only touch the bounds edge count.
        """
        return self.to_shape().intersects(other.to_shape())
