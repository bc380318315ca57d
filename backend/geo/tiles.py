from __future__ import annotations

import math

from geo.aoi import BBox


def tile_in_range(zoom: int, x: int, y: int) -> bool:
    """
    True when (x, y) is a valid slippy tile index at `zoom`.
    """
    if zoom < 0:
        return False
    n = 2**zoom
    return 0 <= x < n and 0 <= y < n


def xyz_to_tms_row(zoom: int, y: int) -> int:
    """
    MBTiles stores rows in TMS order (y counted from the south).
    """
    return (2**zoom - 1) - y


def tile_bbox_4326(zoom: int, x: int, y: int) -> BBox:
    """
    Slippy tile (z/x/y) bounds as a WGS84 lon/lat bbox.
    """
    z = int(zoom)
    n = 2**z
    x = int(x)
    y = int(y)

    lon_left = x / n * 360.0 - 180.0
    lon_right = (x + 1) / n * 360.0 - 180.0

    def lat_from_tile_y(tile_y: int) -> float:
        # https://wiki.openstreetmap.org/wiki/Slippy_map_tilenames
        t = math.pi * (1.0 - 2.0 * tile_y / n)
        return math.degrees(math.atan(math.sinh(t)))

    lat_top = lat_from_tile_y(y)
    lat_bottom = lat_from_tile_y(y + 1)

    return BBox(
        min_lon=lon_left, min_lat=lat_bottom, max_lon=lon_right, max_lat=lat_top
    ).normalized()
