from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from shapely.errors import ShapelyError
from shapely.geometry import shape

from corpus.types import FEATURE_FIELDS, ChurchFeature


def load_feature_collection(
    path: Path, *, start: int = 0, source: str | None = None
) -> list[ChurchFeature]:
    """
    Read one GeoJSON FeatureCollection, keeping file order.

    `start` is the ordinal of the first feature (the corpus position of this
    file). Raises FileNotFoundError / ValueError for missing or malformed files;
    callers decide whether that is fatal.
    """
    data = json.loads(path.read_text(encoding="utf-8"))
    features = data.get("features") if isinstance(data, dict) else None
    if not isinstance(features, list):
        raise ValueError(f"{path} is not a FeatureCollection (no `features` list)")

    src = source or str(path)
    out: list[ChurchFeature] = []
    for feature in features:
        if not isinstance(feature, dict):
            continue
        geom = feature.get("geometry")
        geom = geom if isinstance(geom, dict) else None
        props = feature.get("properties")
        props = props if isinstance(props, dict) else {}
        fid = feature.get("id")

        lon, lat = _lonlat(geom)
        out.append(
            ChurchFeature(
                ordinal=start + len(out),
                id=None if fid is None else str(fid),
                lon=lon,
                lat=lat,
                geometry=geom,
                props=props,
                source=src,
                fields=_fields(props),
            )
        )
    return out


def _fields(props: dict[str, Any]) -> dict[str, str]:
    out: dict[str, str] = {}
    for key, value in props.items():
        k = str(key).strip().lower()
        if k not in FEATURE_FIELDS or k in out:
            continue
        out[k] = "" if value is None else str(value).lower()
    return out


def _lonlat(geom: dict[str, Any] | None) -> tuple[float | None, float | None]:
    """
    Point coordinates, or a representative point for other geometry types.
    """
    if not geom:
        return None, None
    coords = geom.get("coordinates")
    if geom.get("type") == "Point":
        if not coords or len(coords) < 2:
            return None, None
        try:
            return float(coords[0]), float(coords[1])
        except (TypeError, ValueError):
            return None, None

    try:
        g = shape(geom)
    except (ShapelyError, ValueError, TypeError, KeyError, IndexError, AttributeError):
        return None, None
    if g.is_empty:
        return None, None
    p = g.representative_point()
    return float(p.x), float(p.y)
