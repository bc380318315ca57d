from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field
from typing import Any, Iterable

from geo.aoi import WORLD_BOUNDS, BBox
from service.logging_setup import get_logger

log = get_logger(__name__)

# MBTiles `format` -> Content-Type.
_CONTENT_TYPES = {
    "pbf": "application/x-protobuf",
    "mvt": "application/x-protobuf",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "webp": "image/webp",
    "json": "application/json",
}


@dataclass(frozen=True)
class TileMetadata:
    """
    Parsed MBTiles metadata table. Read once when the container opens.
    """

    name: str | None
    format: str | None
    minzoom: int
    maxzoom: int
    bounds: BBox
    center: tuple[float, float, int] | None
    attribution: str | None
    vector_layers: tuple[dict[str, Any], ...] = ()
    # Every metadata row (plus keys merged from the `json` row), values as stored.
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def layer_ids(self) -> list[str]:
        return [str(vl.get("id")) for vl in self.vector_layers if vl.get("id")]

    def source_layer_id(self, default: str) -> str:
        ids = self.layer_ids
        return ids[0] if ids else default

    def content_type(self) -> str:
        return _CONTENT_TYPES.get((self.format or "").lower(), "application/octet-stream")

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = copy.deepcopy(self.raw)
        out.update(
            {
                "minzoom": self.minzoom,
                "maxzoom": self.maxzoom,
                "bounds": self.bounds.as_list(),
                "center": list(self.center) if self.center is not None else None,
                "attribution": self.attribution,
                "vector_layers": copy.deepcopy(list(self.vector_layers)),
            }
        )
        if self.name is not None:
            out["name"] = self.name
        if self.format is not None:
            out["format"] = self.format
        return out


@dataclass(frozen=True)
class TilePayload:
    data: bytes
    headers: dict[str, str]


def tile_headers(metadata: TileMetadata, data: bytes) -> dict[str, str]:
    headers = {"Content-Type": metadata.content_type()}
    # Vector tiles are usually stored compressed; let the client inflate them.
    if data[:2] == b"\x1f\x8b":
        headers["Content-Encoding"] = "gzip"
    elif data[:2] == b"\x78\x9c":
        headers["Content-Encoding"] = "deflate"
    return headers


def parse_metadata(
    rows: Iterable[tuple[str, Any]],
    *,
    zoom_range: tuple[int | None, int | None] = (None, None),
) -> TileMetadata:
    """
    Build TileMetadata from `SELECT name, value FROM metadata` rows.

    `zoom_range` is the (MIN, MAX) zoom_level of the tiles table, used when the
    metadata table does not declare minzoom/maxzoom.
    """
    raw: dict[str, Any] = {}
    for name, value in rows:
        if name is None:
            continue
        raw[str(name)] = value

    vector_layers: list[dict[str, Any]] = []
    extra = raw.pop("json", None)
    if extra:
        try:
            doc = json.loads(extra)
        except (TypeError, ValueError):
            log.warning("Ignoring malformed `json` metadata row")
            doc = None
        if isinstance(doc, dict):
            vector_layers = [vl for vl in (doc.get("vector_layers") or []) if isinstance(vl, dict)]
            for k, v in doc.items():
                raw.setdefault(k, v)

    minzoom = _parse_int(raw.get("minzoom"))
    maxzoom = _parse_int(raw.get("maxzoom"))
    if minzoom is None:
        minzoom = zoom_range[0] if zoom_range[0] is not None else 0
    if maxzoom is None:
        maxzoom = zoom_range[1] if zoom_range[1] is not None else 22

    return TileMetadata(
        name=_opt_str(raw.get("name")),
        format=_opt_str(raw.get("format")),
        minzoom=int(minzoom),
        maxzoom=int(maxzoom),
        bounds=_parse_bounds(raw.get("bounds")),
        center=_parse_center(raw.get("center")),
        attribution=_opt_str(raw.get("attribution")),
        vector_layers=tuple(vector_layers),
        raw=raw,
    )


def _opt_str(v: Any) -> str | None:
    return None if v is None else str(v)


def _parse_int(v: Any) -> int | None:
    if v is None or v == "":
        return None
    try:
        return int(float(v))
    except (TypeError, ValueError):
        return None


def _floats(v: Any) -> list[float] | None:
    if v is None:
        return None
    parts = v if isinstance(v, (list, tuple)) else str(v).split(",")
    try:
        return [float(p) for p in parts]
    except (TypeError, ValueError):
        return None


def _parse_bounds(v: Any) -> BBox:
    parts = _floats(v)
    if not parts or len(parts) != 4:
        return BBox.from_bounds(WORLD_BOUNDS)
    return BBox.from_bounds(parts)


def _parse_center(v: Any) -> tuple[float, float, int] | None:
    parts = _floats(v)
    if not parts or len(parts) < 2:
        return None
    zoom = int(parts[2]) if len(parts) > 2 else 0
    return parts[0], parts[1], zoom
