import json
import sqlite3
import sys
from pathlib import Path

import pytest


# Ensure `backend/` is on sys.path so tests can import local modules
# like `tiles.*`, `corpus.*`, `engine.*` and `main`.
BACKEND_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(BACKEND_ROOT))

from corpus.load_corpus import load_corpus  # noqa: E402


DEFAULT_METADATA = {
    "name": "parishes",
    "format": "pbf",
    "minzoom": "0",
    "maxzoom": "3",
    "bounds": "-180,-85.0511,180,85.0511",
    "center": "12.5,41.9,2",
    "attribution": "© OpenStreetMap contributors",
    "json": json.dumps(
        {"vector_layers": [{"id": "parishes", "fields": {"Title": "String"}}]}
    ),
}


@pytest.fixture(autouse=True)
def _telemetry_off(monkeypatch):
    # Tests that exercise telemetry turn it back on explicitly.
    monkeypatch.setenv("CHURCHMAP_TELEMETRY", "0")


@pytest.fixture
def make_mbtiles(tmp_path):
    """
    Build an MBTiles file. `tiles` is keyed by XYZ (z, x, y); rows are stored TMS.
    """

    def _make(name="test.mbtiles", *, metadata=None, tiles=None):
        path = tmp_path / name
        db = sqlite3.connect(path)
        db.execute("CREATE TABLE metadata (name TEXT, value TEXT, PRIMARY KEY (name))")
        db.execute(
            "CREATE TABLE tiles (zoom_level INTEGER, tile_column INTEGER, tile_row INTEGER, tile_data BLOB)"
        )
        db.execute("CREATE UNIQUE INDEX coord ON tiles (zoom_level, tile_column, tile_row)")
        md = DEFAULT_METADATA if metadata is None else metadata
        db.executemany("INSERT INTO metadata VALUES (?, ?)", list(md.items()))
        for (z, x, y), data in (tiles or {}).items():
            db.execute(
                "INSERT INTO tiles VALUES (?, ?, ?, ?)",
                (z, x, (2**z - 1) - y, sqlite3.Binary(data)),
            )
        db.commit()
        db.close()
        return path

    return _make


def church(title, country="", lon=0.0, lat=0.0, **props):
    """GeoJSON point feature with capitalized property keys, like the real catalog."""
    properties = {"Title": title, "Country": country}
    properties.update({k.capitalize(): v for k, v in props.items()})
    return {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [lon, lat]},
        "properties": properties,
    }


@pytest.fixture
def write_geojson(tmp_path):
    def _write(name, features):
        path = tmp_path / name
        path.write_text(
            json.dumps({"type": "FeatureCollection", "features": features}),
            encoding="utf-8",
        )
        return path

    return _write


@pytest.fixture
def scenario_corpus(write_geojson):
    """Three records: two in Kenya, one in Italy."""
    path = write_geojson(
        "scenario.json",
        [
            church("A Church", "Kenya", 36.8, -1.3, type="parish"),
            church("B Shrine", "Kenya", 36.9, -1.2, type="shrine"),
            church("C Basilica", "Italy", 12.5, 41.9, type="basilica"),
        ],
    )
    return load_corpus([path])
