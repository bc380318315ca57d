from __future__ import annotations

import gzip
from concurrent.futures import ThreadPoolExecutor

import pytest

from service.errors import IOFailure, NotReady, TileNotFound
from tiles.store import MBTilesStore
from tiles.types import parse_metadata


def test_metadata_before_open_is_not_ready(make_mbtiles):
    store = MBTilesStore(make_mbtiles())
    assert not store.ready
    with pytest.raises(NotReady):
        store.get_metadata()
    with pytest.raises(NotReady):
        store.get_tile(0, 0, 0)


def test_open_parses_metadata(make_mbtiles):
    store = MBTilesStore(make_mbtiles())
    meta = store.open()

    assert store.ready
    assert meta.name == "parishes"
    assert meta.format == "pbf"
    assert (meta.minzoom, meta.maxzoom) == (0, 3)
    assert meta.bounds.as_list() == [-180.0, -85.0511, 180.0, 85.0511]
    assert meta.center == (12.5, 41.9, 2)
    assert meta.layer_ids == ["parishes"]
    assert meta.source_layer_id("fallback") == "parishes"
    assert meta.content_type() == "application/x-protobuf"

    d = meta.to_dict()
    assert d["vector_layers"][0]["id"] == "parishes"
    assert "json" not in d
    # open() is a no-op the second time.
    assert store.open() is meta


def test_get_tile_flips_xyz_row_to_tms(make_mbtiles):
    path = make_mbtiles(
        tiles={
            (2, 1, 0): b"north",
            (2, 1, 3): b"south",
        }
    )
    store = MBTilesStore(path)
    store.open()

    assert store.get_tile(2, 1, 0).data == b"north"
    assert store.get_tile(2, 1, 3).data == b"south"
    with pytest.raises(TileNotFound) as exc_info:
        store.get_tile(2, 1, 1)
    assert exc_info.value.reason == "missing"


def test_gzip_tiles_carry_content_encoding(make_mbtiles):
    blob = gzip.compress(b"vector tile bytes")
    store = MBTilesStore(make_mbtiles(tiles={(1, 0, 0): blob, (1, 1, 1): b"plain"}))
    store.open()

    tile = store.get_tile(1, 0, 0)
    assert tile.data == blob
    assert tile.headers["Content-Type"] == "application/x-protobuf"
    assert tile.headers["Content-Encoding"] == "gzip"

    plain = store.get_tile(1, 1, 1)
    assert "Content-Encoding" not in plain.headers


@pytest.mark.parametrize(
    "coord, reason",
    [
        ((4, 0, 0), "zoom"),
        ((1, 2, 0), "range"),
        ((1, 0, -1), "range"),
        ((1, 0, 0), "bounds"),
        ((1, 1, 1), "bounds"),
    ],
)
def test_tiles_the_container_does_not_cover(make_mbtiles, coord, reason):
    md = {
        "name": "parishes",
        "format": "pbf",
        "minzoom": "0",
        "maxzoom": "3",
        "bounds": "20,20,30,30",
    }
    # Every coordinate has a row, so the rejection has to come from the checks.
    tiles = {(1, x, y): b"t" for x in range(2) for y in range(2)}
    store = MBTilesStore(make_mbtiles(metadata=md, tiles=tiles))
    store.open()

    with pytest.raises(TileNotFound) as exc_info:
        store.get_tile(*coord)
    assert exc_info.value.reason == reason
    assert store.get_tile(1, 1, 0).data == b"t"


def test_zoom_range_falls_back_to_tiles_table(make_mbtiles):
    md = {"name": "bare", "format": "png"}
    store = MBTilesStore(make_mbtiles(metadata=md, tiles={(2, 0, 0): b"a", (5, 0, 0): b"b"}))
    meta = store.open()

    assert (meta.minzoom, meta.maxzoom) == (2, 5)
    assert meta.bounds.as_list() == [-180.0, -85.0511, 180.0, 85.0511]
    assert meta.layer_ids == []
    assert meta.source_layer_id("parishes") == "parishes"
    assert store.get_tile(5, 0, 0).headers["Content-Type"] == "image/png"


def test_malformed_json_row_is_ignored():
    meta = parse_metadata([("name", "x"), ("json", "{not json"), ("format", "weird")])
    assert meta.vector_layers == ()
    assert meta.content_type() == "application/octet-stream"
    assert (meta.minzoom, meta.maxzoom) == (0, 22)


def test_missing_container_is_an_io_failure(tmp_path):
    with pytest.raises(IOFailure):
        MBTilesStore(tmp_path / "absent.mbtiles").open()


def test_garbage_container_is_an_io_failure(tmp_path):
    path = tmp_path / "garbage.mbtiles"
    path.write_bytes(b"this is not a sqlite database" * 100)
    store = MBTilesStore(path)
    with pytest.raises(IOFailure):
        store.open()
    assert not store.ready


def test_concurrent_reads_share_nothing_mutable(make_mbtiles):
    tiles = {(3, x, y): f"{x}/{y}".encode() for x in range(8) for y in range(8)}
    store = MBTilesStore(make_mbtiles(tiles=tiles))
    store.open()

    coords = list(tiles) * 4
    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda c: store.get_tile(*c).data, coords))

    assert results == [tiles[c] for c in coords]
    store.close()


def test_bounds_crossing_the_antimeridian_keep_their_tiles(make_mbtiles):
    md = {
        "name": "pacific",
        "format": "pbf",
        "minzoom": "0",
        "maxzoom": "6",
        "bounds": "170,-20,-170,20",
    }
    tiles = {(6, 63, 31): b"east edge", (6, 0, 31): b"west edge", (6, 32, 31): b"greenwich"}
    store = MBTilesStore(make_mbtiles(metadata=md, tiles=tiles))
    meta = store.open()

    assert meta.bounds.as_list() == [170.0, -20.0, -170.0, 20.0]
    assert store.get_tile(6, 63, 31).data == b"east edge"
    assert store.get_tile(6, 0, 31).data == b"west edge"
    with pytest.raises(TileNotFound) as exc_info:
        store.get_tile(6, 32, 31)
    assert exc_info.value.reason == "bounds"
