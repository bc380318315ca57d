from __future__ import annotations

import sqlite3
import threading
from pathlib import Path

from geo.tiles import tile_bbox_4326, tile_in_range, xyz_to_tms_row
from service.errors import IOFailure, NotReady, TileNotFound
from service.logging_setup import get_logger
from tiles.types import TileMetadata, TilePayload, parse_metadata, tile_headers

log = get_logger(__name__)

_TILE_SQL = (
    "SELECT tile_data FROM tiles WHERE zoom_level=? AND tile_column=? AND tile_row=?"
)


class MBTilesStore:
    """
    Read-only view of a reassembled MBTiles container.

    `open()` reads the metadata table once; after that every `get_tile` call is a
    single indexed lookup on a per-thread read-only SQLite connection. The file
    is never written, so no locking is needed around reads.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self._metadata: TileMetadata | None = None
        self._local = threading.local()
        self._conns: list[sqlite3.Connection] = []
        self._conns_lock = threading.Lock()

    @property
    def ready(self) -> bool:
        return self._metadata is not None

    def open(self) -> TileMetadata:
        if self._metadata is not None:
            return self._metadata
        if not self.path.is_file():
            raise IOFailure(f"Tile container not found: {self.path}")
        try:
            conn = self._conn()
            rows = conn.execute("SELECT name, value FROM metadata").fetchall()
            zoom_range = conn.execute(
                "SELECT MIN(zoom_level), MAX(zoom_level) FROM tiles"
            ).fetchone() or (None, None)
        except sqlite3.Error as e:
            raise IOFailure(f"Could not open tile container {self.path}: {e}") from e

        meta = parse_metadata(rows, zoom_range=(zoom_range[0], zoom_range[1]))
        self._metadata = meta
        log.info(
            "Tile container open: %s (zoom %d-%d, layers=%s)",
            self.path,
            meta.minzoom,
            meta.maxzoom,
            meta.layer_ids,
        )
        return meta

    def get_metadata(self) -> TileMetadata:
        if self._metadata is None:
            raise NotReady("Tile metadata not loaded")
        return self._metadata

    def get_tile(self, z: int, x: int, y: int) -> TilePayload:
        """
        Tile at XYZ coordinate (z, x, y).

        Raises TileNotFound for anything the container does not cover: zoom
        outside [minzoom, maxzoom], x/y outside the zoom's grid, tiles outside
        the declared bounds, or simply no row.
        """
        meta = self.get_metadata()
        if not (meta.minzoom <= z <= meta.maxzoom):
            raise TileNotFound(z, x, y, "zoom")
        if not tile_in_range(z, x, y):
            raise TileNotFound(z, x, y, "range")
        if not tile_bbox_4326(z, x, y).intersects(meta.bounds):
            raise TileNotFound(z, x, y, "bounds")

        try:
            row = self._conn().execute(_TILE_SQL, (z, x, xyz_to_tms_row(z, y))).fetchone()
        except sqlite3.Error as e:
            raise IOFailure(f"Tile read failed for {z}/{x}/{y}: {e}") from e

        data = row[0] if row else None
        if not data:
            raise TileNotFound(z, x, y)
        data = bytes(data)
        return TilePayload(data=data, headers=tile_headers(meta, data))

    def close(self) -> None:
        with self._conns_lock:
            conns, self._conns = self._conns, []
        for conn in conns:
            conn.close()
        self._local = threading.local()

    def _conn(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            uri = self.path.resolve().as_uri() + "?mode=ro"
            conn = sqlite3.connect(uri, uri=True, check_same_thread=False)
            self._local.conn = conn
            with self._conns_lock:
                self._conns.append(conn)
        return conn
