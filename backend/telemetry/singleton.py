from __future__ import annotations

import threading

import duckdb

from service.logging_setup import get_logger
from telemetry.store import TelemetryStore, telemetry_enabled, telemetry_path

log = get_logger(__name__)

_STORE: TelemetryStore | None = None
_STORE_LOCK = threading.RLock()


def get_store() -> TelemetryStore | None:
    global _STORE
    if not telemetry_enabled():
        return None
    with _STORE_LOCK:
        path = telemetry_path()
        if _STORE is not None:
            # If the path changes during a dev session (or across tests), reopen there.
            if _STORE.path.resolve() == path.resolve():
                return _STORE
            _STORE.stop(timeout_s=2.0)
            _STORE.conn.close()
            _STORE = None

        path.parent.mkdir(parents=True, exist_ok=True)
        # Writes are serialized by the store's single writer thread.
        conn = duckdb.connect(str(path))
        _STORE = TelemetryStore(path=path, conn=conn)
        _STORE.ensure_schema()
        _STORE.start()
        log.info("Telemetry enabled: %s", path)
        return _STORE


def reset_store() -> None:
    global _STORE
    with _STORE_LOCK:
        if _STORE is not None:
            _STORE.reset()
            _STORE = None
        else:
            # Delete even if it was never opened in this process.
            telemetry_path().unlink(missing_ok=True)


def shutdown_store() -> None:
    """Drain and close the store (application shutdown)."""
    global _STORE
    with _STORE_LOCK:
        if _STORE is None:
            return
        _STORE.stop(timeout_s=2.0)
        _STORE.conn.close()
        _STORE = None
