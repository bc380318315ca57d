from __future__ import annotations

import json
import queue
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import duckdb

from service.logging_setup import get_logger
from telemetry.config import telemetry_enabled, telemetry_path
from telemetry.sql import (
    CREATE_EVENTS_TABLE_SQL,
    INSERT_EVENTS_SQL,
    SLOWEST_SQL_TEMPLATE,
    SUMMARY_SQL_TEMPLATE,
)

log = get_logger(__name__)


def _safe_float(v) -> float | None:
    try:
        if v is None:
            return None
        return float(v)
    except (TypeError, ValueError):
        return None


@dataclass
class TelemetryStore:
    """
    Request/start-up event log in a DuckDB file.

    `record` only enqueues; a single writer thread batches inserts, so request
    handlers never wait on the database.
    """

    path: Path
    conn: duckdb.DuckDBPyConnection
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False)
    _q: "queue.Queue[dict[str, Any]]" = field(default_factory=queue.Queue, repr=False)
    _stop: threading.Event = field(default_factory=threading.Event, repr=False)
    _worker: threading.Thread | None = field(default=None, repr=False)

    def ensure_schema(self) -> None:
        with self._lock:
            self.conn.execute(CREATE_EVENTS_TABLE_SQL)

    def start(self) -> None:
        if self._worker is not None:
            return
        self._stop.clear()
        self._worker = threading.Thread(
            target=self._run, name="telemetry-writer", daemon=True
        )
        self._worker.start()

    def stop(self, *, timeout_s: float = 2.0) -> None:
        """
        Stop the writer thread; queued events are drained before it exits.
        """
        self._stop.set()
        w = self._worker
        if w is not None and w.is_alive():
            w.join(timeout=timeout_s)
        self._worker = None

    def record(
        self,
        *,
        endpoint: str,
        engine: str,
        dataset: str,
        status: int = 200,
        params: dict[str, Any] | None = None,
        stats: dict[str, Any] | None = None,
    ) -> None:
        # Non-blocking: enqueue and return.
        self.start()
        try:
            self._q.put_nowait(
                {
                    "ts_ms": int(time.time() * 1000),
                    "endpoint": str(endpoint),
                    "engine": str(engine),
                    "dataset": str(dataset),
                    "status": int(status),
                    "params_json": json.dumps(params or {}, ensure_ascii=False, default=str),
                    "stats_json": json.dumps(stats or {}, ensure_ascii=False, default=str),
                }
            )
        except queue.Full:
            log.debug("Telemetry queue full; dropping %s event", endpoint)

    def flush(self, *, timeout_s: float = 2.0) -> None:
        """
        Wait until queued events are written (used by tests).
        """
        if self._worker is None:
            return
        deadline = time.time() + timeout_s
        while time.time() < deadline:
            if self._q.unfinished_tasks == 0:
                break
            time.sleep(0.01)
        # The writer flushes on a time trigger; give it one cycle.
        time.sleep(0.55)

    def query(self, sql: str, params: list[Any] | None = None) -> list[tuple]:
        """
        Run a read query inside the server process.

        DuckDB locks the file across processes, so reads go through the API
        rather than a second connection.
        """
        with self._lock:
            if params:
                return self.conn.execute(sql, params).fetchall()
            return self.conn.execute(sql).fetchall()

    def summary(
        self,
        *,
        engine: str | None = None,
        endpoint: str | None = None,
        since_ms: int | None = None,
    ) -> list[dict[str, Any]]:
        where = []
        params: list[Any] = []
        if engine:
            where.append("engine = ?")
            params.append(engine)
        if endpoint:
            where.append("endpoint = ?")
            params.append(endpoint)
        if since_ms is not None:
            where.append("ts_ms >= ?")
            params.append(int(since_ms))

        where_sql = f"WHERE {' AND '.join(where)}" if where else ""

        rows = self.query(SUMMARY_SQL_TEMPLATE.format(where_sql=where_sql), params)

        out: list[dict[str, Any]] = []
        for engine_v, endpoint_v, n, avg_ms, p50, p95, p99, avg_returned, error_rate in rows:
            out.append(
                {
                    "engine": engine_v,
                    "endpoint": endpoint_v,
                    "n": int(n),
                    "avgTotalMs": _safe_float(avg_ms),
                    "p50TotalMs": _safe_float(p50),
                    "p95TotalMs": _safe_float(p95),
                    "p99TotalMs": _safe_float(p99),
                    "avgReturned": _safe_float(avg_returned),
                    "errorRate": _safe_float(error_rate),
                }
            )
        return out

    def slowest(
        self,
        *,
        engine: str | None = None,
        endpoint: str | None = None,
        limit: int = 25,
    ) -> list[dict[str, Any]]:
        where = ["json_extract(stats_json, '$.timingsMs.total') IS NOT NULL"]
        params: list[Any] = []
        if engine:
            where.append("engine = ?")
            params.append(engine)
        if endpoint:
            where.append("endpoint = ?")
            params.append(endpoint)
        params.append(int(max(1, min(200, limit))))

        rows = self.query(
            SLOWEST_SQL_TEMPLATE.format(where_sql=" AND ".join(where)),
            params,
        )
        out: list[dict[str, Any]] = []
        for ts_ms, engine_v, endpoint_v, status, total_ms, returned, params_json in rows:
            out.append(
                {
                    "tsMs": int(ts_ms),
                    "engine": engine_v,
                    "endpoint": endpoint_v,
                    "status": int(status) if status is not None else None,
                    "totalMs": _safe_float(total_ms),
                    "returned": int(returned) if returned is not None else None,
                    "params": json.loads(params_json) if params_json else {},
                }
            )
        return out

    def reset(self) -> None:
        # Stop the writer first so it can't write to a closed connection.
        self.stop(timeout_s=2.0)
        with self._lock:
            self.conn.close()
            self.path.unlink(missing_ok=True)

    def _run(self) -> None:
        self.ensure_schema()
        batch: list[dict[str, Any]] = []
        last_flush = time.time()

        def flush_batch() -> None:
            nonlocal batch
            if not batch:
                return
            try:
                with self._lock:
                    self.conn.executemany(
                        INSERT_EVENTS_SQL,
                        [
                            (
                                e["ts_ms"],
                                e["endpoint"],
                                e["engine"],
                                e["dataset"],
                                e["status"],
                                e["params_json"],
                                e["stats_json"],
                            )
                            for e in batch
                        ],
                    )
                    # Make results visible to readers immediately.
                    self.conn.execute("CHECKPOINT;")
            except duckdb.Error:
                log.exception("Dropping %d telemetry events", len(batch))
            batch = []

        while not self._stop.is_set():
            try:
                e = self._q.get(timeout=0.1)
            except queue.Empty:
                e = None

            if e is not None:
                batch.append(e)
                self._q.task_done()

            # Flush on size or time.
            now = time.time()
            if len(batch) >= 250 or (batch and (now - last_flush) >= 0.5):
                flush_batch()
                last_flush = now

        # Drain remaining
        while True:
            try:
                e = self._q.get_nowait()
            except queue.Empty:
                break
            batch.append(e)
            self._q.task_done()
        flush_batch()


#
# NOTE: singleton accessors live in `telemetry/singleton.py` to keep this file smaller.
