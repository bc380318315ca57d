from __future__ import annotations

import os
import threading
from typing import Any

import duckdb

from corpus.types import FEATURE_FIELDS, SEARCH_FIELDS, Corpus
from engine.paging import page_window
from engine.types import FilterQuery, Pagination, QueryEngine, QueryResult, QuerySettings
from service.logging_setup import get_logger

log = get_logger(__name__)


class DuckDBEngine(QueryEngine):
    """
    DuckDB-backed engine.

    Seeds the corpus' lower-cased fields into a `churches` table keyed by corpus
    ordinal, then answers queries with `contains()` predicates ordered by
    ordinal. Rows map back to the very same corpus records, so responses match
    InMemoryEngine exactly.
    """

    name = "duckdb"

    def __init__(
        self,
        corpus: Corpus,
        settings: QuerySettings | None = None,
        *,
        path: str | None = None,
        threads: int | None = None,
    ):
        self.corpus = corpus
        self.settings = settings or QuerySettings()
        self.path = path or ":memory:"
        self._conn = duckdb.connect(
            database=self.path, config={"threads": int(threads or duckdb_threads())}
        )
        self._local = threading.local()
        _init_schema(self._conn)
        _seed(self._conn, corpus)
        log.info("DuckDB engine seeded with %d churches (%s)", len(corpus), self.path)

    def list(self, page: Any, limit: Any, search: str = "") -> QueryResult:
        page, limit = page_window(page, limit, self.settings)
        term = (search or "").lower()
        if not term:
            return self._query("", [], page, limit)
        where = " OR ".join(f'contains("{c}", ?)' for c in SEARCH_FIELDS)
        return self._query(f"WHERE {where}", [term] * len(SEARCH_FIELDS), page, limit)

    def filter(self, query: FilterQuery) -> QueryResult:
        terms = query.terms()
        if not terms:
            return self._query("", [], 1, self.settings.filter_window)
        where = " AND ".join(f'contains("{c}", ?)' for c in terms)
        return self._query(f"WHERE {where}", list(terms.values()), 1, self.settings.filter_window)

    def close(self) -> None:
        self._conn.close()

    def _cursor(self) -> duckdb.DuckDBPyConnection:
        c = getattr(self._local, "cursor", None)
        if c is None:
            c = self._conn.cursor()
            self._local.cursor = c
        return c

    def _query(self, where_sql: str, params: list[Any], page: int, limit: int) -> QueryResult:
        cur = self._cursor()
        row = cur.execute(f"SELECT COUNT(*) FROM churches {where_sql}", params).fetchone()
        pag = Pagination(current_page=page, limit=limit, total=int(row[0] or 0) if row else 0)
        if pag.start >= pag.stop:
            return QueryResult(items=(), pagination=pag)

        rows = cur.execute(
            f"SELECT ordinal FROM churches {where_sql} ORDER BY ordinal LIMIT ? OFFSET ?",
            [*params, pag.stop - pag.start, pag.start],
        ).fetchall()
        return QueryResult(
            items=tuple(self.corpus[int(r[0])] for r in rows), pagination=pag
        )


def duckdb_threads() -> int:
    raw = (os.getenv("CHURCHMAP_DUCKDB_THREADS") or "").strip()
    if raw:
        try:
            return max(1, int(raw))
        except ValueError:
            pass
    return max(1, int(os.cpu_count() or 1))


def _init_schema(conn: duckdb.DuckDBPyConnection) -> None:
    cols = ",\n".join(f'  "{c}" TEXT' for c in FEATURE_FIELDS)
    conn.execute(
        f"""
        CREATE TABLE IF NOT EXISTS churches (
          ordinal BIGINT PRIMARY KEY,
        {cols}
        );
        """
    )


def _seed(conn: duckdb.DuckDBPyConnection, corpus: Corpus) -> None:
    row = conn.execute("SELECT COUNT(*) FROM churches").fetchone()
    if row and int(row[0] or 0) > 0:
        return
    # Keyed by corpus position so query rows index straight back into the tuple.
    rows = [(i, *(f.value(c) for c in FEATURE_FIELDS)) for i, f in enumerate(corpus)]
    if not rows:
        return
    placeholders = ", ".join("?" for _ in range(len(FEATURE_FIELDS) + 1))
    conn.executemany(f"INSERT INTO churches VALUES ({placeholders})", rows)
