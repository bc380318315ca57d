from __future__ import annotations

CREATE_EVENTS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS events (
  ts_ms BIGINT,
  endpoint TEXT,
  engine TEXT,
  dataset TEXT,
  status INTEGER,
  params_json TEXT,
  stats_json TEXT
);
"""

SUMMARY_SQL_TEMPLATE = """
SELECT
  engine,
  endpoint,
  COUNT(*) AS n,
  AVG(try_cast(json_extract(stats_json, '$.timingsMs.total') AS DOUBLE)) AS avg_total_ms,
  quantile_cont(try_cast(json_extract(stats_json, '$.timingsMs.total') AS DOUBLE), 0.50) AS p50_total_ms,
  quantile_cont(try_cast(json_extract(stats_json, '$.timingsMs.total') AS DOUBLE), 0.95) AS p95_total_ms,
  quantile_cont(try_cast(json_extract(stats_json, '$.timingsMs.total') AS DOUBLE), 0.99) AS p99_total_ms,
  AVG(try_cast(json_extract(stats_json, '$.returned') AS DOUBLE)) AS avg_returned,
  AVG(CASE WHEN status >= 400 THEN 1 ELSE 0 END) AS error_rate
FROM events
{where_sql}
GROUP BY engine, endpoint
ORDER BY engine, endpoint
"""

SLOWEST_SQL_TEMPLATE = """
SELECT
  ts_ms,
  engine,
  endpoint,
  status,
  try_cast(json_extract(stats_json, '$.timingsMs.total') AS DOUBLE) AS total_ms,
  try_cast(json_extract(stats_json, '$.returned') AS BIGINT) AS returned,
  params_json
FROM events
WHERE {where_sql}
ORDER BY total_ms DESC
LIMIT ?
"""

INSERT_EVENTS_SQL = """
INSERT INTO events
  (ts_ms, endpoint, engine, dataset, status, params_json, stats_json)
VALUES (?, ?, ?, ?, ?, ?, ?)
"""
