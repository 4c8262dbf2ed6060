from __future__ import annotations

CREATE_EVENTS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS events (
  ts_ms BIGINT,
  endpoint TEXT,
  catalog_id TEXT,
  lat DOUBLE,
  lon DOUBLE,
  generation BIGINT,
  stats_json TEXT
);
"""

SUMMARY_SQL_TEMPLATE = """
SELECT
  catalog_id,
  endpoint,
  COUNT(*) AS n,
  AVG(try_cast(json_extract(stats_json, '$.timingsMs.total') AS DOUBLE)) AS avg_total_ms,
  quantile_cont(try_cast(json_extract(stats_json, '$.timingsMs.total') AS DOUBLE), 0.50) AS p50_total_ms,
  quantile_cont(try_cast(json_extract(stats_json, '$.timingsMs.total') AS DOUBLE), 0.95) AS p95_total_ms,
  quantile_cont(try_cast(json_extract(stats_json, '$.timingsMs.total') AS DOUBLE), 0.99) AS p99_total_ms,
  AVG(try_cast(json_extract(stats_json, '$.outcomes.failed') AS DOUBLE)) AS avg_failed_slots,
  AVG(CASE WHEN json_extract_string(stats_json, '$.current') = 'true' THEN 1 ELSE 0 END) AS current_rate
FROM events
{where_sql}
GROUP BY catalog_id, endpoint
ORDER BY catalog_id, endpoint
"""

SLOWEST_SQL_TEMPLATE = """
SELECT
  ts_ms,
  catalog_id,
  endpoint,
  try_cast(json_extract(stats_json, '$.timingsMs.total') AS DOUBLE) AS total_ms,
  try_cast(json_extract(stats_json, '$.outcomes.failed') AS BIGINT) AS failed_slots,
  lat,
  lon
FROM events
WHERE {where_sql}
ORDER BY total_ms DESC
LIMIT ?
"""

INSERT_EVENTS_SQL = """
INSERT INTO events
  (ts_ms, endpoint, catalog_id, lat, lon, generation, stats_json)
VALUES (?, ?, ?, ?, ?, ?, ?)
"""
