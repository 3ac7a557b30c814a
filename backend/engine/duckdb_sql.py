from __future__ import annotations

CREATE_SCHEMA_SQL = [
    "CREATE SEQUENCE IF NOT EXISTS artifact_seq START 1;",
    """
    CREATE TABLE IF NOT EXISTS artifacts (
      seq BIGINT DEFAULT nextval('artifact_seq'),
      id TEXT PRIMARY KEY,
      name TEXT NOT NULL,
      category TEXT NOT NULL,
      layer TEXT NOT NULL,
      description TEXT,
      metadata_json TEXT,
      lat DOUBLE,
      lng DOUBLE,
      created_at TEXT
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS layers (
      id TEXT PRIMARY KEY,
      name TEXT NOT NULL,
      description TEXT,
      source TEXT,
      source_date TEXT,
      artifact_count BIGINT NOT NULL DEFAULT 0,
      visible BOOLEAN NOT NULL DEFAULT TRUE,
      style_json TEXT
    );
    """,
    # Same operation order as `geo.distance.distance_meters`; k = pi / 180, r = Earth radius.
    """
    CREATE OR REPLACE MACRO haversine_a(lat1, lng1, lat2, lng2, k) AS
      sin(((lat2 - lat1) * k) / 2.0) * sin(((lat2 - lat1) * k) / 2.0)
      + cos(lat1 * k) * cos(lat2 * k)
        * (sin(((lng2 - lng1) * k) / 2.0) * sin(((lng2 - lng1) * k) / 2.0));
    """,
    """
    CREATE OR REPLACE MACRO haversine_m(lat1, lng1, lat2, lng2, k, r) AS
      r * (2.0 * atan2(
        sqrt(least(1.0, greatest(0.0, haversine_a(lat1, lng1, lat2, lng2, k)))),
        sqrt(1.0 - least(1.0, greatest(0.0, haversine_a(lat1, lng1, lat2, lng2, k))))
      ));
    """,
]

ARTIFACT_COLUMNS = "id, name, category, layer, description, metadata_json, lat, lng, created_at"

# Closed rectangle; params: west, east, south, north.
BBOX_WHERE = "lng >= ? AND lng <= ? AND lat >= ? AND lat <= ?"

LAYER_FILTER_SQL = "list_contains(CAST(? AS VARCHAR[]), layer)"

INSERT_ARTIFACT_SQL = f"""
INSERT INTO artifacts ({ARTIFACT_COLUMNS})
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

SELECT_ARTIFACT_SQL = f"SELECT {ARTIFACT_COLUMNS} FROM artifacts WHERE id = ?"

SELECT_ARTIFACTS_SQL_TEMPLATE = f"""
SELECT {ARTIFACT_COLUMNS}
FROM artifacts
{{where_sql}}
ORDER BY seq
"""

COUNT_ARTIFACTS_SQL_TEMPLATE = "SELECT COUNT(*) FROM artifacts {where_sql}"

CIRCLE_SQL_TEMPLATE = f"""
SELECT {ARTIFACT_COLUMNS}
FROM artifacts
WHERE {BBOX_WHERE}
  {{layer_sql}}
  AND haversine_m(?::DOUBLE, ?::DOUBLE, lat, lng, ?::DOUBLE, ?::DOUBLE) <= ?::DOUBLE
ORDER BY seq
"""

# Window count is computed before LIMIT, so `total` is the full match count.
VIEWPORT_SINGLES_SQL_TEMPLATE = f"""
SELECT {ARTIFACT_COLUMNS}, COUNT(*) OVER () AS total
FROM artifacts
WHERE {BBOX_WHERE}
  {{layer_sql}}
ORDER BY seq
LIMIT ?
"""

# One row per cluster cell (member columns NULL), one row per member of small cells.
# Params: grid, grid, west, east, south, north[, layers], max_singles_per_cell.
VIEWPORT_GRID_SQL_TEMPLATE = f"""
WITH v AS (
  SELECT seq, {ARTIFACT_COLUMNS},
         CAST(floor(lng / ?::DOUBLE) AS BIGINT) AS cell_x,
         CAST(floor(lat / ?::DOUBLE) AS BIGINT) AS cell_y
  FROM artifacts
  WHERE {BBOX_WHERE}
    {{layer_sql}}
),
cells AS (
  SELECT cell_x, cell_y,
         COUNT(*) AS n,
         AVG(lat) AS center_lat,
         AVG(lng) AS center_lng,
         MIN(seq) AS first_seq
  FROM v
  GROUP BY cell_x, cell_y
)
SELECT c.cell_x, c.cell_y, c.n, c.center_lat, c.center_lng,
       v.id, v.name, v.category, v.layer, v.description, v.metadata_json,
       v.lat, v.lng, v.created_at
FROM cells c
LEFT JOIN v
  ON c.n <= ? AND v.cell_x = c.cell_x AND v.cell_y = c.cell_y
ORDER BY c.first_seq, v.seq
"""

DELETE_LAYER_ARTIFACTS_SQL = "DELETE FROM artifacts WHERE layer = ?"

LAYER_COLUMNS = (
    "id, name, description, source, source_date, artifact_count, visible, style_json"
)

SELECT_LAYERS_SQL = f"SELECT {LAYER_COLUMNS} FROM layers ORDER BY name, id"

SELECT_LAYER_SQL = f"SELECT {LAYER_COLUMNS} FROM layers WHERE id = ?"

ENSURE_LAYER_SQL = "INSERT OR IGNORE INTO layers (id, name) VALUES (?, ?)"

BUMP_LAYER_COUNT_SQL = (
    "UPDATE layers SET artifact_count = artifact_count + ? WHERE id = ?"
)

UPDATE_LAYER_SQL = """
UPDATE layers
   SET name = ?, description = ?, source = ?, source_date = ?, visible = ?, style_json = ?
 WHERE id = ?
"""

SET_LAYER_VISIBLE_SQL = "UPDATE layers SET visible = ? WHERE id = ?"

DELETE_LAYER_SQL = "DELETE FROM layers WHERE id = ?"
