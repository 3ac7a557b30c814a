from __future__ import annotations

import json
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Sequence

import duckdb
from loguru import logger

from engine.config import duckdb_path, duckdb_threads
from engine.duckdb_sql import (
    BBOX_WHERE,
    BUMP_LAYER_COUNT_SQL,
    CIRCLE_SQL_TEMPLATE,
    COUNT_ARTIFACTS_SQL_TEMPLATE,
    CREATE_SCHEMA_SQL,
    DELETE_LAYER_ARTIFACTS_SQL,
    DELETE_LAYER_SQL,
    ENSURE_LAYER_SQL,
    INSERT_ARTIFACT_SQL,
    LAYER_FILTER_SQL,
    SELECT_ARTIFACT_SQL,
    SELECT_ARTIFACTS_SQL_TEMPLATE,
    SELECT_LAYER_SQL,
    SELECT_LAYERS_SQL,
    SET_LAYER_VISIBLE_SQL,
    UPDATE_LAYER_SQL,
    VIEWPORT_GRID_SQL_TEMPLATE,
    VIEWPORT_SINGLES_SQL_TEMPLATE,
)
from engine.deadline import current_timeout
from engine.errors import BackendTimeoutError, BackendUnavailableError
from engine.types import (
    AggregationResult,
    Bounds,
    CircleSelection,
    ClusterData,
    LayerFilter,
    ViewportResponse,
    layer_set,
    tally_categories,
)
from geo.aoi import BBox
from geo.distance import DEG_TO_RAD, EARTH_RADIUS_M, circle_bbox
from layers.types import Artifact, InsertArtifact, Layer, NewLayer
from lod.viewport import (
    CLUSTER_MIN_EXCLUSIVE,
    HIGH_ZOOM,
    cluster_id,
    grid_size_for_zoom,
    truncate,
)


class DuckDBBackend:
    """
    Persisted backend on DuckDB.

    Notes:
    - Same predicates as the in-process backend: closed lat/lng rectangle, the
      same degree prefilter + haversine for circles, and `floor(coord / grid)`
      grouping for viewport clusters.
    - Rows are ordered by an insertion sequence so result order matches the
      in-process index.
    - Readers use one cursor per thread; writers are serialized and transactional.
    """

    name = "duckdb"

    def __init__(
        self,
        *,
        path: str | None = None,
        threads: int | None = None,
    ):
        self.path = path or duckdb_path()
        self.threads = int(threads or duckdb_threads())
        self._write_lock = threading.RLock()
        self._local = threading.local()
        self._conn = _connect(self.path, threads=self.threads)
        self._init_schema()
        logger.info(f"DuckDB backend ready at {self.path} (threads={self.threads})")

    def close(self) -> None:
        try:
            self._conn.close()
        except duckdb.Error:
            pass

    def ping(self) -> None:
        row = self._fetchone("SELECT 1")
        if not row or int(row[0]) != 1:
            raise BackendUnavailableError(f"DuckDB at {self.path} did not answer ping")

    # -- writes ---------------------------------------------------------------

    def create(self, artifact: InsertArtifact) -> Artifact:
        return self.create_many([artifact])[0]

    def create_many(self, artifacts: Sequence[InsertArtifact]) -> list[Artifact]:
        if not artifacts:
            return []
        created_at = _now_iso()
        out = [a.with_id(str(uuid.uuid4()), created_at=created_at) for a in artifacts]
        rows = [_artifact_row(a) for a in out]

        per_layer: dict[str, int] = {}
        for a in out:
            per_layer[a.layer] = per_layer.get(a.layer, 0) + 1

        with self._transaction() as cur:
            cur.executemany(INSERT_ARTIFACT_SQL, rows)
            for layer_id, n in per_layer.items():
                cur.execute(ENSURE_LAYER_SQL, [layer_id, layer_id])
                cur.execute(BUMP_LAYER_COUNT_SQL, [n, layer_id])
        return out

    def delete_layer(self, layer_id: str) -> None:
        with self._transaction() as cur:
            cur.execute(DELETE_LAYER_ARTIFACTS_SQL, [layer_id])
            cur.execute(DELETE_LAYER_SQL, [layer_id])
        logger.info(f"Deleted layer '{layer_id}' from DuckDB")

    def create_layer(self, layer: NewLayer) -> Layer:
        with self._transaction() as cur:
            cur.execute(ENSURE_LAYER_SQL, [layer.id, layer.name])
            cur.execute(
                UPDATE_LAYER_SQL,
                [
                    layer.name,
                    layer.description,
                    layer.source,
                    layer.source_date,
                    bool(layer.visible),
                    _dumps(layer.style),
                    layer.id,
                ],
            )
            row = cur.execute(SELECT_LAYER_SQL, [layer.id]).fetchone()
        return _row_to_layer(row)

    def set_layer_visible(self, layer_id: str, visible: bool) -> None:
        with self._transaction() as cur:
            cur.execute(SET_LAYER_VISIBLE_SQL, [bool(visible), layer_id])

    def reset(self) -> None:
        with self._transaction() as cur:
            cur.execute("DELETE FROM artifacts")
            cur.execute("DELETE FROM layers")

    # -- reads ----------------------------------------------------------------

    def get(self, artifact_id: str) -> Artifact | None:
        row = self._fetchone(SELECT_ARTIFACT_SQL, [artifact_id])
        return _row_to_artifact(row) if row else None

    def get_all(self, layer_ids: LayerFilter = None) -> list[Artifact]:
        allowed = layer_set(layer_ids)
        where_sql = f"WHERE {LAYER_FILTER_SQL}" if allowed else ""
        params = _layer_params(allowed)
        rows = self._fetchall(
            SELECT_ARTIFACTS_SQL_TEMPLATE.format(where_sql=where_sql), params
        )
        return [_row_to_artifact(r) for r in rows]

    def get_in_bounds(self, bounds: Bounds, layer_ids: LayerFilter = None) -> list[Artifact]:
        allowed = layer_set(layer_ids)
        where = f"WHERE {BBOX_WHERE}"
        if allowed:
            where += f" AND {LAYER_FILTER_SQL}"
        params = [*_bbox_params(BBox.from_bounds(bounds)), *_layer_params(allowed)]
        rows = self._fetchall(SELECT_ARTIFACTS_SQL_TEMPLATE.format(where_sql=where), params)
        return [_row_to_artifact(r) for r in rows]

    def get_in_circle(
        self, circle: CircleSelection, layer_ids: LayerFilter = None
    ) -> list[Artifact]:
        allowed = layer_set(layer_ids)
        lat, lng, radius = circle.center.lat, circle.center.lng, float(circle.radius)
        params = [
            *_bbox_params(circle_bbox(lat, lng, radius)),
            *_layer_params(allowed),
            float(lat),
            float(lng),
            DEG_TO_RAD,
            EARTH_RADIUS_M,
            radius,
        ]
        rows = self._fetchall(
            CIRCLE_SQL_TEMPLATE.format(layer_sql=_and_layer_sql(allowed)), params
        )
        return [_row_to_artifact(r) for r in rows]

    def aggregate(
        self, circle: CircleSelection, layer_ids: LayerFilter = None
    ) -> AggregationResult:
        artifacts = self.get_in_circle(circle, layer_ids)
        return AggregationResult(
            count=len(artifacts),
            categories=tally_categories(artifacts),
            artifacts=artifacts,
        )

    def get_viewport_data(
        self, bounds: Bounds, zoom: float, limit: int, layer_ids: LayerFilter = None
    ) -> ViewportResponse:
        allowed = layer_set(layer_ids)
        limit = max(0, int(limit))
        bbox_params = _bbox_params(BBox.from_bounds(bounds))
        layer_sql = _and_layer_sql(allowed)

        if zoom >= HIGH_ZOOM:
            # Fetch at least one row so the window count is always available.
            rows = self._fetchall(
                VIEWPORT_SINGLES_SQL_TEMPLATE.format(layer_sql=layer_sql),
                [*bbox_params, *_layer_params(allowed), max(1, limit)],
            )
            total = int(rows[0][-1]) if rows else 0
            singles = [_row_to_artifact(r[:-1]) for r in rows[:limit]]
            return ViewportResponse(
                clusters=[], singles=singles, total=total, truncated=total > limit
            )

        grid = grid_size_for_zoom(zoom)
        rows = self._fetchall(
            VIEWPORT_GRID_SQL_TEMPLATE.format(layer_sql=layer_sql),
            [grid, grid, *bbox_params, *_layer_params(allowed), CLUSTER_MIN_EXCLUSIVE],
        )

        clusters: list[ClusterData] = []
        singles: list[Artifact] = []
        total = 0
        for cell_x, cell_y, n, center_lat, center_lng, *member in rows:
            n = int(n)
            if n > CLUSTER_MIN_EXCLUSIVE:
                total += n
                clusters.append(
                    ClusterData(
                        id=cluster_id(int(cell_x), int(cell_y)),
                        lat=float(center_lat),
                        lng=float(center_lng),
                        count=n,
                    )
                )
            else:
                total += 1
                singles.append(_row_to_artifact(member))

        clusters, singles, truncated = truncate(clusters, singles, limit)
        return ViewportResponse(
            clusters=clusters, singles=singles, total=total, truncated=truncated
        )

    def count(self, layer_ids: LayerFilter = None) -> int:
        allowed = layer_set(layer_ids)
        where_sql = f"WHERE {LAYER_FILTER_SQL}" if allowed else ""
        row = self._fetchone(
            COUNT_ARTIFACTS_SQL_TEMPLATE.format(where_sql=where_sql), _layer_params(allowed)
        )
        return int(row[0] or 0) if row else 0

    def list_layers(self) -> list[Layer]:
        return [_row_to_layer(r) for r in self._fetchall(SELECT_LAYERS_SQL)]

    def get_layer(self, layer_id: str) -> Layer | None:
        row = self._fetchone(SELECT_LAYER_SQL, [layer_id])
        return _row_to_layer(row) if row else None

    # -- connection plumbing --------------------------------------------------

    def _init_schema(self) -> None:
        with self._write_lock:
            for stmt in CREATE_SCHEMA_SQL:
                self._conn.execute(stmt)

    def _cursor(self) -> duckdb.DuckDBPyConnection:
        cur = getattr(self._local, "cursor", None)
        if cur is None:
            try:
                cur = self._conn.cursor()
            except duckdb.Error as e:
                raise BackendUnavailableError(f"DuckDB at {self.path} is closed") from e
            self._local.cursor = cur
        return cur

    @contextmanager
    def _deadline(self, cur: duckdb.DuckDBPyConnection) -> Iterator[None]:
        # The deadline comes from the caller (`engine.deadline.query_deadline`).
        timeout_s = current_timeout()
        timer = None
        if timeout_s:
            timer = threading.Timer(timeout_s, cur.interrupt)
            timer.daemon = True
            timer.start()
        try:
            yield
        except duckdb.InterruptException as e:
            raise BackendTimeoutError(
                f"DuckDB query exceeded {timeout_s:.3f}s"
            ) from e
        except (duckdb.ConnectionException, duckdb.IOException) as e:
            raise BackendUnavailableError(f"DuckDB at {self.path} failed: {e}") from e
        finally:
            if timer is not None:
                timer.cancel()

    def _fetchall(self, sql: str, params: Sequence[Any] | None = None) -> list[tuple]:
        cur = self._cursor()
        with self._deadline(cur):
            return cur.execute(sql, list(params or [])).fetchall()

    def _fetchone(self, sql: str, params: Sequence[Any] | None = None) -> tuple | None:
        cur = self._cursor()
        with self._deadline(cur):
            return cur.execute(sql, list(params or [])).fetchone()

    @contextmanager
    def _transaction(self) -> Iterator[duckdb.DuckDBPyConnection]:
        with self._write_lock:
            cur = self._cursor()
            with self._deadline(cur):
                cur.begin()
                try:
                    yield cur
                except BaseException:
                    cur.rollback()
                    raise
                cur.commit()


def _connect(path: str, *, threads: int) -> duckdb.DuckDBPyConnection:
    try:
        if path != ":memory:":
            p = Path(path)
            if p.parent and str(p.parent) not in {".", ""}:
                p.parent.mkdir(parents=True, exist_ok=True)
        return duckdb.connect(
            database=path, read_only=False, config={"threads": int(threads)}
        )
    except (duckdb.Error, OSError) as e:
        raise BackendUnavailableError(f"Cannot open DuckDB at {path}: {e}") from e


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _dumps(value: Any) -> str | None:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False)


def _loads(raw: str | None) -> Any:
    if raw is None:
        return None
    return json.loads(raw)


def _artifact_row(a: Artifact) -> tuple:
    return (
        a.id,
        a.name,
        a.category,
        a.layer,
        a.description,
        _dumps(a.metadata),
        float(a.lat),
        float(a.lng),
        a.created_at,
    )


def _row_to_artifact(row: Sequence[Any]) -> Artifact:
    aid, name, category, layer, description, metadata_json, lat, lng, created_at = row
    return Artifact(
        id=str(aid),
        name=str(name),
        category=str(category),
        layer=str(layer),
        lat=float(lat),
        lng=float(lng),
        description=description,
        metadata=_loads(metadata_json),
        created_at=created_at,
    )


def _row_to_layer(row: Sequence[Any]) -> Layer:
    lid, name, description, source, source_date, count, visible, style_json = row
    return Layer(
        id=str(lid),
        name=str(name),
        artifact_count=int(count or 0),
        visible=bool(visible),
        description=description,
        source=source,
        source_date=source_date,
        style=_loads(style_json),
    )


def _bbox_params(b: BBox) -> list[float]:
    # Order matches BBOX_WHERE: west, east, south, north.
    return [float(b.min_lon), float(b.max_lon), float(b.min_lat), float(b.max_lat)]


def _layer_params(allowed: frozenset[str] | None) -> list[Any]:
    return [sorted(allowed)] if allowed else []


def _and_layer_sql(allowed: frozenset[str] | None) -> str:
    return f"AND {LAYER_FILTER_SQL}" if allowed else ""
