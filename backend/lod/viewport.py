from __future__ import annotations

import math
from typing import Sequence

from engine.types import ClusterData, ViewportResponse
from layers.types import Artifact

# At and above this zoom every artifact is returned individually.
HIGH_ZOOM = 13

# A grid cell is folded into a cluster only when it holds more than this many artifacts.
CLUSTER_MIN_EXCLUSIVE = 3


def grid_size_for_zoom(zoom: float) -> float:
    # Cell edge in degrees; coarser grids at low zoom.
    if zoom <= 6:
        return 2.0
    if zoom <= 8:
        return 1.0
    if zoom <= 10:
        return 0.5
    if zoom <= 12:
        return 0.1
    return 0.05


def cell_key(lat: float, lng: float, grid: float) -> tuple[int, int]:
    return math.floor(lng / grid), math.floor(lat / grid)


def cluster_id(cell_x: int, cell_y: int) -> str:
    return f"cluster-{cell_x}:{cell_y}"


def cluster_artifacts(
    artifacts: Sequence[Artifact], *, zoom: float
) -> tuple[list[ClusterData], list[Artifact]]:
    """
    Bucket artifacts into a lat/lng degree grid.

    Cells keep first-seen order; members keep input order. Dense cells become one
    `ClusterData` at the members' mean position, the rest are returned as singles.
    """
    grid = grid_size_for_zoom(zoom)

    cells: dict[tuple[int, int], list[Artifact]] = {}
    for a in artifacts:
        cells.setdefault(cell_key(a.lat, a.lng, grid), []).append(a)

    clusters: list[ClusterData] = []
    singles: list[Artifact] = []
    for (cx, cy), members in cells.items():
        n = len(members)
        if n > CLUSTER_MIN_EXCLUSIVE:
            clusters.append(
                ClusterData(
                    id=cluster_id(cx, cy),
                    lat=sum(m.lat for m in members) / n,
                    lng=sum(m.lng for m in members) / n,
                    count=n,
                )
            )
        else:
            singles.extend(members)
    return clusters, singles


def truncate(
    clusters: list[ClusterData], singles: list[Artifact], limit: int
) -> tuple[list[ClusterData], list[Artifact], bool]:
    """
    Fit clusters + singles into `limit` items. Clusters always win over singles.
    """
    limit = max(0, int(limit))
    if len(clusters) + len(singles) <= limit:
        return clusters, singles, False
    if len(clusters) <= limit:
        return clusters, singles[: limit - len(clusters)], True
    return clusters[:limit], [], True


def high_zoom_singles(
    artifacts: Sequence[Artifact], limit: int
) -> tuple[list[Artifact], bool]:
    limit = max(0, int(limit))
    if len(artifacts) > limit:
        return list(artifacts[:limit]), True
    return list(artifacts), False


def build_viewport(
    artifacts: Sequence[Artifact], *, zoom: float, limit: int
) -> ViewportResponse:
    """
    Reduce a bounds query result to what the map should draw at `zoom`.
    """
    total = len(artifacts)

    if zoom >= HIGH_ZOOM:
        singles, truncated = high_zoom_singles(artifacts, limit)
        return ViewportResponse(
            clusters=[], singles=singles, total=total, truncated=truncated
        )

    clusters, singles = cluster_artifacts(artifacts, zoom=zoom)
    clusters, singles, truncated = truncate(clusters, singles, limit)
    return ViewportResponse(
        clusters=clusters, singles=singles, total=total, truncated=truncated
    )
