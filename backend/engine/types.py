from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence, runtime_checkable

from layers.types import Artifact, InsertArtifact, Layer, NewLayer

# Layer filter accepted by every query: None or empty means "all layers".
LayerFilter = Sequence[str] | None


@dataclass(frozen=True)
class Bounds:
    """
    Axis-aligned lat/lng rectangle.

    `north >= south` is validated at the HTTP boundary. `east >= west` is assumed;
    antimeridian-crossing viewports are not supported.
    """

    north: float
    south: float
    east: float
    west: float


@dataclass(frozen=True)
class Point:
    lat: float
    lng: float


@dataclass(frozen=True)
class CircleSelection:
    center: Point
    # Meters, 0 < radius <= Earth's circumference.
    radius: float


@dataclass(frozen=True)
class ClusterData:
    """
    Synthetic point standing in for every artifact of one grid cell. Never persisted.
    """

    id: str
    lat: float
    lng: float
    count: int

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "lat": self.lat, "lng": self.lng, "count": self.count}


@dataclass(frozen=True)
class ViewportResponse:
    clusters: list[ClusterData] = field(default_factory=list)
    singles: list[Artifact] = field(default_factory=list)
    # Artifacts matching the bounds before truncation.
    total: int = 0
    truncated: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "clusters": [c.to_dict() for c in self.clusters],
            "singles": [a.to_dict() for a in self.singles],
            "total": self.total,
            "truncated": self.truncated,
        }


@dataclass(frozen=True)
class AggregationResult:
    count: int
    # Only categories with at least one match.
    categories: dict[str, int]
    artifacts: list[Artifact]

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "categories": dict(self.categories),
            "artifacts": [a.to_dict() for a in self.artifacts],
        }


@runtime_checkable
class ArtifactBackend(Protocol):
    """
    Storage backend contract.

    - InMemoryBackend: artifact map + STRtree index inside the process
    - DuckDBBackend: persisted tables queried with equivalent SQL predicates

    Both must return the same results (and the same ordering) for the same data.
    """

    name: str

    def ping(self) -> None: ...

    def create(self, artifact: InsertArtifact) -> Artifact: ...

    def create_many(self, artifacts: Sequence[InsertArtifact]) -> list[Artifact]: ...

    def get(self, artifact_id: str) -> Artifact | None: ...

    def get_all(self, layer_ids: LayerFilter = None) -> list[Artifact]: ...

    def get_in_bounds(
        self, bounds: Bounds, layer_ids: LayerFilter = None
    ) -> list[Artifact]: ...

    def get_in_circle(
        self, circle: CircleSelection, layer_ids: LayerFilter = None
    ) -> list[Artifact]: ...

    def aggregate(
        self, circle: CircleSelection, layer_ids: LayerFilter = None
    ) -> AggregationResult: ...

    def get_viewport_data(
        self, bounds: Bounds, zoom: float, limit: int, layer_ids: LayerFilter = None
    ) -> ViewportResponse: ...

    def count(self, layer_ids: LayerFilter = None) -> int: ...

    def list_layers(self) -> list[Layer]: ...

    def get_layer(self, layer_id: str) -> Layer | None: ...

    def create_layer(self, layer: NewLayer) -> Layer: ...

    def set_layer_visible(self, layer_id: str, visible: bool) -> None: ...

    def delete_layer(self, layer_id: str) -> None: ...


def layer_set(layer_ids: LayerFilter) -> frozenset[str] | None:
    """Normalize a layer filter; None means no filtering."""
    if not layer_ids:
        return None
    return frozenset(str(lid) for lid in layer_ids)


def tally_categories(artifacts: Sequence[Artifact]) -> dict[str, int]:
    categories: dict[str, int] = {}
    for a in artifacts:
        categories[a.category] = categories.get(a.category, 0) + 1
    return categories
