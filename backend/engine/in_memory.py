from __future__ import annotations

from typing import Iterable, Sequence

from engine.geo_query import GeoQueryEngine
from engine.store import ArtifactStore
from engine.types import (
    AggregationResult,
    Bounds,
    CircleSelection,
    LayerFilter,
    ViewportResponse,
)
from layers.types import Artifact, InsertArtifact, Layer, NewLayer
from lod.viewport import build_viewport


class InMemoryBackend:
    """
    In-process backend: artifact map + STRtree index, no I/O.

    Each process owns its own store; nothing here is shared across processes.
    """

    name = "memory"

    def __init__(self, store: ArtifactStore | None = None):
        self.store = store if store is not None else ArtifactStore()
        self.geo = GeoQueryEngine(self.store)

    def ping(self) -> None:
        return None

    def create(self, artifact: InsertArtifact) -> Artifact:
        return self.store.create(artifact)

    def create_many(self, artifacts: Sequence[InsertArtifact]) -> list[Artifact]:
        return self.store.create_many(artifacts)

    def bulk_load(self, artifacts: Iterable[InsertArtifact]) -> list[Artifact]:
        return self.store.bulk_load(artifacts)

    def get(self, artifact_id: str) -> Artifact | None:
        return self.store.get(artifact_id)

    def get_all(self, layer_ids: LayerFilter = None) -> list[Artifact]:
        return self.store.get_all(layer_ids)

    def get_in_bounds(self, bounds: Bounds, layer_ids: LayerFilter = None) -> list[Artifact]:
        return self.store.get_in_bounds(bounds, layer_ids)

    def get_in_circle(
        self, circle: CircleSelection, layer_ids: LayerFilter = None
    ) -> list[Artifact]:
        return self.geo.get_in_circle(circle, layer_ids)

    def aggregate(
        self, circle: CircleSelection, layer_ids: LayerFilter = None
    ) -> AggregationResult:
        return self.geo.aggregate(circle, layer_ids)

    def get_viewport_data(
        self, bounds: Bounds, zoom: float, limit: int, layer_ids: LayerFilter = None
    ) -> ViewportResponse:
        artifacts = self.store.get_in_bounds(bounds, layer_ids)
        return build_viewport(artifacts, zoom=zoom, limit=limit)

    def count(self, layer_ids: LayerFilter = None) -> int:
        return self.store.count(layer_ids)

    def list_layers(self) -> list[Layer]:
        return self.store.list_layers()

    def get_layer(self, layer_id: str) -> Layer | None:
        return self.store.get_layer(layer_id)

    def create_layer(self, layer: NewLayer) -> Layer:
        return self.store.create_layer(layer)

    def set_layer_visible(self, layer_id: str, visible: bool) -> None:
        self.store.set_layer_visible(layer_id, visible)

    def delete_layer(self, layer_id: str) -> None:
        self.store.delete_layer(layer_id)

    def reset(self) -> None:
        self.store.reset()
