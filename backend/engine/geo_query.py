from __future__ import annotations

from dataclasses import dataclass

from engine.store import ArtifactStore
from engine.types import AggregationResult, CircleSelection, LayerFilter, tally_categories
from geo.distance import circle_bbox, distance_meters
from layers.types import Artifact


@dataclass(frozen=True)
class GeoQueryEngine:
    """
    Radius queries over an `ArtifactStore`.

    A square degree box around the center is used as an index prefilter, then every
    candidate is checked with the exact great-circle distance (inclusive).
    """

    store: ArtifactStore

    def get_in_circle(
        self, circle: CircleSelection, layer_ids: LayerFilter = None
    ) -> list[Artifact]:
        lat, lng = circle.center.lat, circle.center.lng
        radius = float(circle.radius)
        candidates = self.store.search_bbox(circle_bbox(lat, lng, radius), layer_ids)
        return [
            a for a in candidates if distance_meters(lat, lng, a.lat, a.lng) <= radius
        ]

    def aggregate(
        self, circle: CircleSelection, layer_ids: LayerFilter = None
    ) -> AggregationResult:
        artifacts = self.get_in_circle(circle, layer_ids)
        return AggregationResult(
            count=len(artifacts),
            categories=tally_categories(artifacts),
            artifacts=artifacts,
        )
