from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Iterable, Sequence

from loguru import logger

from engine.config import index_pending_max
from engine.types import Bounds, LayerFilter, layer_set
from geo.aoi import BBox
from geo.index import SpatialIndex
from layers.types import Artifact, InsertArtifact, Layer, NewLayer, implicit_layer


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class ArtifactStore:
    """
    Canonical id -> artifact map plus the spatial index over it, and the layer registry.

    Concurrency:
    - Readers never lock. They read the index snapshot or do single dict lookups.
    - Every mutation runs under `_write_lock`, so map, index and layer counters
      change together.
    """

    pending_max: int = field(default_factory=index_pending_max)

    _artifacts: dict[str, Artifact] = field(default_factory=dict, repr=False)
    _layers: dict[str, Layer] = field(default_factory=dict, repr=False)
    _index: SpatialIndex[Artifact] = field(init=False, repr=False)
    _write_lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    def __post_init__(self) -> None:
        self._index = SpatialIndex(pending_max=self.pending_max)

    # -- writes ---------------------------------------------------------------

    def create(self, insert: InsertArtifact) -> Artifact:
        artifact = insert.with_id(str(uuid.uuid4()), created_at=_now_iso())
        x, y = _point(artifact)
        with self._write_lock:
            self._add(artifact, x, y)
        return artifact

    def create_many(self, inserts: Sequence[InsertArtifact]) -> list[Artifact]:
        created_at = _now_iso()
        artifacts = [i.with_id(str(uuid.uuid4()), created_at=created_at) for i in inserts]
        # Coordinates are coerced up front: one bad record fails the whole batch.
        entries = [(*_point(a), a) for a in artifacts]
        with self._write_lock:
            self._index.insert_many(entries)
            for a in artifacts:
                self._artifacts[a.id] = a
                self._bump_layer(a.layer, 1)
        return artifacts

    def bulk_load(self, inserts: Iterable[InsertArtifact]) -> list[Artifact]:
        """
        Add many artifacts and rebuild the index once (seeding path).
        """
        created_at = _now_iso()
        artifacts = [i.with_id(str(uuid.uuid4()), created_at=created_at) for i in inserts]
        with self._write_lock:
            merged = [*self._index.items(), *artifacts]
            self._index.bulk_load((a.lng, a.lat, a) for a in merged)
            for a in artifacts:
                self._artifacts[a.id] = a
            self._recount_layers()
        return artifacts

    def delete_layer(self, layer_id: str) -> None:
        with self._write_lock:
            doomed = [aid for aid, a in self._artifacts.items() if a.layer == layer_id]
            for aid in doomed:
                del self._artifacts[aid]
            self.rebuild_index()
            self._layers.pop(layer_id, None)
        logger.info(
            f"Deleted layer '{layer_id}': removed {len(doomed)} artifacts, "
            f"index rebuilt with {len(self._artifacts)}"
        )

    def rebuild_index(self) -> None:
        with self._write_lock:
            self._index.bulk_load((a.lng, a.lat, a) for a in self._artifacts.values())

    def reset(self) -> None:
        with self._write_lock:
            self._artifacts = {}
            self._layers = {}
            self._index.bulk_load([])

    # -- reads ----------------------------------------------------------------

    def get(self, artifact_id: str) -> Artifact | None:
        return self._artifacts.get(artifact_id)

    def get_all(self, layer_ids: LayerFilter = None) -> list[Artifact]:
        return _filter_layers(self._index.items(), layer_ids)

    def get_in_bounds(self, bounds: Bounds, layer_ids: LayerFilter = None) -> list[Artifact]:
        return self.search_bbox(BBox.from_bounds(bounds), layer_ids)

    def search_bbox(self, bbox: BBox, layer_ids: LayerFilter = None) -> list[Artifact]:
        hits = self._index.search_bbox(*bbox.as_tuple())
        return _filter_layers(hits, layer_ids)

    def count(self, layer_ids: LayerFilter = None) -> int:
        if not layer_ids:
            return len(self._artifacts)
        return len(self.get_all(layer_ids))

    # -- layer registry -------------------------------------------------------

    def list_layers(self) -> list[Layer]:
        return sorted(self._layers.values(), key=lambda layer: (layer.name, layer.id))

    def get_layer(self, layer_id: str) -> Layer | None:
        return self._layers.get(layer_id)

    def create_layer(self, layer: NewLayer) -> Layer:
        with self._write_lock:
            existing = self._layers.get(layer.id)
            count = existing.artifact_count if existing is not None else 0
            out = layer.to_layer(artifact_count=count)
            self._layers[layer.id] = out
            return out

    def set_layer_visible(self, layer_id: str, visible: bool) -> None:
        with self._write_lock:
            layer = self._layers.get(layer_id)
            if layer is not None:
                self._layers[layer_id] = replace(layer, visible=bool(visible))

    # -- internals ------------------------------------------------------------

    def _add(self, artifact: Artifact, x: float, y: float) -> None:
        self._index.insert(x, y, artifact)
        self._artifacts[artifact.id] = artifact
        self._bump_layer(artifact.layer, 1)

    def _bump_layer(self, layer_id: str, delta: int) -> None:
        layer = self._layers.get(layer_id) or implicit_layer(layer_id)
        self._layers[layer_id] = replace(
            layer, artifact_count=layer.artifact_count + delta
        )

    def _recount_layers(self) -> None:
        counts: dict[str, int] = {}
        for a in self._artifacts.values():
            counts[a.layer] = counts.get(a.layer, 0) + 1
        for layer_id in counts.keys() - self._layers.keys():
            self._layers[layer_id] = implicit_layer(layer_id)
        for layer_id, layer in list(self._layers.items()):
            self._layers[layer_id] = replace(
                layer, artifact_count=counts.get(layer_id, 0)
            )


def _point(artifact: Artifact) -> tuple[float, float]:
    return float(artifact.lng), float(artifact.lat)


def _filter_layers(artifacts: list[Artifact], layer_ids: LayerFilter) -> list[Artifact]:
    allowed = layer_set(layer_ids)
    if allowed is None:
        return artifacts
    return [a for a in artifacts if a.layer in allowed]
