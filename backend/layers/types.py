from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any

DEFAULT_LAYER = "default"


@dataclass(frozen=True)
class Artifact:
    """
    A single geotagged point record.

    Artifacts are never updated in place; the only mutation path is deleting the
    whole layer they belong to. The in-process backend hands out the stored
    instances, so callers must treat `metadata` as read-only.
    """

    id: str
    name: str
    category: str
    lat: float
    lng: float
    layer: str = DEFAULT_LAYER
    description: str | None = None
    # Free-form, string-keyed. Stored as JSON by the DuckDB backend.
    metadata: dict[str, Any] | None = None
    # ISO-8601 timestamp string.
    created_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "layer": self.layer,
            "lat": self.lat,
            "lng": self.lng,
        }
        if self.description is not None:
            out["description"] = self.description
        if self.metadata is not None:
            out["metadata"] = self.metadata
        if self.created_at is not None:
            out["createdAt"] = self.created_at
        return out


@dataclass(frozen=True)
class InsertArtifact:
    """Artifact payload before an id is assigned."""

    name: str
    category: str
    lat: float
    lng: float
    layer: str | None = None
    description: str | None = None
    metadata: dict[str, Any] | None = None
    created_at: str | None = None

    def with_id(self, artifact_id: str, *, created_at: str) -> Artifact:
        return Artifact(
            id=artifact_id,
            name=self.name,
            category=self.category,
            lat=self.lat,
            lng=self.lng,
            layer=self.layer or DEFAULT_LAYER,
            description=self.description,
            # Detached from the caller's dict so later edits to it do not leak in.
            metadata=copy.deepcopy(self.metadata),
            created_at=self.created_at or created_at,
        )


@dataclass(frozen=True)
class Layer:
    """
    Registry entry for a named partition of the artifact space.

    `artifact_count` is maintained incrementally by the backends.
    """

    id: str
    name: str
    artifact_count: int = 0
    visible: bool = True
    description: str | None = None
    source: str | None = None
    source_date: str | None = None
    # Free-form style hints for the map client.
    style: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "artifactCount": self.artifact_count,
            "visible": self.visible,
        }
        if self.description is not None:
            out["description"] = self.description
        if self.source is not None:
            out["source"] = self.source
        if self.source_date is not None:
            out["sourceDate"] = self.source_date
        if self.style is not None:
            out["style"] = self.style
        return out


@dataclass(frozen=True)
class NewLayer:
    """Input for `create_layer`; the backend owns `artifact_count`."""

    id: str
    name: str
    visible: bool = True
    description: str | None = None
    source: str | None = None
    source_date: str | None = None
    style: dict[str, Any] | None = field(default=None)

    def to_layer(self, *, artifact_count: int = 0) -> Layer:
        return Layer(
            id=self.id,
            name=self.name,
            artifact_count=int(artifact_count),
            visible=self.visible,
            description=self.description,
            source=self.source,
            source_date=self.source_date,
            style=self.style,
        )


def implicit_layer(layer_id: str) -> Layer:
    """Layer record created on the first artifact that references an unknown id."""
    return Layer(id=layer_id, name=layer_id)
