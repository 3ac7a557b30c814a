from __future__ import annotations

from layers.types import InsertArtifact


def art(
    name: str,
    lat: float,
    lng: float,
    *,
    category: str = "pole",
    layer: str | None = None,
    metadata: dict | None = None,
) -> InsertArtifact:
    return InsertArtifact(
        name=name, category=category, lat=lat, lng=lng, layer=layer, metadata=metadata
    )
