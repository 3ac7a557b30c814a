from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, model_validator

from engine.types import Bounds, CircleSelection, Point
from geo.distance import EARTH_CIRCUMFERENCE_M
from layers.types import InsertArtifact, NewLayer


class ApiInsertArtifact(BaseModel):
    name: str = Field(min_length=1, max_length=500)
    category: str = Field(min_length=1, max_length=100)
    layer: str | None = Field(default=None, min_length=1, max_length=100)
    lat: float = Field(ge=-90.0, le=90.0)
    lng: float = Field(ge=-180.0, le=180.0)
    description: str | None = Field(default=None, max_length=5000)
    metadata: dict[str, Any] | None = None
    createdAt: str | None = None

    def to_insert(self) -> InsertArtifact:
        return InsertArtifact(
            name=self.name,
            category=self.category,
            layer=self.layer,
            lat=self.lat,
            lng=self.lng,
            description=self.description,
            metadata=self.metadata,
            created_at=self.createdAt,
        )


class ApiBatchInsert(BaseModel):
    artifacts: list[ApiInsertArtifact] = Field(max_length=50_000)


class ApiBounds(BaseModel):
    """
    Viewport rectangle.

    `east < west` (antimeridian crossing) is accepted and simply matches nothing.
    """

    north: float = Field(ge=-90.0, le=90.0)
    south: float = Field(ge=-90.0, le=90.0)
    east: float = Field(ge=-180.0, le=180.0)
    west: float = Field(ge=-180.0, le=180.0)

    @model_validator(mode="after")
    def _north_not_below_south(self) -> "ApiBounds":
        if self.north < self.south:
            raise ValueError("north must be >= south")
        return self

    def to_bounds(self) -> Bounds:
        return Bounds(north=self.north, south=self.south, east=self.east, west=self.west)


class ApiPoint(BaseModel):
    lat: float = Field(ge=-90.0, le=90.0)
    lng: float = Field(ge=-180.0, le=180.0)


class ApiCircleQuery(BaseModel):
    center: ApiPoint
    # Meters.
    radius: float = Field(gt=0.0, le=EARTH_CIRCUMFERENCE_M)
    layers: list[str] | None = None

    def to_circle(self) -> CircleSelection:
        return CircleSelection(
            center=Point(lat=self.center.lat, lng=self.center.lng), radius=self.radius
        )


class ApiViewportQuery(BaseModel):
    bounds: ApiBounds
    zoom: float = Field(ge=0.0, le=24.0)
    limit: int = Field(default=1000, ge=0, le=100_000)
    layers: list[str] | None = None


class ApiNewLayer(BaseModel):
    id: str = Field(min_length=1, max_length=100)
    name: str = Field(min_length=1, max_length=200)
    visible: bool = True
    description: str | None = Field(default=None, max_length=5000)
    source: str | None = None
    sourceDate: str | None = None
    style: dict[str, Any] | None = None

    def to_new_layer(self) -> NewLayer:
        return NewLayer(
            id=self.id,
            name=self.name,
            visible=self.visible,
            description=self.description,
            source=self.source,
            source_date=self.sourceDate,
            style=self.style,
        )


class ApiLayerVisibility(BaseModel):
    visible: bool
