from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import ValidationError

from api.deps import get_backend, request_timeout, split_layers
from api.schemas import (
    ApiBatchInsert,
    ApiBounds,
    ApiCircleQuery,
    ApiInsertArtifact,
    ApiViewportQuery,
)
from engine.deadline import query_deadline
from engine.types import ArtifactBackend

router = APIRouter(prefix="/api", tags=["artifacts"])


@router.get("/artifacts")
def list_artifacts(
    north: float | None = None,
    south: float | None = None,
    east: float | None = None,
    west: float | None = None,
    layers: list[str] | None = Query(default=None),
    backend: ArtifactBackend = Depends(get_backend),
    timeout_s: float | None = Depends(request_timeout),
) -> list[dict[str, Any]]:
    layer_ids = split_layers(layers)
    edges = (north, south, east, west)
    if all(v is None for v in edges):
        with query_deadline(timeout_s):
            return [a.to_dict() for a in backend.get_all(layer_ids)]
    if any(v is None for v in edges):
        raise HTTPException(
            status_code=422, detail="north, south, east and west must be given together"
        )
    try:
        bounds = ApiBounds(north=north, south=south, east=east, west=west)
    except ValidationError as e:
        detail = e.errors(include_url=False, include_context=False)
        raise HTTPException(status_code=422, detail=detail) from e
    with query_deadline(timeout_s):
        hits = backend.get_in_bounds(bounds.to_bounds(), layer_ids)
    return [a.to_dict() for a in hits]


@router.get("/artifacts/count")
def count_artifacts(
    layers: list[str] | None = Query(default=None),
    backend: ArtifactBackend = Depends(get_backend),
    timeout_s: float | None = Depends(request_timeout),
) -> dict[str, int]:
    with query_deadline(timeout_s):
        return {"count": backend.count(split_layers(layers))}


@router.get("/artifacts/{artifact_id}")
def get_artifact(
    artifact_id: str,
    backend: ArtifactBackend = Depends(get_backend),
    timeout_s: float | None = Depends(request_timeout),
) -> dict[str, Any]:
    with query_deadline(timeout_s):
        artifact = backend.get(artifact_id)
    if artifact is None:
        raise HTTPException(status_code=404, detail="Artifact not found")
    return artifact.to_dict()


@router.post("/artifacts", status_code=201)
def create_artifact(
    body: ApiInsertArtifact,
    backend: ArtifactBackend = Depends(get_backend),
    timeout_s: float | None = Depends(request_timeout),
) -> dict[str, Any]:
    with query_deadline(timeout_s):
        return backend.create(body.to_insert()).to_dict()


@router.post("/artifacts/batch", status_code=201)
def create_artifacts(
    body: ApiBatchInsert,
    backend: ArtifactBackend = Depends(get_backend),
    timeout_s: float | None = Depends(request_timeout),
) -> list[dict[str, Any]]:
    with query_deadline(timeout_s):
        created = backend.create_many([a.to_insert() for a in body.artifacts])
    return [a.to_dict() for a in created]


@router.post("/artifacts/query/circle")
def query_circle(
    body: ApiCircleQuery,
    backend: ArtifactBackend = Depends(get_backend),
    timeout_s: float | None = Depends(request_timeout),
) -> dict[str, Any]:
    with query_deadline(timeout_s):
        return backend.aggregate(body.to_circle(), body.layers).to_dict()


@router.post("/viewport")
def viewport(
    body: ApiViewportQuery,
    backend: ArtifactBackend = Depends(get_backend),
    timeout_s: float | None = Depends(request_timeout),
) -> dict[str, Any]:
    with query_deadline(timeout_s):
        resp = backend.get_viewport_data(
            body.bounds.to_bounds(), body.zoom, body.limit, body.layers
        )
    return resp.to_dict()
