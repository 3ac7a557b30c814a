from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Response

from api.deps import get_backend, request_timeout
from api.schemas import ApiLayerVisibility, ApiNewLayer
from engine.deadline import query_deadline
from engine.types import ArtifactBackend

router = APIRouter(prefix="/api/layers", tags=["layers"])


@router.get("")
def list_layers(
    backend: ArtifactBackend = Depends(get_backend),
    timeout_s: float | None = Depends(request_timeout),
) -> list[dict[str, Any]]:
    with query_deadline(timeout_s):
        return [layer.to_dict() for layer in backend.list_layers()]


@router.post("", status_code=201)
def create_layer(
    body: ApiNewLayer,
    backend: ArtifactBackend = Depends(get_backend),
    timeout_s: float | None = Depends(request_timeout),
) -> dict[str, Any]:
    with query_deadline(timeout_s):
        return backend.create_layer(body.to_new_layer()).to_dict()


@router.get("/{layer_id}")
def get_layer(
    layer_id: str,
    backend: ArtifactBackend = Depends(get_backend),
    timeout_s: float | None = Depends(request_timeout),
) -> dict[str, Any]:
    with query_deadline(timeout_s):
        layer = backend.get_layer(layer_id)
    if layer is None:
        raise HTTPException(status_code=404, detail="Layer not found")
    return layer.to_dict()


@router.patch("/{layer_id}/visibility")
def set_layer_visibility(
    layer_id: str,
    body: ApiLayerVisibility,
    backend: ArtifactBackend = Depends(get_backend),
    timeout_s: float | None = Depends(request_timeout),
) -> dict[str, Any]:
    with query_deadline(timeout_s):
        if backend.get_layer(layer_id) is None:
            raise HTTPException(status_code=404, detail="Layer not found")
        backend.set_layer_visible(layer_id, body.visible)
        layer = backend.get_layer(layer_id)
    if layer is None:
        # Deleted concurrently.
        raise HTTPException(status_code=404, detail="Layer not found")
    return layer.to_dict()


@router.delete("/{layer_id}", status_code=204)
def delete_layer(
    layer_id: str,
    backend: ArtifactBackend = Depends(get_backend),
    timeout_s: float | None = Depends(request_timeout),
) -> Response:
    with query_deadline(timeout_s):
        backend.delete_layer(layer_id)
    return Response(status_code=204)
