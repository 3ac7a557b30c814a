from __future__ import annotations

import threading

from fastapi import Header, Request

from engine.factory import create_backend
from engine.types import ArtifactBackend

_init_lock = threading.Lock()


def get_backend(request: Request) -> ArtifactBackend:
    """
    Backend owned by the app (`app.state.backend`), created on first use.
    """
    state = request.app.state
    backend = getattr(state, "backend", None)
    if backend is not None:
        return backend
    with _init_lock:
        backend = getattr(state, "backend", None)
        if backend is None:
            backend = create_backend()
            state.backend = backend
    return backend


def split_layers(layers: list[str] | None) -> list[str] | None:
    """Accept both `?layers=a&layers=b` and `?layers=a,b`."""
    if not layers:
        return None
    out = [p.strip() for raw in layers for p in raw.split(",") if p.strip()]
    return out or None


def request_timeout(
    x_request_timeout_ms: int | None = Header(default=None, ge=1, le=600_000),
) -> float | None:
    """
    Client-supplied deadline for this request, in seconds.

    Endpoints wrap their backend calls in `engine.deadline.query_deadline` with it;
    the persisted backend interrupts statements that outlive it.
    """
    if x_request_timeout_ms is None:
        return None
    return x_request_timeout_ms / 1000.0
