from __future__ import annotations

from loguru import logger

from engine.config import (
    BACKEND_DUCKDB,
    backend_kind,
    duckdb_path,
    normalize_backend_kind,
    seed_count,
    seed_enabled,
)
from engine.duckdb import DuckDBBackend
from engine.errors import BackendUnavailableError
from engine.in_memory import InMemoryBackend
from engine.seed import seed_backend
from engine.types import ArtifactBackend


def create_backend(
    kind: str | None = None, *, seed: bool | None = None
) -> ArtifactBackend:
    """
    Build the backend selected by `MAPUI_BACKEND` (or `kind`).

    The persisted backend is health-checked first; if it cannot be opened or does
    not answer, we fall back to the in-process backend.
    """
    kind = normalize_backend_kind(kind) if kind else backend_kind()
    do_seed = seed_enabled() if seed is None else bool(seed)

    if kind == BACKEND_DUCKDB:
        db: DuckDBBackend | None = None
        try:
            db = DuckDBBackend(path=duckdb_path())
            db.ping()
        except BackendUnavailableError as e:
            logger.warning(f"DuckDB backend unavailable ({e}); falling back to in-memory")
            if db is not None:
                db.close()
        else:
            logger.info("Using DuckDB storage backend")
            if do_seed and db.count() == 0:
                seed_backend(db, count=seed_count())
            return db

    mem = InMemoryBackend()
    logger.info("Using in-memory storage backend")
    if do_seed:
        seed_backend(mem, count=seed_count())
    return mem
