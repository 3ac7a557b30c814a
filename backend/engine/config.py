from __future__ import annotations

import os

BACKEND_MEMORY = "memory"
BACKEND_DUCKDB = "duckdb"


def normalize_backend_kind(name: str | None) -> str:
    v = (name or BACKEND_MEMORY).strip().lower()
    if v in {"duckdb", "db", "persisted"}:
        return BACKEND_DUCKDB
    return BACKEND_MEMORY


def backend_kind() -> str:
    return normalize_backend_kind(os.getenv("MAPUI_BACKEND"))


def duckdb_path() -> str:
    # ":memory:" keeps the persisted backend usable without a data directory.
    return (os.getenv("MAPUI_DUCKDB_PATH") or "").strip() or ":memory:"


def duckdb_threads() -> int:
    raw = (os.getenv("MAPUI_DUCKDB_THREADS") or "").strip()
    if raw:
        try:
            return max(1, int(raw))
        except ValueError:
            pass
    return max(1, int(os.cpu_count() or 1))


def seed_enabled() -> bool:
    v = (os.getenv("MAPUI_SEED") or "1").strip().lower()
    return v not in {"0", "false", "no", "off"}


def seed_count() -> int:
    raw = (os.getenv("MAPUI_SEED_COUNT") or "").strip()
    if raw:
        try:
            return max(0, int(raw))
        except ValueError:
            pass
    return 10_000


def index_pending_max() -> int:
    raw = (os.getenv("MAPUI_INDEX_PENDING_MAX") or "").strip()
    if raw:
        try:
            return max(0, int(raw))
        except ValueError:
            pass
    return 256
