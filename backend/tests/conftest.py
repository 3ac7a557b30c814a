import sys
from pathlib import Path

import pytest


# Ensure `backend/` is on sys.path so tests can import local modules
# like `engine.*`, `geo.*`, and `main`.
BACKEND_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(BACKEND_ROOT))


@pytest.fixture(params=["memory", "duckdb"])
def backend(request):
    """Every backend, empty. Contract tests run once per backend."""
    from engine.duckdb import DuckDBBackend
    from engine.in_memory import InMemoryBackend

    if request.param == "duckdb":
        b = DuckDBBackend(path=":memory:", threads=2)
        yield b
        b.close()
    else:
        yield InMemoryBackend()


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    # Keep tests independent of the developer's shell.
    for name in (
        "MAPUI_BACKEND",
        "MAPUI_DUCKDB_PATH",
        "MAPUI_DUCKDB_THREADS",
        "MAPUI_SEED",
        "MAPUI_SEED_COUNT",
        "MAPUI_INDEX_PENDING_MAX",
    ):
        monkeypatch.delenv(name, raising=False)
