from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

# Seconds the caller is willing to wait for one persisted-backend statement.
# Set by the caller (the HTTP layer per request); backends only read it.
_timeout_s: ContextVar[float | None] = ContextVar("query_timeout_s", default=None)


@contextmanager
def query_deadline(timeout_s: float | None) -> Iterator[None]:
    """
    Run the enclosed backend calls under `timeout_s` (None keeps the outer value).

    Context-local: applies to calls made from the current thread/task only.
    """
    if timeout_s is None:
        yield
        return
    if timeout_s <= 0:
        raise ValueError("timeout_s must be > 0")
    token = _timeout_s.set(float(timeout_s))
    try:
        yield
    finally:
        _timeout_s.reset(token)


def current_timeout() -> float | None:
    return _timeout_s.get()
