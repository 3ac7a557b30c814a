from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace
from typing import Generic, Iterable, TypeVar

import numpy as np
import shapely
from shapely.strtree import STRtree

T = TypeVar("T")

Entry = tuple[float, float, T]


@dataclass(frozen=True)
class _Snapshot(Generic[T]):
    """
    Immutable view of the index. Readers grab one reference and never lock.
    """

    tree: STRtree
    xs: np.ndarray
    ys: np.ndarray
    items: tuple[T, ...]
    # Inserted since the tree was built: (x, y, item), insertion order.
    pending: tuple[Entry, ...] = ()


@dataclass
class SpatialIndex(Generic[T]):
    """
    Point index for closed-rectangle queries (x = lon, y = lat).

    Notes:
    - The STRtree is immutable once built; `bulk_load` builds a new snapshot and
      swaps it in by reference.
    - `insert` appends to a small pending tuple that is scanned linearly; when it
      grows past `pending_max` everything is folded into a fresh tree.
    - Search results come back in insertion order.
    """

    pending_max: int = 256

    _snapshot: _Snapshot = field(init=False, repr=False)
    _write_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __post_init__(self) -> None:
        self._snapshot = _build_snapshot([])

    def __len__(self) -> int:
        snap = self._snapshot
        return len(snap.items) + len(snap.pending)

    def bulk_load(self, entries: Iterable[Entry]) -> None:
        snap = _build_snapshot(list(entries))
        with self._write_lock:
            self._snapshot = snap

    def insert(self, x: float, y: float, item: T) -> None:
        self.insert_many([(x, y, item)])

    def insert_many(self, entries: Iterable[Entry]) -> None:
        """
        Append a batch to the pending tuple; the tree is rebuilt at most once.
        """
        batch = tuple((float(x), float(y), item) for x, y, item in entries)
        if not batch:
            return
        with self._write_lock:
            snap = self._snapshot
            pending = (*snap.pending, *batch)
            if len(pending) > max(0, int(self.pending_max)):
                self._snapshot = _build_snapshot([*_tree_entries(snap), *pending])
            else:
                self._snapshot = replace(snap, pending=pending)

    def search_bbox(
        self, min_x: float, min_y: float, max_x: float, max_y: float
    ) -> list[T]:
        # Inverted (or NaN) boxes match nothing; no antimeridian wrapping.
        if not (min_x <= max_x and min_y <= max_y):
            return []

        snap = self._snapshot
        out: list[T] = []
        if snap.items:
            hits = snap.tree.query(shapely.box(min_x, min_y, max_x, max_y))
            if hits.size:
                hits = np.sort(hits)
                xs = snap.xs[hits]
                ys = snap.ys[hits]
                inside = (xs >= min_x) & (xs <= max_x) & (ys >= min_y) & (ys <= max_y)
                out = [snap.items[i] for i in hits[inside].tolist()]

        for x, y, item in snap.pending:
            if min_x <= x <= max_x and min_y <= y <= max_y:
                out.append(item)
        return out

    def items(self) -> list[T]:
        snap = self._snapshot
        return [*snap.items, *(e[2] for e in snap.pending)]

    def pending_count(self) -> int:
        return len(self._snapshot.pending)


def _build_snapshot(entries: list[Entry]) -> _Snapshot:
    n = len(entries)
    xs = np.fromiter((e[0] for e in entries), dtype=float, count=n)
    ys = np.fromiter((e[1] for e in entries), dtype=float, count=n)

    # Non-finite coordinates stay in `items` but never enter the tree.
    geoms = np.full(n, None, dtype=object)
    finite = np.isfinite(xs) & np.isfinite(ys)
    if finite.any():
        geoms[finite] = shapely.points(xs[finite], ys[finite])

    return _Snapshot(
        tree=STRtree(geoms),
        xs=xs,
        ys=ys,
        items=tuple(e[2] for e in entries),
    )


def _tree_entries(snap: _Snapshot) -> list[Entry]:
    return list(zip(snap.xs.tolist(), snap.ys.tolist(), snap.items))
