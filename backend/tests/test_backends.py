from __future__ import annotations

import random

import pytest

from engine.duckdb import DuckDBBackend
from engine.in_memory import InMemoryBackend
from engine.types import ArtifactBackend, Bounds, CircleSelection, Point
from geo.distance import distance_meters
from helpers import art
from layers.types import NewLayer

WORLD = Bounds(north=90, south=-90, east=180, west=-180)


def test_backend_satisfies_protocol(backend):
    assert isinstance(backend, ArtifactBackend)
    backend.ping()


def test_create_get_round_trip(backend):
    a = backend.create(
        art("Pole 7", 41.5, -72.7, layer="poles", metadata={"status": "active", "n": 3})
    )
    assert backend.get(a.id) == a
    assert backend.get("nope") is None
    hits = backend.get_in_bounds(Bounds(north=42, south=41, east=-72, west=-73))
    assert a in hits


def test_bounds_are_inclusive_on_every_edge(backend):
    b = Bounds(north=42.0, south=41.0, east=-72.0, west=-73.0)
    on_edges = backend.create_many(
        [
            art("n", 42.0, -72.5),
            art("s", 41.0, -72.5),
            art("e", 41.5, -72.0),
            art("w", 41.5, -73.0),
            art("corner", 42.0, -72.0),
        ]
    )
    backend.create(art("outside", 42.0001, -72.5))
    assert [a.id for a in backend.get_in_bounds(b)] == [a.id for a in on_edges]


def test_inverted_bounds_match_nothing(backend):
    backend.create(art("a", 0.0, 179.5))
    backend.create(art("b", 0.0, -179.5))
    crossing = Bounds(north=1, south=-1, east=-179, west=179)
    assert backend.get_in_bounds(crossing) == []
    assert backend.get_viewport_data(crossing, 5, 100).total == 0


def test_get_all_is_idempotent_and_ordered(backend):
    created = backend.create_many([art(f"a{i}", i, -i) for i in range(10)])
    first = backend.get_all()
    assert [a.id for a in first] == [a.id for a in created]
    assert backend.get_all() == first


def test_radius_query_around_hartford(backend):
    center, near, _ = backend.create_many(
        [
            art("center", 41.5, -72.7),
            art("500m", 41.5045, -72.7),
            art("2km", 41.518, -72.7),
        ]
    )
    got = backend.get_in_circle(CircleSelection(Point(41.5, -72.7), 1000))
    assert {a.id for a in got} == {center.id, near.id}
    got = backend.get_in_circle(CircleSelection(Point(41.5, -72.7), 10))
    assert [a.id for a in got] == [center.id]


def test_equator_degree_apart(backend):
    a, b = backend.create_many([art("A", 0.0, 0.0), art("B", 1.0, 0.0)])
    small = backend.get_in_circle(CircleSelection(Point(0.0, 0.0), 50_000))
    assert [x.id for x in small] == [a.id]
    large = backend.get_in_circle(CircleSelection(Point(0.0, 0.0), 120_000))
    assert {x.id for x in large} == {a.id, b.id}


def test_point_on_radius_is_included(backend):
    edge = backend.create(art("edge", 41.51, -72.69))
    d = distance_meters(41.5, -72.7, 41.51, -72.69)
    got = backend.get_in_circle(CircleSelection(Point(41.5, -72.7), d * (1 + 1e-12)))
    assert [a.id for a in got] == [edge.id]


def test_aggregate(backend):
    backend.create_many(
        [
            art("p1", 41.5, -72.7, category="pole"),
            art("m1", 41.5001, -72.7, category="meter"),
            art("p2", 41.5002, -72.7, category="pole"),
            art("far", 43.0, -72.7, category="substation"),
        ]
    )
    result = backend.aggregate(CircleSelection(Point(41.5, -72.7), 500))
    assert result.count == 3
    assert result.categories == {"pole": 2, "meter": 1}
    assert [a.name for a in result.artifacts] == ["p1", "m1", "p2"]


def test_viewport_clusters_dense_area(backend):
    backend.create_many(
        [art(f"d{i}", 41.6 + (i % 5) * 0.002, -72.9 + (i // 5) * 0.002) for i in range(20)]
    )
    backend.create_many([art("far1", 42.1, -72.4), art("far2", 42.11, -72.39)])
    resp = backend.get_viewport_data(
        Bounds(north=43, south=41, east=-72, west=-74), zoom=10, limit=1000
    )
    assert len(resp.clusters) >= 1
    assert sorted(a.name for a in resp.singles) == ["far1", "far2"]
    assert resp.total == 22
    assert resp.truncated is False


def test_viewport_threshold_three_vs_four(backend):
    backend.create_many([art(f"three{i}", 41.1 + i * 0.01, -72.9) for i in range(3)])
    backend.create_many([art(f"four{i}", 45.1 + i * 0.01, -72.9) for i in range(4)])
    resp = backend.get_viewport_data(WORLD, zoom=10, limit=100)
    assert [a.name for a in resp.singles] == ["three0", "three1", "three2"]
    assert len(resp.clusters) == 1
    assert resp.clusters[0].count == 4
    assert resp.clusters[0].id == "cluster--146:90"
    assert resp.total == 7


def test_viewport_truncation_prefers_clusters(backend):
    for k in range(3):
        backend.create_many([art(f"c{k}-{i}", 10.0 * k + 0.1, 0.1) for i in range(4)])
    backend.create_many([art("s1", 50.1, 50.1), art("s2", 60.1, 60.1)])
    resp = backend.get_viewport_data(WORLD, zoom=5, limit=2)
    assert len(resp.clusters) == 2
    assert resp.singles == []
    assert resp.truncated is True
    assert resp.total == 14


def test_viewport_high_zoom_truncates_singles(backend):
    created = backend.create_many([art(f"a{i}", 41.5 + i * 0.0001, -72.7) for i in range(10)])
    resp = backend.get_viewport_data(
        Bounds(north=41.51, south=41.49, east=-72.69, west=-72.71), zoom=15, limit=5
    )
    assert resp.clusters == []
    assert [a.id for a in resp.singles] == [a.id for a in created[:5]]
    assert resp.total == 10
    assert resp.truncated is True

    empty = backend.get_viewport_data(WORLD, zoom=15, limit=0)
    assert (len(empty.singles), empty.total, empty.truncated) == (0, 10, True)


def test_viewport_layer_filter(backend):
    backend.create_many([art(f"x{i}", 1.0, 1.0, layer="x") for i in range(5)])
    backend.create_many([art(f"y{i}", 1.0, 1.0, layer="y") for i in range(2)])
    resp = backend.get_viewport_data(WORLD, zoom=3, limit=100, layer_ids=["y"])
    assert resp.clusters == []
    assert [a.name for a in resp.singles] == ["y0", "y1"]
    assert resp.total == 2


def test_delete_layer_removes_artifacts_from_every_query(backend):
    backend.create_many([art(f"x{i}", i * 0.1, i * 0.1, layer="x") for i in range(6)])
    ys = backend.create_many([art(f"y{i}", -i * 0.1, -i * 0.1, layer="y") for i in range(4)])

    backend.delete_layer("x")

    assert [a.id for a in backend.get_all()] == [a.id for a in ys]
    assert {a.layer for a in backend.get_in_bounds(WORLD)} == {"y"}
    assert backend.count() == 4
    assert backend.get_layer("x") is None
    assert backend.get_layer("y").artifact_count == 4
    circle = backend.get_in_circle(CircleSelection(Point(0.2, 0.2), 100_000))
    assert {a.layer for a in circle} == {"y"}


def test_layer_registry(backend):
    backend.create_many([art("a", 1, 1, layer="x"), art("b", 1, 1, layer="x")])
    implicit = backend.get_layer("x")
    assert (implicit.name, implicit.artifact_count, implicit.visible) == ("x", 2, True)

    out = backend.create_layer(
        NewLayer(id="x", name="Layer X", source="test", style={"color": "#f00"})
    )
    assert out.artifact_count == 2
    assert out.style == {"color": "#f00"}

    backend.create_layer(NewLayer(id="empty", name="Empty"))
    assert [layer.id for layer in backend.list_layers()] == ["empty", "x"]

    backend.set_layer_visible("x", False)
    assert backend.get_layer("x").visible is False
    backend.set_layer_visible("missing", True)
    assert backend.get_layer("missing") is None


def test_layer_filtered_counts(backend):
    backend.create_many(
        [art("a", 1, 1, layer="x"), art("b", 1, 1, layer="y"), art("c", 1, 1, layer="z")]
    )
    assert backend.count() == 3
    assert backend.count(["x", "y"]) == 2
    assert [a.name for a in backend.get_all(["z"])] == ["c"]
    assert [a.name for a in backend.get_all([])] == ["a", "b", "c"]


def _random_inserts(n: int, seed: int = 7):
    rng = random.Random(seed)
    layers = ["x", "y", "z"]
    cats = ["pole", "meter", "switch"]
    return [
        art(
            f"r{i}",
            41.0 + rng.random() * 1.5,
            -73.5 + rng.random() * 2.0,
            category=rng.choice(cats),
            layer=rng.choice(layers),
        )
        for i in range(n)
    ]


@pytest.mark.parametrize("zoom,limit", [(4, 1000), (7, 10), (9.5, 1000), (11, 50), (14, 100)])
def test_backends_agree_on_viewport(zoom, limit):
    mem = InMemoryBackend()
    db = DuckDBBackend(path=":memory:", threads=2)
    try:
        inserts = _random_inserts(600)
        mem.create_many(inserts)
        db.create_many(inserts)

        bounds = Bounds(north=42.2, south=41.2, east=-71.8, west=-73.2)
        for layer_ids in (None, ["x", "z"]):
            a = mem.get_viewport_data(bounds, zoom, limit, layer_ids)
            b = db.get_viewport_data(bounds, zoom, limit, layer_ids)
            assert (a.total, a.truncated) == (b.total, b.truncated)
            assert [c.id for c in a.clusters] == [c.id for c in b.clusters]
            assert [c.count for c in a.clusters] == [c.count for c in b.clusters]
            for ca, cb in zip(a.clusters, b.clusters):
                assert ca.lat == pytest.approx(cb.lat)
                assert ca.lng == pytest.approx(cb.lng)
            assert [s.name for s in a.singles] == [s.name for s in b.singles]
    finally:
        db.close()


def test_backends_agree_on_circle_and_bounds():
    mem = InMemoryBackend()
    db = DuckDBBackend(path=":memory:", threads=2)
    try:
        inserts = _random_inserts(400, seed=11)
        mem.create_many(inserts)
        db.create_many(inserts)

        circle = CircleSelection(Point(41.7, -72.6), 25_000)
        assert [a.name for a in mem.get_in_circle(circle)] == [
            a.name for a in db.get_in_circle(circle)
        ]
        agg_m, agg_d = mem.aggregate(circle, ["y"]), db.aggregate(circle, ["y"])
        assert (agg_m.count, agg_m.categories) == (agg_d.count, agg_d.categories)

        bounds = Bounds(north=41.9, south=41.3, east=-72.0, west=-73.0)
        assert [a.name for a in mem.get_in_bounds(bounds)] == [
            a.name for a in db.get_in_bounds(bounds)
        ]
        assert [layer.to_dict() for layer in mem.list_layers()] == [
            layer.to_dict() for layer in db.list_layers()
        ]
    finally:
        db.close()
