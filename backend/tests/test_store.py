from __future__ import annotations

import pytest

from engine.store import ArtifactStore
from engine.types import Bounds
from helpers import art
from layers.types import DEFAULT_LAYER, InsertArtifact, NewLayer

WORLD = Bounds(north=90, south=-90, east=180, west=-180)


def test_create_assigns_id_defaults_and_round_trips():
    store = ArtifactStore()
    a = store.create(art("Pole 1", 41.5, -72.7))
    assert a.id
    assert a.layer == DEFAULT_LAYER
    assert a.created_at
    assert store.get(a.id) == a
    assert store.get("missing") is None
    assert store.get_in_bounds(Bounds(north=41.5, south=41.5, east=-72.7, west=-72.7)) == [a]


def test_created_at_is_kept_when_given():
    store = ArtifactStore()
    ts = "2024-01-01T00:00:00+00:00"
    a = store.create(InsertArtifact(name="x", category="c", lat=1, lng=1, created_at=ts))
    assert a.created_at == ts


def test_first_artifact_creates_layer_implicitly_and_counts():
    store = ArtifactStore()
    store.create(art("a", 1, 1, layer="poles"))
    store.create(art("b", 2, 2, layer="poles"))
    layer = store.get_layer("poles")
    assert layer is not None
    assert layer.name == "poles"
    assert layer.visible is True
    assert layer.artifact_count == 2


def test_create_layer_upsert_preserves_count():
    store = ArtifactStore()
    store.create_many([art("a", 1, 1, layer="x"), art("b", 2, 2, layer="x")])
    out = store.create_layer(NewLayer(id="x", name="Layer X", description="d"))
    assert out.artifact_count == 2
    assert out.name == "Layer X"
    assert store.get_layer("x").description == "d"


def test_set_layer_visible_and_unknown_is_noop():
    store = ArtifactStore()
    store.create_layer(NewLayer(id="x", name="X"))
    store.set_layer_visible("x", False)
    assert store.get_layer("x").visible is False
    store.set_layer_visible("nope", False)
    assert store.get_layer("nope") is None


def test_list_layers_sorted_by_name_then_id():
    store = ArtifactStore()
    store.create_layer(NewLayer(id="b", name="Same"))
    store.create_layer(NewLayer(id="a", name="Same"))
    store.create_layer(NewLayer(id="c", name="Alpha"))
    assert [layer.id for layer in store.list_layers()] == ["c", "a", "b"]


def test_create_many_is_all_or_nothing():
    store = ArtifactStore()
    store.create(art("keep", 1, 1))
    bad = InsertArtifact(name="bad", category="c", lat="abc", lng=0.0)  # type: ignore[arg-type]
    with pytest.raises(ValueError):
        store.create_many([art("ok", 2, 2), bad])
    assert store.count() == 1
    assert [a.name for a in store.get_all()] == ["keep"]
    assert store.get_layer(DEFAULT_LAYER).artifact_count == 1


def test_layer_filter_and_count():
    store = ArtifactStore()
    store.create_many(
        [art("a", 1, 1, layer="x"), art("b", 1, 1, layer="y"), art("c", 1, 1, layer="z")]
    )
    assert store.count() == 3
    assert store.count(["x", "z"]) == 2
    assert [a.name for a in store.get_all(["y"])] == ["b"]
    # Empty filter means all layers.
    assert len(store.get_in_bounds(WORLD, [])) == 3


def test_delete_layer_cascades_and_rebuilds_index():
    store = ArtifactStore(pending_max=1)
    store.create_many([art(f"x{i}", i, i, layer="x") for i in range(5)])
    store.create_many([art(f"y{i}", -i, -i, layer="y") for i in range(3)])

    store.delete_layer("x")

    assert {a.layer for a in store.get_all()} == {"y"}
    assert {a.layer for a in store.get_in_bounds(WORLD)} == {"y"}
    assert store.count() == 3
    assert store.get_layer("x") is None
    assert store.get_layer("y").artifact_count == 3


def test_bulk_load_appends_after_existing_and_recounts():
    store = ArtifactStore()
    first = store.create(art("first", 0, 0, layer="x"))
    loaded = store.bulk_load([art("b1", 1, 1, layer="x"), art("b2", 2, 2, layer="y")])
    assert [a.id for a in store.get_all()] == [first.id, *(a.id for a in loaded)]
    assert store.get_layer("x").artifact_count == 2
    assert store.get_layer("y").artifact_count == 1


def test_reset_clears_everything():
    store = ArtifactStore()
    store.create(art("a", 1, 1, layer="x"))
    store.reset()
    assert store.count() == 0
    assert store.get_all() == []
    assert store.list_layers() == []
    assert store.get_in_bounds(WORLD) == []


def test_large_batch_builds_the_index_once(monkeypatch):
    import geo.index as index_mod

    builds: list[int] = []
    real = index_mod._build_snapshot

    def counting(entries):
        builds.append(len(entries))
        return real(entries)

    store = ArtifactStore(pending_max=256)
    monkeypatch.setattr(index_mod, "_build_snapshot", counting)
    created = store.create_many([art(f"x{i}", 41 + i * 1e-5, -72) for i in range(20_000)])

    assert builds == [20_000]
    assert store.count() == 20_000
    assert store.get_layer(DEFAULT_LAYER).artifact_count == 20_000
    hits = store.get_in_bounds(Bounds(north=41.0, south=41.0, east=-72, west=-72))
    assert hits == [created[0]]


def test_stored_metadata_is_detached_from_the_input():
    store = ArtifactStore()
    meta = {"status": "active", "tags": ["a"]}
    a = store.create(art("a", 1, 1, metadata=meta))
    meta["status"] = "retired"
    meta["tags"].append("b")
    assert store.get(a.id).metadata == {"status": "active", "tags": ["a"]}
