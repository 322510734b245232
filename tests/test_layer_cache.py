from __future__ import annotations

from layer_inspector.layer_cache import LayerCache
from tests.helpers.fake_gateway import fs_entry


def _entries(n_bytes: int):
    return [fs_entry("d", is_dir=True, size="999MB"), fs_entry("d/f", size=f"{n_bytes}B")]


def test_get_returns_what_was_put() -> None:
    cache = LayerCache(max_bytes=1000)
    cache.put("L0", _entries(10))

    got = cache.get("L0")

    assert got is not None and len(got) == 2
    # Directory sizes are not counted.
    assert cache.total_bytes == 10


def test_least_recently_used_layer_is_evicted_first() -> None:
    cache = LayerCache(max_bytes=250)
    cache.put("L0", _entries(100))
    cache.put("L1", _entries(100))
    cache.get("L0")
    cache.put("L2", _entries(100))

    assert cache.layer_ids() == ["L0", "L2"]
    assert cache.get("L1") is None
    assert cache.evictions == 1
    assert cache.total_bytes == 200


def test_oversized_layer_is_still_kept() -> None:
    cache = LayerCache(max_bytes=50)
    cache.put("L0", _entries(10))
    cache.put("L1", _entries(500))

    assert cache.layer_ids() == ["L1"]


def test_replacing_a_layer_updates_total() -> None:
    cache = LayerCache(max_bytes=1000)
    cache.put("L0", _entries(100))
    cache.put("L0", _entries(30))

    assert cache.total_bytes == 30
    cache.discard("L0")
    assert cache.total_bytes == 0


def test_disabled_cache_holds_nothing() -> None:
    cache = LayerCache()
    cache.put("L0", _entries(10))

    cache.configure(enabled=False)
    assert cache.layer_ids() == []

    cache.put("L1", _entries(10))
    assert cache.get("L1") is None


def test_shrinking_the_budget_evicts() -> None:
    cache = LayerCache(max_bytes=1000)
    cache.put("L0", _entries(100))
    cache.put("L1", _entries(100))

    cache.configure(max_bytes=150)

    assert cache.layer_ids() == ["L1"]
