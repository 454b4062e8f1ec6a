# pyright: reportMissingImports=false

from __future__ import annotations

from eduai.db.cache import QueryCache


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_get_returns_value_within_ttl() -> None:
    clock = _Clock()
    cache = QueryCache(clock=clock)
    cache.set("users:list:a", {"total": 3}, ttl_seconds=60)

    clock.now += 60
    assert cache.get("users:list:a") == {"total": 3}


def test_expired_entry_is_deleted_on_read() -> None:
    clock = _Clock()
    cache = QueryCache(clock=clock)
    cache.set("k", "v", ttl_seconds=10)

    clock.now += 10.5
    assert cache.get("k") is None
    assert cache.get_stats() == {"size": 0, "keys": []}


def test_default_ttl_is_five_minutes() -> None:
    clock = _Clock()
    cache = QueryCache(clock=clock)
    cache.set("k", 1)

    clock.now += 299
    assert cache.get("k") == 1
    clock.now += 2
    assert cache.get("k") is None


def test_missing_key() -> None:
    assert QueryCache().get("nope") is None


def test_invalidate_removes_keys_containing_pattern() -> None:
    cache = QueryCache()
    cache.set("users:list:1", 1)
    cache.set("users:list:2", 2)
    cache.set("schools:list:1", 3)

    assert cache.invalidate("users:") == 2
    assert cache.get_stats()["keys"] == ["schools:list:1"]
    assert cache.invalidate("users:") == 0


def test_clear_and_stats() -> None:
    cache = QueryCache()
    cache.set("a", 1)
    cache.set("b", 2)
    stats = cache.get_stats()
    assert stats["size"] == 2
    assert sorted(stats["keys"]) == ["a", "b"]  # type: ignore[arg-type]

    cache.clear()
    assert cache.get_stats() == {"size": 0, "keys": []}
