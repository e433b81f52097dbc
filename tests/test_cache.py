import os
import sys

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from report_api.cache import DataCache, make_cache_key


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_get_set_and_miss():
    cache = DataCache()
    assert cache.get("missing") is None
    cache.set("k", [1, 2])
    assert cache.get("k") == [1, 2]
    assert "k" in cache
    assert len(cache) == 1


def test_empty_list_is_a_hit():
    cache = DataCache()
    cache.set("k", [])
    assert cache.get("k") == []
    assert "k" in cache


def test_ttl_expires_on_read():
    clock = FakeClock()
    cache = DataCache(ttl_seconds=300, clock=clock)
    cache.set("k", "v")
    clock.now += 300
    assert cache.get("k") == "v"
    clock.now += 1
    assert cache.get("k") is None
    assert len(cache) == 0


def test_without_ttl_entries_never_expire():
    clock = FakeClock()
    cache = DataCache(clock=clock)
    cache.set("k", "v")
    clock.now += 10 ** 9
    assert cache.get("k") == "v"


def test_invalidate_prefix_and_clear():
    cache = DataCache()
    cache.set("packing_a", 1)
    cache.set("packing_b", 2)
    cache.set("pareto_a", 3)
    assert cache.invalidate_prefix("packing_") == 2
    assert cache.keys() == ["pareto_a"]
    cache.clear()
    assert len(cache) == 0


def test_make_cache_key():
    assert make_cache_key("tpy_daily", {"startDate": "2025-01-01", "endDate": "2025-01-07"}) == \
        "tpy_daily_startDate=2025-01-01&endDate=2025-01-07"
    assert make_cache_key("x", [("a", "1"), ("a", "2")]) == "x_a=1&a=2"
    assert make_cache_key("x", None) == "x_"
