from cache import TTLCache


class Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_cached_until_ttl():
    clock = Clock()
    cache = TTLCache(300, clock=clock)
    calls = []

    def load():
        calls.append(1)
        return len(calls)

    assert cache.get_or_load("catalog", load) == 1
    clock.now = 299
    assert cache.get_or_load("catalog", load) == 1
    assert "catalog" in cache
    clock.now = 300
    assert "catalog" not in cache
    assert cache.get_or_load("catalog", load) == 2


def test_invalidate():
    cache = TTLCache(300, clock=Clock())
    cache.get_or_load("catalog", lambda: 1)
    cache.get_or_load("stores", lambda: 2)
    cache.invalidate("catalog")
    assert "catalog" not in cache
    assert "stores" in cache
    cache.invalidate()
    assert "stores" not in cache
