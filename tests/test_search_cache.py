from app.models.chat import SearchResult
from app.tools.search_cache import SearchCache


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


RESULTS = [SearchResult(title="A", url="https://a.test", content="a", engine="e")]


def test_load_returns_saved_results_within_ttl():
    clock = FakeClock()
    cache = SearchCache(ttl_seconds=300, clock=clock)

    cache.save("paris weather", 5, RESULTS)
    clock.now += 299

    assert cache.load("paris weather", 5) == RESULTS


def test_entries_expire_and_are_dropped():
    clock = FakeClock()
    cache = SearchCache(ttl_seconds=300, clock=clock)

    cache.save("paris weather", 5, RESULTS)
    clock.now += 300

    assert cache.load("paris weather", 5) is None
    assert len(cache) == 0


def test_key_collapses_whitespace_and_includes_limit():
    cache = SearchCache(ttl_seconds=300, clock=FakeClock())

    cache.save("paris   weather ", 5, RESULTS)

    assert cache.load(" paris weather", 5) == RESULTS
    assert cache.load("paris weather", 3) is None


def test_empty_results_are_not_cached():
    cache = SearchCache(ttl_seconds=300, clock=FakeClock())

    cache.save("nothing", 5, [])

    assert len(cache) == 0
    assert cache.load("nothing", 5) is None


def test_zero_ttl_disables_cache():
    cache = SearchCache(ttl_seconds=0, clock=FakeClock())

    cache.save("q", 5, RESULTS)

    assert cache.load("q", 5) is None


def test_loaded_list_is_a_copy():
    cache = SearchCache(ttl_seconds=300, clock=FakeClock())
    cache.save("q", 5, RESULTS)

    loaded = cache.load("q", 5)
    loaded.clear()

    assert cache.load("q", 5) == RESULTS


def test_clear():
    cache = SearchCache(ttl_seconds=300, clock=FakeClock())
    cache.save("a", 5, RESULTS)
    cache.save("b", 5, RESULTS)

    cache.clear()

    assert len(cache) == 0


def test_save_sweeps_expired_entries():
    clock = FakeClock()
    cache = SearchCache(ttl_seconds=300, clock=clock)
    cache.save("old one", 5, RESULTS)
    cache.save("old two", 5, RESULTS)
    clock.now += 200
    cache.save("recent", 5, RESULTS)
    clock.now += 150

    cache.save("new", 5, RESULTS)

    assert len(cache) == 2
    assert cache.load("recent", 5) == RESULTS
    assert cache.load("old one", 5) is None
