import threading
import time
from concurrent.futures import CancelledError, ThreadPoolExecutor

import pytest

from agr_gene_mapper.candidate_cache import CacheRegistry, CandidateCacheKey, LoadingCache
from agr_gene_mapper.exceptions import CacheRegistrationError
from agr_gene_mapper.term_normalizer import GeneName


class FakeClock:
    """Manually advanced clock in seconds."""

    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


class TestLoadingCache:
    """Bounded, expiring cache computing each missing key once."""

    def test_values_are_loaded_once(self):
        loads = []
        cache = LoadingCache(lambda key: loads.append(key) or key.upper(), 10, 60)
        assert cache.get("tnf") == "TNF"
        assert cache.get("tnf") == "TNF"
        assert loads == ["tnf"]
        stats = cache.stats()
        assert (stats.hits, stats.misses, stats.load_count) == (1, 1, 1)

    def test_concurrent_requests_share_one_load(self):
        loads = []
        started = threading.Event()
        release = threading.Event()

        def slow_loader(key):
            loads.append(key)
            started.set()
            release.wait(5)
            return [key]

        cache = LoadingCache(slow_loader, 10, 60)
        with ThreadPoolExecutor(max_workers=4) as executor:
            futures = [executor.submit(cache.get, "tnf") for _ in range(4)]
            assert started.wait(5), "The loader was never called"
            release.set()
            results = [f.result(timeout=5) for f in futures]
        assert loads == ["tnf"], "Concurrent requests for one key must wait for a single load"
        assert all(r == ["tnf"] for r in results)

    def test_failed_loads_are_not_cached(self):
        attempts = []

        def flaky_loader(key):
            attempts.append(key)
            if len(attempts) == 1:
                raise OSError("index not readable")
            return key

        cache = LoadingCache(flaky_loader, 10, 60)
        with pytest.raises(OSError):
            cache.get("tnf")
        assert cache.get("tnf") == "tnf"
        assert len(attempts) == 2
        assert cache.stats().load_failure_count == 1

    def test_interrupted_load_releases_waiting_requests(self):
        release = threading.Event()

        class LoadInterrupted(BaseException):
            pass

        def interrupted_loader(key):
            release.wait(5)
            raise LoadInterrupted()

        cache = LoadingCache(interrupted_loader, 10, 60)
        with ThreadPoolExecutor(max_workers=2) as executor:
            futures = [executor.submit(cache.get, "tnf") for _ in range(2)]
            deadline = time.monotonic() + 5
            while cache.stats().misses < 2 and time.monotonic() < deadline:
                time.sleep(0.01)
            release.set()
            errors = {type(f.exception(timeout=5)) for f in futures}
        assert errors == {LoadInterrupted, CancelledError}, "The waiting request must not block forever"
        assert len(cache) == 0

    def test_entries_expire_after_write(self, clock):
        loads = []
        cache = LoadingCache(lambda key: loads.append(key) or key, 10, 60, clock=clock)
        cache.get("tnf")
        clock.now = 59.0
        cache.get("tnf")
        assert len(loads) == 1
        clock.now = 61.0
        assert cache.get_if_present("tnf") is None
        cache.get("tnf")
        assert len(loads) == 2

    def test_least_recently_used_entry_is_evicted(self):
        cache = LoadingCache(lambda key: key, 2, 60)
        cache.get("a")
        cache.get("b")
        cache.get("a")
        cache.get("c")
        assert cache.get_if_present("b") is None
        assert cache.get_if_present("a") == "a"
        assert len(cache) == 2
        assert cache.stats().eviction_count == 1

    def test_invalidate_all(self):
        cache = LoadingCache(lambda key: key, 2, 60)
        cache.get("a")
        cache.invalidate_all()
        assert len(cache) == 0


class TestCacheRegistry:
    """One cache per index location."""

    def test_get_or_create_returns_the_same_cache(self):
        registry = CacheRegistry()
        first = registry.get_or_create("memory://synonyms", lambda: LoadingCache(str, 10, 60))
        second = registry.get_or_create("memory://synonyms", lambda: LoadingCache(str, 10, 60))
        assert first is second
        assert len(registry) == 1
        assert "memory://synonyms" in registry

    def test_different_locations_get_different_caches(self):
        registry = CacheRegistry()
        first = registry.get_or_create("memory://synonyms", lambda: LoadingCache(str, 10, 60))
        second = registry.get_or_create("memory://other", lambda: LoadingCache(str, 10, 60))
        assert first is not second

    def test_local_paths_are_canonical(self, tmp_path):
        registry = CacheRegistry()
        cache = registry.get_or_create(str(tmp_path / "index.joblib"), lambda: LoadingCache(str, 10, 60))
        assert registry.get(str(tmp_path / "sub" / ".." / "index.joblib")) is cache

    def test_double_registration_fails(self):
        registry = CacheRegistry()
        registry.register("memory://synonyms", LoadingCache(str, 10, 60))
        with pytest.raises(CacheRegistrationError):
            registry.register("memory://synonyms", LoadingCache(str, 10, 60))


def test_candidate_cache_key_identity(normalizer):
    key = CandidateCacheKey.of(GeneName("IL-2", normalizer), "9606")
    same = CandidateCacheKey.of(GeneName("IL-2", normalizer), "9606")
    other_taxon = CandidateCacheKey.of(GeneName("IL-2", normalizer), "10090")
    assert key == same and hash(key) == hash(same)
    assert key != other_taxon
    assert key.normalized_text == "il 2"
    assert key.original_text == "il-2"
    assert CandidateCacheKey.of(GeneName("IL-2", normalizer), "").tax_id is None
