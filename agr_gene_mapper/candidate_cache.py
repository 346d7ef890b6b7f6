"""
candidate_cache.py

Caches for index lookups shared by all mapper instances working on the same index:
- LoadingCache: size bounded LRU cache with expire-after-write that computes missing
  values with a loader function. Concurrent requests for the same missing key wait for
  one single load. Failed loads are not cached; the error is raised to every waiting caller.
- CacheRegistry: one cache per index location. Creating the cache for a location is
  guarded by a lock, registering a second cache for the same location is an error.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from concurrent.futures import Future
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Callable, Dict, Generic, Hashable, Optional, Tuple, TypeVar

from agr_gene_mapper.exceptions import CacheRegistrationError
from agr_gene_mapper.term_normalizer import GeneName
from utils.resource_utils import is_remote_location

logger = logging.getLogger(__name__)

CANDIDATE_CACHE_SIZE = 1_000_000
CANDIDATE_CACHE_EXPIRY = 60 * 60
CONTEXT_CACHE_SIZE = 10_000
CONTEXT_CACHE_EXPIRY = 10 * 60

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    load_success_count: int = 0
    load_failure_count: int = 0
    eviction_count: int = 0

    @property
    def load_count(self) -> int:
        return self.load_success_count + self.load_failure_count


class LoadingCache(Generic[K, V]):

    def __init__(self, loader: Callable[[K], V], maximum_size: int, expire_after_write: float,
                 clock: Callable[[], float] = time.monotonic):
        self._loader = loader
        self.maximum_size = maximum_size
        # seconds
        self.expire_after_write = expire_after_write
        self._clock = clock
        self._entries: "OrderedDict[K, Tuple[V, float]]" = OrderedDict()
        self._in_flight: Dict[K, Future] = {}
        self._lock = threading.Lock()
        self._stats = CacheStats()

    def get(self, key: K) -> V:
        with self._lock:
            value = self._get_present(key)
            if value is not None:
                self._stats.hits += 1
                return value[0]
            self._stats.misses += 1
            future = self._in_flight.get(key)
            is_loader = future is None
            if is_loader:
                future = Future()
                self._in_flight[key] = future
        if not is_loader:
            return future.result()

        try:
            loaded = self._loader(key)
        except Exception as e:
            with self._lock:
                self._in_flight.pop(key, None)
                self._stats.load_failure_count += 1
            future.set_exception(e)
            raise
        except BaseException:
            with self._lock:
                self._in_flight.pop(key, None)
            future.cancel()
            raise
        with self._lock:
            self._entries[key] = (loaded, self._clock())
            self._entries.move_to_end(key)
            while len(self._entries) > self.maximum_size:
                self._entries.popitem(last=False)
                self._stats.eviction_count += 1
            self._in_flight.pop(key, None)
            self._stats.load_success_count += 1
        future.set_result(loaded)
        return loaded

    def get_if_present(self, key: K) -> Optional[V]:
        with self._lock:
            value = self._get_present(key)
            return value[0] if value is not None else None

    def _get_present(self, key: K) -> Optional[Tuple[V]]:
        # caller holds the lock
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, written = entry
        if self._clock() - written >= self.expire_after_write:
            del self._entries[key]
            self._stats.eviction_count += 1
            return None
        self._entries.move_to_end(key)
        return (value,)

    def invalidate_all(self):
        with self._lock:
            self._entries.clear()

    def stats(self) -> CacheStats:
        with self._lock:
            return replace(self._stats)

    def __len__(self):
        with self._lock:
            return len(self._entries)


MEMORY_LOCATION_PREFIX = "memory://"


def canonical_location(location: str) -> str:
    if is_remote_location(location) or str(location).startswith(MEMORY_LOCATION_PREFIX):
        return str(location)
    return str(Path(location).resolve())


class CacheRegistry:
    """Index location -> cache. Pass one registry to every mapper that should share caches."""

    def __init__(self):
        self._caches: Dict[str, LoadingCache] = {}
        self._lock = threading.Lock()

    def get_or_create(self, location: str, factory: Callable[[], LoadingCache]) -> LoadingCache:
        key = canonical_location(location)
        with self._lock:
            cache = self._caches.get(key)
            if cache is None:
                logger.info("Creating new cache for index %s", key)
                cache = factory()
                self._register(key, cache)
            else:
                logger.info("Using existing cache for index %s", key)
            return cache

    def register(self, location: str, cache: LoadingCache):
        with self._lock:
            self._register(canonical_location(location), cache)

    def _register(self, key: str, cache: LoadingCache):
        if key in self._caches:
            raise CacheRegistrationError(f"There already is a cache for index {key}")
        self._caches[key] = cache

    def get(self, location: str) -> Optional[LoadingCache]:
        with self._lock:
            return self._caches.get(canonical_location(location))

    def __contains__(self, location: str) -> bool:
        return self.get(location) is not None

    def __len__(self):
        with self._lock:
            return len(self._caches)


DEFAULT_REGISTRY = CacheRegistry()


@dataclass(frozen=True)
class CandidateCacheKey:
    """
    Key of the candidate cache: the normalized and the lower cased original name plus the
    optional taxonomy id restriction. The GeneName is carried along for the loader.
    """
    normalized_text: str
    original_text: str
    tax_id: Optional[str] = None
    gene_name: Optional[GeneName] = field(default=None, compare=False, hash=False, repr=False)

    @classmethod
    def of(cls, gene_name: GeneName, tax_id: Optional[str] = None) -> "CandidateCacheKey":
        return cls(gene_name.normalized_text, gene_name.text.lower(), tax_id or None, gene_name)


@dataclass(frozen=True)
class ContextItemsCacheKey:
    gene_id: str
    index_field: str
