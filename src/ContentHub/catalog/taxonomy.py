"""Subject-area lookup with an explicit, clock-injected TTL cache.

Taxonomy editing belongs to another component; ingest and metadata edits only
need to resolve an integer id to a :class:`SubjectArea`.  Lookups go through
:class:`CachedSubjectAreaLookup`, whose cache is an instance (not module
state), takes its clock as a constructor argument, and can be invalidated.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Hashable, Optional, Protocol, TypeVar

from ContentHub.catalog.models import SubjectArea
from ContentHub.catalog.store import CatalogStore

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

_MISSING = object()


@dataclass
class _CacheEntry(Generic[V]):
    stored_at: float
    value: V


class TTLCache(Generic[K, V]):
    """Thread-safe mapping whose entries expire ``ttl_seconds`` after insertion.

    Args:
        ttl_seconds: Entry lifetime; ``0`` disables caching entirely.
        clock: Function returning monotonic seconds (default ``time.monotonic``).
    """

    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[K, _CacheEntry[V]] = {}
        self._lock = threading.RLock()

    def get(self, key: K, default: object = _MISSING) -> object:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            if self._clock() - entry.stored_at >= self.ttl_seconds:
                del self._entries[key]
                return default
            return entry.value

    def set(self, key: K, value: V) -> None:
        if self.ttl_seconds <= 0:
            return
        with self._lock:
            self._entries[key] = _CacheEntry(stored_at=self._clock(), value=value)

    def invalidate(self, key: Optional[K] = None) -> None:
        """Drop one key, or everything when ``key`` is None."""
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)

    def __contains__(self, key: object) -> bool:
        return self.get(key) is not _MISSING  # type: ignore[arg-type]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class SubjectAreaLookup(Protocol):
    """Resolve a subject area by id."""

    def get(self, subject_area_id: int) -> Optional[SubjectArea]: ...


class StoreSubjectAreaLookup:
    """Read subject areas straight from the catalog database."""

    def __init__(self, catalog: CatalogStore) -> None:
        self.catalog = catalog

    def get(self, subject_area_id: int) -> Optional[SubjectArea]:
        return self.catalog.get_subject_area(subject_area_id)


class CachedSubjectAreaLookup:
    """Wrap a lookup with a :class:`TTLCache`; misses are cached too."""

    def __init__(
        self,
        source: SubjectAreaLookup,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.source = source
        self.cache: TTLCache[int, Optional[SubjectArea]] = TTLCache(ttl_seconds, clock=clock)

    def get(self, subject_area_id: int) -> Optional[SubjectArea]:
        cached = self.cache.get(subject_area_id)
        if cached is not _MISSING:
            return cached  # type: ignore[return-value]
        value = self.source.get(subject_area_id)
        self.cache.set(subject_area_id, value)
        return value

    def invalidate(self, subject_area_id: Optional[int] = None) -> None:
        self.cache.invalidate(subject_area_id)


__all__ = [
    "CachedSubjectAreaLookup",
    "StoreSubjectAreaLookup",
    "SubjectAreaLookup",
    "TTLCache",
]
