"""In-memory entry cache, single-flight loading, and the freshness flag.

:class:`EntryCache` holds the decoded documents a
:class:`~discocache.cache.cached_discovery.CachedDiscoveryClient` has
already served, keyed by :class:`~discocache.cache.disk.CacheKey`.  One lock
guards the entry map, the in-flight map, and the freshness flag, so a
population and the freshness change it causes are observed together.

The lock is never held across I/O.  :meth:`EntryCache.load` registers a
:class:`concurrent.futures.Future` per key before running the loader, and
concurrent callers for the same key wait on that future instead of starting
a second fetch.
"""

from __future__ import annotations

import enum
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Callable, Optional

from discocache.cache.disk import CacheKey


class Origin(str, enum.Enum):
    """Where a loaded document came from."""

    LIVE = "live"
    OWN_DISK = "own_disk"
    FOREIGN_DISK = "foreign_disk"


@dataclass(frozen=True)
class CacheEntry:
    """A decoded discovery document and the time it was written.

    Attributes:
        document: The decoded document.
        stored_at: Modification time of the backing file, or the fetch time
            for documents that were never written to disk.
        origin: How the document entered the cache.
    """

    document: Any
    stored_at: float
    origin: Origin = Origin.LIVE

    def expired(self, ttl: float, now: Optional[float] = None) -> bool:
        """Return ``True`` once ``stored_at + ttl`` lies in the past."""
        if now is None:
            now = time.time()
        return self.stored_at + ttl < now


@dataclass(frozen=True)
class LoadResult:
    """What a loader hands back to :meth:`EntryCache.load`.

    Attributes:
        entry: The loaded entry.
        cacheable: ``False`` to return the document without keeping it in
            memory (e.g. an empty group list).
    """

    entry: CacheEntry
    cacheable: bool = True


class EntryCache:
    """Per-instance map of decoded documents with a freshness flag.

    Freshness starts ``True`` and is cleared the first time a document read
    from a disk file written by someone else is loaded.  Only
    :meth:`invalidate` sets it back.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[CacheKey, CacheEntry] = {}
        self._inflight: dict[CacheKey, Future] = {}
        self._fresh = True
        self._generation = 0

    @property
    def fresh(self) -> bool:
        """Whether every document loaded since the last reset was fetched by this process."""
        with self._lock:
            return self._fresh

    def get(self, key: CacheKey) -> Optional[CacheEntry]:
        """Return the entry for *key* if one is loaded. Never performs I/O."""
        with self._lock:
            return self._entries.get(key)

    def put(self, key: CacheKey, entry: CacheEntry) -> None:
        """Store *entry* and apply its effect on freshness."""
        with self._lock:
            self._publish(key, entry)

    def invalidate(self) -> None:
        """Drop every entry and reset freshness to ``True``.

        Loads already in flight still complete for their callers, but their
        results are not kept.
        """
        with self._lock:
            self._entries.clear()
            self._inflight.clear()
            self._fresh = True
            self._generation += 1

    def load(
        self,
        key: CacheKey,
        loader: Callable[[], LoadResult],
        ttl: Optional[float] = None,
    ) -> Any:
        """Return the document for *key*, calling *loader* at most once concurrently.

        An entry older than *ttl* is treated as absent.  When another thread
        is already loading *key*, this call waits for that result (or
        exception) instead of invoking *loader* again.

        Args:
            key: The cache key.
            loader: Called without the lock held when no usable entry is
                loaded.  Exceptions propagate to every waiting caller.
            ttl: Maximum entry age in seconds, or ``None`` for no limit.

        Returns:
            The cached or freshly loaded document.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and (ttl is None or not entry.expired(ttl)):
                return entry.document
            future = self._inflight.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._inflight[key] = future
                generation = self._generation

        if not owner:
            return future.result()

        try:
            result = loader()
        except BaseException as exc:
            with self._lock:
                if self._inflight.get(key) is future:
                    del self._inflight[key]
            future.set_exception(exc)
            raise

        with self._lock:
            if self._inflight.get(key) is future:
                del self._inflight[key]
            if result.cacheable and generation == self._generation:
                self._publish(key, result.entry)
        future.set_result(result.entry.document)
        return result.entry.document

    def _publish(self, key: CacheKey, entry: CacheEntry) -> None:
        # Caller holds self._lock.
        self._entries[key] = entry
        if entry.origin is Origin.FOREIGN_DISK:
            self._fresh = False
