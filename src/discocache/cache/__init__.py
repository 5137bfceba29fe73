"""Disk-backed caching of discovery documents.

This package provides :class:`CachedDiscoveryClient`, a decorator around
any discovery client that keeps discovery documents in memory and in a
per-server directory on disk, reusing them until a TTL expires or
:meth:`~CachedDiscoveryClient.invalidate` is called.

Building blocks:
    :class:`~discocache.cache.disk.DiskStore` -- one JSON file per document,
    atomic writes, ``0o750``/``0o660`` permissions.
    :class:`~discocache.cache.entries.EntryCache` -- in-memory map with
    single-flight loading and the freshness flag.
"""

from discocache.cache.cached_discovery import CachedDiscoveryClient
from discocache.cache.disk import CacheKey, DiskStore
from discocache.cache.entries import EntryCache
from discocache.cache.factory import new_cached_discovery_client_for_config

__all__ = [
    "CacheKey",
    "CachedDiscoveryClient",
    "DiskStore",
    "EntryCache",
    "new_cached_discovery_client_for_config",
]
