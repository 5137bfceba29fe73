"""Disk-backed caching decorator for discovery clients.

:class:`CachedDiscoveryClient` wraps any
:class:`~discocache.discovery.interface.DiscoveryInterface` and serves each
discovery document from, in order:

1. the in-memory :class:`~discocache.cache.entries.EntryCache`,
2. the on-disk :class:`~discocache.cache.disk.DiskStore`, if the file is
   younger than the TTL,
3. the delegate, writing the result back to disk and memory.

Only delegate errors reach the caller.  Unreadable, expired or undecodable
cache files count as misses, and failing to persist a document is logged
but does not fail the call.

:meth:`CachedDiscoveryClient.fresh` tells callers whether everything served
so far came from a live fetch made by this process.  Callers that hit an
unknown resource type use it to decide whether an :meth:`invalidate` and
retry could help: if the data is already fresh, retrying will not change
the answer.
"""

from __future__ import annotations

import logging
import time
from datetime import timedelta
from pathlib import Path
from typing import Any, Callable, Optional

from discocache import codec
from discocache.cache.disk import (
    OPENAPI_SCHEMA,
    SERVER_GROUPS,
    SERVER_PREFERRED_NAMESPACED_RESOURCES,
    SERVER_PREFERRED_RESOURCES,
    SERVER_VERSION,
    CacheKey,
    DiskStore,
    server_resources_key,
)
from discocache.cache.entries import CacheEntry, EntryCache, LoadResult, Origin
from discocache.discovery import helpers
from discocache.discovery.interface import DiscoveryInterface
from discocache.exceptions import DecodeError
from discocache.models import (
    APIGroup,
    APIGroupList,
    APIResourceList,
    CachePolicies,
    CachePolicy,
    VersionInfo,
)

logger = logging.getLogger(__name__)


class CachedDiscoveryClient:
    """Discovery client that caches documents in memory and on disk.

    Args:
        delegate: The client that performs live discovery calls.
        cache_dir: Directory for this server's cache files.  Created on the
            first write with mode ``0o750``.
        ttl: Maximum age of a cached document, as seconds or a
            :class:`~datetime.timedelta`.
        policies: Per-operation cache policies.  Defaults to
            :class:`~discocache.models.CachePolicies`, which disk-caches
            every document and derives preferred resources from the cached
            groups and resources.

    Example::

        from discocache.cache import CachedDiscoveryClient
        from discocache.discovery import DiscoveryClient

        with CachedDiscoveryClient(DiscoveryClient(cluster), "/tmp/disco", ttl=600) as client:
            groups = client.server_groups()
            if not client.fresh():
                ...  # served from an earlier run's cache
    """

    def __init__(
        self,
        delegate: DiscoveryInterface,
        cache_dir: str | Path,
        ttl: float | timedelta,
        policies: Optional[CachePolicies] = None,
    ) -> None:
        if isinstance(ttl, timedelta):
            ttl = ttl.total_seconds()
        if ttl < 0:
            raise ValueError(f"ttl must not be negative, got {ttl}")
        self._delegate = delegate
        self._store = DiskStore(cache_dir)
        self._entries = EntryCache()
        self._ttl = float(ttl)
        self._policies = policies or CachePolicies()

    # ------------------------------------------------------------------ #
    # Properties
    # ------------------------------------------------------------------ #

    @property
    def delegate(self) -> DiscoveryInterface:
        """The wrapped live client."""
        return self._delegate

    @property
    def cache_dir(self) -> Path:
        """Directory holding this client's cache files."""
        return self._store.root

    @property
    def ttl(self) -> float:
        """Maximum document age in seconds."""
        return self._ttl

    @property
    def policies(self) -> CachePolicies:
        """The per-operation cache policy table in effect."""
        return self._policies

    # ------------------------------------------------------------------ #
    # Discovery operations
    # ------------------------------------------------------------------ #

    def server_groups(self) -> APIGroupList:
        """Return the server's API groups, cached under ``servergroups``."""
        return self._cached(
            SERVER_GROUPS,
            self._policies.server_groups,
            APIGroupList,
            self._delegate.server_groups,
            persist_if=lambda doc: bool(doc.groups),
        )

    def server_resources_for_group_version(self, group_version: str) -> APIResourceList:
        """Return the resources of one group-version, each cached independently."""
        return self._cached(
            server_resources_key(group_version),
            self._policies.server_resources_for_group_version,
            APIResourceList,
            lambda: self._delegate.server_resources_for_group_version(group_version),
            persist_if=lambda doc: bool(doc.api_resources),
        )

    def server_groups_and_resources(self) -> tuple[list[APIGroup], list[APIResourceList]]:
        """Return groups and per-group-version resources, built from cached pieces.

        Only group-versions missing from the cache are fetched live.

        Raises:
            GroupDiscoveryFailedError: When some group-versions failed.
        """
        return helpers.server_groups_and_resources(self)

    def server_preferred_resources(self) -> list[APIResourceList]:
        """Return preferred-version resources according to the policy table."""
        policy = self._policies.server_preferred_resources
        if policy == CachePolicy.DERIVED:
            return helpers.server_preferred_resources(self)
        return self._cached(
            SERVER_PREFERRED_RESOURCES,
            policy,
            list[APIResourceList],
            self._delegate.server_preferred_resources,
        )

    def server_preferred_namespaced_resources(self) -> list[APIResourceList]:
        """Return preferred-version namespaced resources according to the policy table."""
        policy = self._policies.server_preferred_namespaced_resources
        if policy == CachePolicy.DERIVED:
            return helpers.server_preferred_namespaced_resources(self)
        return self._cached(
            SERVER_PREFERRED_NAMESPACED_RESOURCES,
            policy,
            list[APIResourceList],
            self._delegate.server_preferred_namespaced_resources,
        )

    def server_version(self) -> VersionInfo:
        """Return the server's build information."""
        return self._cached(
            SERVER_VERSION,
            self._policies.server_version,
            VersionInfo,
            self._delegate.server_version,
        )

    def openapi_schema(self) -> dict[str, Any]:
        """Return the OpenAPI v2 document, stored as an opaque JSON blob."""
        return self._cached(
            OPENAPI_SCHEMA,
            self._policies.openapi_schema,
            dict,
            self._delegate.openapi_schema,
        )

    # ------------------------------------------------------------------ #
    # Cache control
    # ------------------------------------------------------------------ #

    def fresh(self) -> bool:
        """Return ``True`` if no document was served from another process's cache file.

        ``True`` right after construction and after :meth:`invalidate`.  It
        turns ``False`` the first time a non-expired disk file that this
        instance did not write is used, and stays ``False`` until the next
        :meth:`invalidate`.  Live fetches and memory hits leave it as is.
        """
        return self._entries.fresh

    def invalidate(self) -> None:
        """Forget every cached document, on disk and in memory.

        Removes the cache directory, drops all in-memory entries and resets
        :meth:`fresh` to ``True``.  When the delegate is itself a cache with
        an ``invalidate`` method, it is invalidated too.  Safe to call at
        any time, any number of times.
        """
        self._store.clear()
        self._entries.invalidate()
        delegate_invalidate = getattr(self._delegate, "invalidate", None)
        if callable(delegate_invalidate):
            delegate_invalidate()

    def close(self) -> None:
        """Close the delegate if it holds resources (e.g. an HTTP connection pool)."""
        delegate_close = getattr(self._delegate, "close", None)
        if callable(delegate_close):
            delegate_close()

    def __enter__(self) -> CachedDiscoveryClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _cached(
        self,
        key: CacheKey,
        policy: CachePolicy,
        document_type: Any,
        fetch: Callable[[], Any],
        persist_if: Optional[Callable[[Any], bool]] = None,
    ) -> Any:
        """Serve *key* from memory, disk, or *fetch*, according to *policy*."""
        if policy == CachePolicy.BYPASS:
            return fetch()
        use_disk = policy == CachePolicy.DISK and self._has_disk_path(key)

        def _load() -> LoadResult:
            epoch = self._store.epoch
            if use_disk:
                entry = self._read_disk(key, document_type)
                if entry is not None:
                    return LoadResult(entry)

            document = fetch()
            entry = CacheEntry(document=document, stored_at=time.time(), origin=Origin.LIVE)
            if persist_if is not None and not persist_if(document):
                logger.debug("Not caching %s: the server returned an empty document", key)
                return LoadResult(entry, cacheable=False)
            if use_disk:
                self._write_disk(key, document, epoch)
            return LoadResult(entry)

        return self._entries.load(key, _load, ttl=self._ttl)

    def _has_disk_path(self, key: CacheKey) -> bool:
        """Return ``False`` for keys that cannot be stored as a file (e.g. ``"apps/"``)."""
        try:
            self._store.path_for(key)
        except ValueError as exc:
            logger.debug("Not disk-caching %s: %s", key, exc)
            return False
        return True

    def _read_disk(self, key: CacheKey, document_type: Any) -> Optional[CacheEntry]:
        """Return a decoded, unexpired entry for *key* from disk, or ``None``."""
        record = self._store.read(key)
        if record is None:
            return None
        if record.modified + self._ttl < time.time():
            logger.debug("Cached %s expired %.1fs ago", key, record.age - self._ttl)
            return None
        try:
            document = codec.decode(record.data, document_type)
        except DecodeError as exc:
            logger.warning("Ignoring cache file %s: %s", self._store.path_for(key), exc)
            return None

        origin = Origin.OWN_DISK if record.ours else Origin.FOREIGN_DISK
        logger.debug("Returning cached %s from %s", key, self._store.path_for(key))
        return CacheEntry(document=document, stored_at=record.modified, origin=origin)

    def _write_disk(self, key: CacheKey, document: Any, epoch: int) -> None:
        """Persist *document* for *key*, logging instead of raising on failure.

        *epoch* is the store epoch seen before the fetch; a document fetched
        before an :meth:`invalidate` is never recorded as our own file.
        """
        try:
            self._store.write(key, codec.encode(document), epoch=epoch)
        except (OSError, TypeError, ValueError) as exc:
            logger.warning("Failed to write discovery cache for %s: %s", key, exc)
