"""Build a ready-to-use cached discovery client from configuration."""

from __future__ import annotations

from typing import Optional

import httpx

from discocache.cache.cached_discovery import CachedDiscoveryClient
from discocache.config import discovery_cache_dir_for, resolve_credential
from discocache.discovery.client import DiscoveryClient
from discocache.models import GlobalConfig


def new_cached_discovery_client_for_config(
    config: GlobalConfig,
    transport: Optional[httpx.BaseTransport] = None,
) -> CachedDiscoveryClient:
    """Create a :class:`CachedDiscoveryClient` for the configured cluster.

    The live :class:`~discocache.discovery.client.DiscoveryClient` gets the
    resolved bearer token, and the cache lives in the per-server directory
    from :func:`~discocache.config.discovery_cache_dir_for`.

    Raises:
        ConfigError: If no server is configured or the token source cannot
            be resolved.
    """
    cache_dir = discovery_cache_dir_for(config)
    assert config.cluster is not None  # discovery_cache_dir_for() guarantees this
    token = resolve_credential(config.cluster.token_source)
    delegate = DiscoveryClient(config.cluster, token=token, transport=transport)
    return CachedDiscoveryClient(
        delegate,
        cache_dir,
        ttl=config.cache.ttl_seconds,
        policies=config.cache.policies,
    )
