"""discocache -- a disk-backed cache for API discovery documents.

Cluster control planes describe their API groups, versions and resource
kinds through discovery endpoints.  Short-lived clients ask for the same
documents over and over; this package keeps them on local disk and reuses
them until a time-to-live expires or the cache is invalidated.

Typical use::

    from discocache.cache import CachedDiscoveryClient
    from discocache.discovery import DiscoveryClient
    from discocache.models import ClusterConfig

    live = DiscoveryClient(ClusterConfig(server="https://10.0.0.1:6443"))
    with CachedDiscoveryClient(live, "/tmp/discovery", ttl=600) as client:
        groups = client.server_groups()

Modules:
    app: Typer application and CLI entry point.
    cache: The caching decorator, disk store and in-memory entry cache.
    codec: Byte encoding of discovery documents.
    config: XDG-aware configuration and cache directory resolution.
    discovery: Discovery interface, live HTTP client and aggregate helpers.
    exceptions: Exception hierarchy with exit-code mapping.
    models: Pydantic models for discovery documents and configuration.
    output: stdout/stderr formatting for the CLI.
"""

__version__ = "0.1.0"
