"""The discovery operations every delegate and cache layer provides.

:class:`DiscoveryInterface` is a structural protocol: the live
:class:`~discocache.discovery.client.DiscoveryClient`, the
:class:`~discocache.cache.cached_discovery.CachedDiscoveryClient` wrapping
it, and the scripted fakes used in tests all satisfy it without sharing a
base class.  Errors are opaque at this level; implementations raise
whatever the underlying transport produces.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from discocache.models import APIGroup, APIGroupList, APIResourceList, VersionInfo


@runtime_checkable
class DiscoveryInterface(Protocol):
    """Operations for enumerating the API groups, versions and resources of a server."""

    def server_groups(self) -> APIGroupList:
        """Return every API group the server advertises."""
        ...

    def server_resources_for_group_version(self, group_version: str) -> APIResourceList:
        """Return the resources served for *group_version* (``"apps/v1"``, ``"v1"``)."""
        ...

    def server_groups_and_resources(self) -> tuple[list[APIGroup], list[APIResourceList]]:
        """Return all groups plus the resource list of each of their versions.

        Raises:
            GroupDiscoveryFailedError: When some group-versions failed; the
                exception carries the partial result.
        """
        ...

    def server_preferred_resources(self) -> list[APIResourceList]:
        """Return resources with each group-resource in its preferred version."""
        ...

    def server_preferred_namespaced_resources(self) -> list[APIResourceList]:
        """Like :meth:`server_preferred_resources`, restricted to namespaced resources."""
        ...

    def server_version(self) -> VersionInfo:
        """Return the server's build information."""
        ...

    def openapi_schema(self) -> dict[str, Any]:
        """Return the server's OpenAPI v2 document."""
        ...


@runtime_checkable
class CachedDiscoveryInterface(DiscoveryInterface, Protocol):
    """A :class:`DiscoveryInterface` that caches and can be invalidated."""

    def fresh(self) -> bool:
        """Whether everything served so far was fetched live by this process."""
        ...

    def invalidate(self) -> None:
        """Forget all cached documents."""
        ...
