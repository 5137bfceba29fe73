"""Aggregate discovery operations built from the per-document ones.

These functions take any :class:`~discocache.discovery.interface.DiscoveryInterface`
and compose its :meth:`server_groups` and
:meth:`server_resources_for_group_version` calls.  When the argument is a
:class:`~discocache.cache.cached_discovery.CachedDiscoveryClient` every
building block goes through the cache, so only the group-versions missing
from it are fetched live.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

from discocache.exceptions import GroupDiscoveryFailedError
from discocache.models import APIGroup, APIResource, APIResourceList

if TYPE_CHECKING:
    from discocache.discovery.interface import DiscoveryInterface

MAX_PARALLEL_FETCHES = 16


def fetch_group_version_resources(
    client: DiscoveryInterface,
    group_versions: list[str],
) -> tuple[dict[str, APIResourceList], dict[str, Exception]]:
    """Fetch the resource lists of *group_versions* concurrently.

    Returns:
        A ``(resources, failed)`` pair of dicts keyed by group-version.  A
        failure for one group-version does not affect the others.
    """
    resources: dict[str, APIResourceList] = {}
    failed: dict[str, Exception] = {}
    if not group_versions:
        return resources, failed

    workers = min(len(group_versions), MAX_PARALLEL_FETCHES)
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="discovery") as pool:
        futures = {
            gv: pool.submit(client.server_resources_for_group_version, gv)
            for gv in group_versions
        }
        for gv, future in futures.items():
            try:
                resources[gv] = future.result()
            except Exception as exc:
                failed[gv] = exc
    return resources, failed


def _group_versions(groups: list[APIGroup]) -> list[str]:
    seen: dict[str, None] = {}
    for group in groups:
        for version in group.versions:
            seen.setdefault(version.group_version, None)
    return list(seen)


def server_groups_and_resources(
    client: DiscoveryInterface,
) -> tuple[list[APIGroup], list[APIResourceList]]:
    """Return every group plus the resource list of each of its versions.

    Resource lists come back in the order the server lists groups and
    versions.

    Raises:
        GroupDiscoveryFailedError: If one or more group-versions failed.
            ``groups`` and the successful ``resources`` are attached.
    """
    groups, resources, failed = _discover(client)
    ordered = list(resources.values())
    if failed:
        raise GroupDiscoveryFailedError(failed, groups=groups, resources=ordered)
    return groups, ordered


def _discover(
    client: DiscoveryInterface,
) -> tuple[list[APIGroup], dict[str, APIResourceList], dict[str, Exception]]:
    groups = list(client.server_groups().groups)
    group_versions = _group_versions(groups)
    resources, failed = fetch_group_version_resources(client, group_versions)
    ordered = {gv: resources[gv] for gv in group_versions if gv in resources}
    return groups, ordered, failed


def server_preferred_resources(client: DiscoveryInterface) -> list[APIResourceList]:
    """Return each group-resource once, in its group's preferred version.

    A resource only served by non-preferred versions is reported in the
    first version that lists it.  Subresources (names containing ``/``) are
    skipped, and group-versions left without resources are omitted.

    Raises:
        GroupDiscoveryFailedError: If some group-versions failed; the
            preferred resources computed from the rest are attached as
            ``resources``.
    """
    groups, by_group_version, failed = _discover(client)

    chosen: dict[tuple[str, str], tuple[str, APIResource]] = {}
    for group in groups:
        preferred = group.preferred_version.version if group.preferred_version else None
        for version in group.versions:
            resource_list = by_group_version.get(version.group_version)
            if resource_list is None:
                continue
            for resource in resource_list.api_resources:
                if "/" in resource.name:
                    continue
                group_resource = (group.name, resource.name)
                if group_resource in chosen and version.version != preferred:
                    continue
                chosen[group_resource] = (version.group_version, resource)

    grouped: dict[str, list[APIResource]] = {}
    for group in groups:
        for version in group.versions:
            grouped.setdefault(version.group_version, [])
    for group_version, resource in chosen.values():
        grouped[group_version].append(resource)

    result = [
        APIResourceList(group_version=gv, api_resources=items)
        for gv, items in grouped.items()
        if items
    ]
    if failed:
        raise GroupDiscoveryFailedError(failed, groups=groups, resources=result)
    return result


def server_preferred_namespaced_resources(client: DiscoveryInterface) -> list[APIResourceList]:
    """Like :func:`server_preferred_resources`, keeping only namespaced resources."""
    try:
        preferred = server_preferred_resources(client)
    except GroupDiscoveryFailedError as exc:
        raise GroupDiscoveryFailedError(
            exc.failed, groups=exc.groups, resources=_namespaced_only(exc.resources)
        ) from exc
    return _namespaced_only(preferred)


def _namespaced_only(resource_lists: list[APIResourceList]) -> list[APIResourceList]:
    result = []
    for resource_list in resource_lists:
        namespaced = [r for r in resource_list.api_resources if r.namespaced]
        if namespaced:
            result.append(
                APIResourceList(group_version=resource_list.group_version, api_resources=namespaced)
            )
    return result
