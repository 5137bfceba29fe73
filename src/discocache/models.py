"""Canonical Pydantic models shared across all discocache modules.

The models fall into two groups:

**Discovery documents** -- the fixed set of shapes returned by a cluster's
discovery endpoints and persisted by the cache:
    :class:`GroupVersionForDiscovery`, :class:`APIGroup`,
    :class:`APIGroupList`, :class:`APIVersions`, :class:`APIResource`,
    :class:`APIResourceList`, and :class:`VersionInfo`. The OpenAPI schema is
    carried as a plain ``dict``.

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`CachePolicy`, :class:`CachePolicies`, :class:`CacheConfig`,
    :class:`RequestConfig`, :class:`ClusterConfig`, and :class:`GlobalConfig`.

Discovery documents use the server's camelCase field names as aliases, so
they validate straight from API responses while remaining constructible
with snake_case keyword arguments.
"""

from __future__ import annotations

import enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# --- Discovery documents ---


class GroupVersionForDiscovery(BaseModel):
    """One version of an API group, e.g. ``groupVersion="apps/v1"``, ``version="v1"``."""

    model_config = ConfigDict(populate_by_name=True)

    group_version: str = Field(alias="groupVersion")
    version: str


class APIGroup(BaseModel):
    """An API group and the versions the server offers for it.

    The legacy core group has an empty ``name`` and its versions are plain
    ``v1`` rather than ``<group>/v1``.
    """

    model_config = ConfigDict(populate_by_name=True)

    kind: str = "APIGroup"
    api_version: str = Field(default="v1", alias="apiVersion")
    name: str
    versions: list[GroupVersionForDiscovery] = Field(default_factory=list)
    preferred_version: Optional[GroupVersionForDiscovery] = Field(
        default=None, alias="preferredVersion"
    )


class APIGroupList(BaseModel):
    """All API groups advertised by a server. Cached under ``servergroups``."""

    model_config = ConfigDict(populate_by_name=True)

    kind: str = "APIGroupList"
    api_version: str = Field(default="v1", alias="apiVersion")
    groups: list[APIGroup] = Field(default_factory=list)


class APIVersions(BaseModel):
    """Response of the legacy ``/api`` endpoint listing core group versions."""

    model_config = ConfigDict(populate_by_name=True)

    kind: str = "APIVersions"
    api_version: str = Field(default="v1", alias="apiVersion")
    versions: list[str] = Field(default_factory=list)


class APIResource(BaseModel):
    """A single resource kind served within a group-version.

    Subresources carry a ``/`` in their name (``pods/log``).
    """

    model_config = ConfigDict(populate_by_name=True)

    name: str
    singular_name: str = Field(default="", alias="singularName")
    namespaced: bool = False
    group: Optional[str] = None
    version: Optional[str] = None
    kind: str = ""
    verbs: list[str] = Field(default_factory=list)
    short_names: list[str] = Field(default_factory=list, alias="shortNames")
    categories: list[str] = Field(default_factory=list)


class APIResourceList(BaseModel):
    """Resources served for one group-version. Cached per group-version."""

    model_config = ConfigDict(populate_by_name=True)

    kind: str = "APIResourceList"
    api_version: str = Field(default="v1", alias="apiVersion")
    group_version: str = Field(default="", alias="groupVersion")
    api_resources: list[APIResource] = Field(default_factory=list, alias="resources")


class VersionInfo(BaseModel):
    """Build information reported by the ``/version`` endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    major: str = ""
    minor: str = ""
    git_version: str = Field(default="", alias="gitVersion")
    git_commit: str = Field(default="", alias="gitCommit")
    git_tree_state: str = Field(default="", alias="gitTreeState")
    build_date: str = Field(default="", alias="buildDate")
    go_version: str = Field(default="", alias="goVersion")
    compiler: str = ""
    platform: str = ""


# --- Configuration ---


class CachePolicy(str, enum.Enum):
    """How a single discovery operation is cached.

    ``DISK`` runs the full memory -> disk -> delegate lookup, ``MEMORY`` skips
    the disk, ``BYPASS`` always asks the delegate, and ``DERIVED`` computes the
    result from the cached group and resource documents.
    """

    DISK = "disk"
    MEMORY = "memory"
    BYPASS = "bypass"
    DERIVED = "derived"


class CachePolicies(BaseModel):
    """Per-operation cache policy table.

    ``derived`` is only meaningful for the two preferred-resource operations,
    which can be computed from groups and resources; every other operation
    rejects it.
    """

    server_groups: CachePolicy = CachePolicy.DISK
    server_resources_for_group_version: CachePolicy = CachePolicy.DISK
    server_version: CachePolicy = CachePolicy.DISK
    openapi_schema: CachePolicy = CachePolicy.DISK
    server_preferred_resources: CachePolicy = CachePolicy.DERIVED
    server_preferred_namespaced_resources: CachePolicy = CachePolicy.DERIVED

    @field_validator(
        "server_groups",
        "server_resources_for_group_version",
        "server_version",
        "openapi_schema",
    )
    @classmethod
    def _reject_derived(cls, value: CachePolicy) -> CachePolicy:
        if value == CachePolicy.DERIVED:
            raise ValueError("'derived' only applies to the preferred-resource operations")
        return value


class CacheConfig(BaseModel):
    """Discovery cache settings stored in :class:`GlobalConfig`."""

    ttl_seconds: float = Field(
        default=600, ge=0, description="Maximum age of a cached discovery document"
    )
    cache_dir: Optional[str] = Field(
        default=None,
        description="Parent directory for discovery caches (defaults to the XDG cache dir)",
    )
    policies: CachePolicies = Field(default_factory=CachePolicies)


class RequestConfig(BaseModel):
    """HTTP settings for the live discovery client."""

    timeout: float = Field(default=30, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    max_retries: int = Field(default=3, ge=0, description="Max retry attempts")


class ClusterConfig(BaseModel):
    """Connection details for one API server."""

    server: str = Field(description="Base URL of the API server, e.g. https://10.0.0.1:6443")
    token_source: Optional[str] = Field(
        default=None,
        description="Bearer token source: env:VAR or file:/path",
    )
    request: RequestConfig = Field(default_factory=RequestConfig)


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/discocache/config.json``.

    Read by :func:`~discocache.config.load_global_config`. See
    :func:`~discocache.config.resolve_config` for how CLI flags and
    environment variables override it.
    """

    cluster: Optional[ClusterConfig] = None
    cache: CacheConfig = Field(default_factory=CacheConfig)
