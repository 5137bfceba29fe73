"""Live discovery client talking to an API server over HTTP.

:class:`DiscoveryClient` wraps :class:`httpx.Client` and maps the discovery
operations onto the server's endpoints:

=====================================  ===============================
Operation                              Endpoint(s)
=====================================  ===============================
``server_groups``                      ``/api`` and ``/apis``
``server_resources_for_group_version`` ``/api/v1`` or ``/apis/<g>/<v>``
``server_version``                     ``/version``
``openapi_schema``                     ``/openapi/v2``
=====================================  ===============================

The aggregate operations are composed by :mod:`discocache.discovery.helpers`.
Requests are retried with exponential backoff on 5xx responses and network
errors; HTTP errors are mapped onto the
:mod:`discocache.exceptions` hierarchy.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Optional

import httpx

from discocache import codec
from discocache.discovery import helpers
from discocache.exceptions import AuthError, ConnectionError_, NotFoundError, ServerError
from discocache.models import (
    APIGroup,
    APIGroupList,
    APIResourceList,
    APIVersions,
    ClusterConfig,
    GroupVersionForDiscovery,
    VersionInfo,
)

logger = logging.getLogger(__name__)


class DiscoveryClient:
    """Uncached discovery client for one API server.

    Args:
        cluster: Server URL and request settings (timeout, retries, SSL).
        token: Optional bearer token sent as ``Authorization`` header.
        transport: Optional httpx transport, mainly for tests
            (:class:`httpx.MockTransport`).

    Example::

        with DiscoveryClient(ClusterConfig(server="https://10.0.0.1:6443")) as client:
            for group in client.server_groups().groups:
                print(group.name)
    """

    def __init__(
        self,
        cluster: ClusterConfig,
        token: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._cluster = cluster
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(
            base_url=cluster.server,
            headers=headers,
            timeout=cluster.request.timeout,
            verify=cluster.request.verify_ssl,
            follow_redirects=True,
            transport=transport,
        )

    @property
    def server(self) -> str:
        """Base URL of the API server."""
        return self._cluster.server

    def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        self._client.close()

    def __enter__(self) -> DiscoveryClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # ------------------------------------------------------------------ #
    # Discovery operations
    # ------------------------------------------------------------------ #

    def server_groups(self) -> APIGroupList:
        """Return the legacy core group followed by every named group.

        ``/api`` and ``/apis`` answering 403 or 404 are tolerated; the
        corresponding groups are simply absent.
        """
        groups: list[APIGroup] = []

        versions = self._get_optional("/api", APIVersions)
        if versions is not None and versions.versions:
            core_versions = [
                GroupVersionForDiscovery(group_version=v, version=v) for v in versions.versions
            ]
            groups.append(
                APIGroup(name="", versions=core_versions, preferred_version=core_versions[0])
            )

        group_list = self._get_optional("/apis", APIGroupList)
        if group_list is not None:
            groups.extend(group_list.groups)

        return APIGroupList(groups=groups)

    def server_resources_for_group_version(self, group_version: str) -> APIResourceList:
        """Return the resources served for *group_version*.

        Raises:
            NotFoundError: If the server does not serve *group_version*.
        """
        if "/" in group_version:
            path = f"/apis/{group_version}"
        else:
            path = f"/api/{group_version}"
        resources = self._get(path, APIResourceList)
        if not resources.group_version:
            resources.group_version = group_version
        return resources

    def server_groups_and_resources(self) -> tuple[list[APIGroup], list[APIResourceList]]:
        """Return all groups and their resources (see :mod:`~discocache.discovery.helpers`)."""
        return helpers.server_groups_and_resources(self)

    def server_preferred_resources(self) -> list[APIResourceList]:
        """Return resources in their groups' preferred versions."""
        return helpers.server_preferred_resources(self)

    def server_preferred_namespaced_resources(self) -> list[APIResourceList]:
        """Return namespaced resources in their groups' preferred versions."""
        return helpers.server_preferred_namespaced_resources(self)

    def server_version(self) -> VersionInfo:
        """Return the server's build information from ``/version``."""
        return self._get("/version", VersionInfo)

    def openapi_schema(self) -> dict[str, Any]:
        """Return the OpenAPI v2 document from ``/openapi/v2``."""
        return self._get("/openapi/v2", dict)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _get(self, path: str, document_type: Any) -> Any:
        """GET *path* and decode the body into *document_type*."""
        response = self._execute_with_retry(path)
        self._map_response_error(response)
        return codec.decode(response.content, document_type)

    def _get_optional(self, path: str, document_type: Any) -> Any:
        """Like :meth:`_get` but returns ``None`` when the server answers 403 or 404."""
        response = self._execute_with_retry(path)
        if response.status_code in (403, 404):
            logger.debug("Skipping %s: HTTP %d", path, response.status_code)
            return None
        self._map_response_error(response)
        return codec.decode(response.content, document_type)

    def _execute_with_retry(self, path: str) -> httpx.Response:
        """Execute a GET with exponential-backoff retry.

        Retries on 5xx status codes and connection / timeout errors up to
        ``max_retries`` times.  The delay doubles each attempt: 1 s, 2 s, 4 s, ...
        """
        max_retries = self._cluster.request.max_retries

        for attempt in range(max_retries + 1):
            try:
                response = self._client.get(path)
            except (httpx.ConnectError, httpx.TimeoutException, httpx.NetworkError) as exc:
                if attempt < max_retries:
                    delay = 2 ** attempt
                    logger.debug(
                        "Connection error on %s: %s, retrying in %ss (attempt %d/%d)",
                        path, exc, delay, attempt + 1, max_retries,
                    )
                    time.sleep(delay)
                    continue
                raise ConnectionError_(
                    f"Connection to {self._cluster.server} failed after "
                    f"{max_retries + 1} attempts: {exc}"
                ) from exc

            if response.status_code >= 500 and attempt < max_retries:
                delay = 2 ** attempt
                logger.debug(
                    "Server error %d on %s, retrying in %ss (attempt %d/%d)",
                    response.status_code, path, delay, attempt + 1, max_retries,
                )
                time.sleep(delay)
                continue
            return response

        raise ServerError("Request failed after all retries")  # pragma: no cover

    def _map_response_error(self, response: httpx.Response) -> None:
        """Raise a typed exception for error HTTP status codes."""
        status = response.status_code
        if status < 400:
            return

        # Kubernetes-style Status objects carry the reason in "message".
        try:
            detail = response.json()
            if isinstance(detail, dict):
                msg = detail.get("message") or detail.get("reason") or ""
            else:
                msg = str(detail)
        except ValueError:
            msg = response.text[:200] if response.text else ""

        prefix = f"HTTP {status} on {response.request.url.path}"
        full_msg = f"{prefix}: {msg}" if msg else prefix

        if status in (401, 403):
            raise AuthError(full_msg)
        if status == 404:
            raise NotFoundError(full_msg)
        raise ServerError(full_msg)
