"""Shared test fixtures for discocache.

Provides a scripted fake discovery delegate that counts its calls,
isolated XDG/config environments, output state management, and a CLI
runner.  These fixtures are automatically discovered by pytest and
available to all test modules without explicit imports.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Optional

import pytest

from discocache.discovery import helpers
from discocache.exceptions import NotFoundError
from discocache.models import (
    APIGroup,
    APIGroupList,
    APIResource,
    APIResourceList,
    GroupVersionForDiscovery,
    VersionInfo,
)
from discocache.output import OutputFormat, OutputManager, reset_output, set_output


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time, which go stale once a CliRunner invocation finishes.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Scripted discovery delegate
# ---------------------------------------------------------------------------


def make_group(name: str, *versions: str, preferred: Optional[str] = None) -> APIGroup:
    """Build an APIGroup; the first version is preferred unless *preferred* is set."""
    gvs = [
        GroupVersionForDiscovery(group_version=f"{name}/{v}" if name else v, version=v)
        for v in versions
    ]
    preferred_version = next((gv for gv in gvs if gv.version == preferred), gvs[0] if gvs else None)
    return APIGroup(name=name, versions=gvs, preferred_version=preferred_version)


def make_resources(group_version: str, *names: str, namespaced: bool = True) -> APIResourceList:
    """Build an APIResourceList with one resource per name."""
    return APIResourceList(
        group_version=group_version,
        api_resources=[
            APIResource(name=n, kind=n.split("/")[0].rstrip("s").capitalize(), namespaced=namespaced)
            for n in names
        ],
    )


class FakeDiscoveryClient:
    """Discovery delegate that serves scripted documents and counts calls.

    By default the server has one group ``a`` with version ``a/v1`` serving
    ``widgets``.  Any group-version missing from :attr:`resources` raises
    :class:`NotFoundError`.

    Setting :attr:`gate` makes :meth:`server_groups` block until the event
    is set; :attr:`entered` is set as soon as a call is inside.
    """

    def __init__(self) -> None:
        self.group_calls = 0
        self.resource_calls = 0
        self.version_calls = 0
        self.openapi_calls = 0
        self.preferred_calls = 0
        self.groups: list[APIGroup] = [make_group("a", "v1")]
        self.resources: dict[str, APIResourceList] = {
            "a/v1": make_resources("a/v1", "widgets"),
        }
        self.gate: Optional[threading.Event] = None
        self.entered = threading.Event()
        self._lock = threading.Lock()

    def server_groups(self) -> APIGroupList:
        with self._lock:
            self.group_calls += 1
        self.entered.set()
        if self.gate is not None:
            self.gate.wait(timeout=5)
        return APIGroupList(groups=[g.model_copy(deep=True) for g in self.groups])

    def server_resources_for_group_version(self, group_version: str) -> APIResourceList:
        with self._lock:
            self.resource_calls += 1
        if group_version in self.resources:
            return self.resources[group_version].model_copy(deep=True)
        raise NotFoundError(f"HTTP 404 on /apis/{group_version}")

    def server_groups_and_resources(self) -> tuple[list[APIGroup], list[APIResourceList]]:
        with self._lock:
            self.resource_calls += 1
        return list(self.groups), []

    def server_preferred_resources(self) -> list[APIResourceList]:
        with self._lock:
            self.preferred_calls += 1
        return helpers.server_preferred_resources(_Uncounted(self))

    def server_preferred_namespaced_resources(self) -> list[APIResourceList]:
        with self._lock:
            self.preferred_calls += 1
        return helpers.server_preferred_namespaced_resources(_Uncounted(self))

    def server_version(self) -> VersionInfo:
        with self._lock:
            self.version_calls += 1
        return VersionInfo(major="1", minor="30", git_version="v1.30.2", platform="linux/amd64")

    def openapi_schema(self) -> dict[str, Any]:
        with self._lock:
            self.openapi_calls += 1
        return {"swagger": "2.0", "info": {"title": "Kubernetes", "version": "v1.30.2"}}


class _Uncounted:
    """View of a FakeDiscoveryClient whose reads do not bump the counters."""

    def __init__(self, fake: FakeDiscoveryClient) -> None:
        self._fake = fake

    def server_groups(self) -> APIGroupList:
        return APIGroupList(groups=list(self._fake.groups))

    def server_resources_for_group_version(self, group_version: str) -> APIResourceList:
        if group_version in self._fake.resources:
            return self._fake.resources[group_version]
        raise NotFoundError(f"HTTP 404 on /apis/{group_version}")


@pytest.fixture
def fake_discovery() -> FakeDiscoveryClient:
    """A fresh scripted discovery delegate."""
    return FakeDiscoveryClient()


@pytest.fixture
def cache_root(tmp_path: Path) -> Path:
    """A not-yet-existing cache directory below tmp_path."""
    return tmp_path / "discovery-cache"


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Sets XDG_CONFIG_HOME, XDG_CACHE_HOME, and XDG_DATA_HOME to
    subdirectories of tmp_path, clears all DISCOCACHE_* environment
    variables, and changes the working directory to tmp_path.
    """
    monkeypatch.setattr("discocache.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))

    for var in [
        "DISCOCACHE_SERVER",
        "DISCOCACHE_CACHE_DIR",
        "DISCOCACHE_TTL",
        "DISCOCACHE_TOKEN_SOURCE",
    ]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output / CLI fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a quiet PLAIN OutputManager for tests that don't care about output."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
