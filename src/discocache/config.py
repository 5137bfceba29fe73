"""Configuration management with XDG paths and precedence resolution.

This module handles all persistent configuration for discocache:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.discocache/`` on macOS and Windows. See :func:`get_config_dir`,
  :func:`get_cache_dir`, :func:`get_data_dir`.
* **Per-server cache directories** -- :func:`compute_discovery_cache_dir`
  gives every API server its own cache subtree.
* **Global config** -- A single, user-edited :class:`~discocache.models.GlobalConfig`
  JSON file holding the cluster connection and cache settings.
* **Precedence resolution** -- :func:`resolve_config` merges CLI flags,
  environment variables, and the config file.
* **Credential resolution** -- :func:`resolve_credential` reads a bearer
  token from an env var or a file.
"""

from __future__ import annotations

import json
import os
import platform
import re
from pathlib import Path
from typing import Optional

from discocache.exceptions import ConfigError
from discocache.models import ClusterConfig, GlobalConfig

_APP_NAME = "discocache"
_CONFIG_FILENAME = "config.json"

ENV_SERVER = "DISCOCACHE_SERVER"
ENV_CACHE_DIR = "DISCOCACHE_CACHE_DIR"
ENV_TTL = "DISCOCACHE_TTL"
ENV_TOKEN_SOURCE = "DISCOCACHE_TOKEN_SOURCE"

# Anything other than word characters, dots and slashes is replaced.
_ILLEGAL_PATH_CHARS = re.compile(r"[^\w/.]")


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/discocache/`` (default ``~/.config/discocache/``).
    On macOS/Windows: ``~/.discocache/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_cache_dir() -> Path:
    """Return the parent directory for discovery caches.

    Not created here: the disk store creates its directories lazily with
    restrictive permissions on first write.

    On Linux/BSD: ``$XDG_CACHE_HOME/discocache/`` (default ``~/.cache/discocache/``).
    On macOS/Windows: ``~/.discocache/cache/``.
    """
    if _is_xdg_platform():
        return _xdg_base("XDG_CACHE_HOME", (".cache",)) / _APP_NAME
    return _fallback_base_dir() / "cache"


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/discocache/`` (default ``~/.local/share/discocache/``).
    On macOS/Windows: ``~/.discocache/logs/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


def compute_discovery_cache_dir(parent_dir: str | Path, host: str) -> Path:
    """Return the cache directory for the API server at *host*.

    The scheme is stripped and every character that is not a word
    character, ``.`` or ``/`` becomes ``_``; slashes are then flattened too,
    so each server gets exactly one directory below ``<parent>/discovery``.

    Example::

        >>> compute_discovery_cache_dir("/cache", "https://10.0.0.1:6443")
        PosixPath('/cache/discovery/10.0.0.1_6443')
    """
    schemeless = re.sub(r"^[a-zA-Z][a-zA-Z0-9+.-]*://", "", host)
    safe = _ILLEGAL_PATH_CHARS.sub("_", schemeless).strip("/").replace("/", "_")
    if safe in ("", ".", ".."):
        raise ConfigError(f"Cannot derive a cache directory from server {host!r}")
    return Path(parent_dir) / "discovery" / safe


# --- Global config ---


def _global_config_path() -> Path:
    """Path to the global config file."""
    return get_config_dir() / _CONFIG_FILENAME


def load_global_config() -> GlobalConfig:
    """Load the global configuration from the XDG config directory.

    Returns:
        The deserialised :class:`~discocache.models.GlobalConfig`, or a
        default instance if the file does not exist.

    Raises:
        ConfigError: If the file exists but contains invalid JSON or fails
            Pydantic validation.
    """
    path = _global_config_path()
    if not path.is_file():
        return GlobalConfig()
    try:
        text = path.read_text(encoding="utf-8")
        data = json.loads(text)
        return GlobalConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid global config at {path}: {exc}") from exc


# --- Precedence resolution ---


def resolve_config(
    cli_server: Optional[str] = None,
    cli_cache_dir: Optional[str] = None,
    cli_ttl: Optional[float] = None,
) -> GlobalConfig:
    """Resolve the effective configuration.

    Precedence (high to low):
        1. CLI flags (``cli_server``, ``cli_cache_dir``, ``cli_ttl``)
        2. Environment variables (``DISCOCACHE_SERVER``,
           ``DISCOCACHE_CACHE_DIR``, ``DISCOCACHE_TTL``,
           ``DISCOCACHE_TOKEN_SOURCE``)
        3. User config (``~/.config/discocache/config.json``)
        4. Defaults

    Returns:
        The merged :class:`~discocache.models.GlobalConfig`.  ``cluster``
        stays ``None`` when no server is configured anywhere.

    Raises:
        ConfigError: If ``DISCOCACHE_TTL`` is not a non-negative number.
    """
    config = load_global_config()

    server = cli_server or os.environ.get(ENV_SERVER) or None
    if server is not None:
        if config.cluster is None:
            config.cluster = ClusterConfig(server=server)
        else:
            config.cluster.server = server

    token_source = os.environ.get(ENV_TOKEN_SOURCE)
    if token_source and config.cluster is not None:
        config.cluster.token_source = token_source

    cache_dir = cli_cache_dir or os.environ.get(ENV_CACHE_DIR) or None
    if cache_dir is not None:
        config.cache.cache_dir = cache_dir

    ttl = cli_ttl
    if ttl is None and os.environ.get(ENV_TTL):
        raw = os.environ[ENV_TTL]
        try:
            ttl = float(raw)
        except ValueError as exc:
            raise ConfigError(f"{ENV_TTL} must be a number of seconds, got {raw!r}") from exc
    if ttl is not None:
        if ttl < 0:
            raise ConfigError(f"TTL must not be negative, got {ttl}")
        config.cache.ttl_seconds = ttl

    return config


def discovery_cache_dir_for(config: GlobalConfig) -> Path:
    """Return the cache directory for the configured cluster.

    Raises:
        ConfigError: If no cluster server is configured.
    """
    if config.cluster is None:
        raise ConfigError(
            f"No API server configured; pass --server or set {ENV_SERVER}"
        )
    parent = Path(config.cache.cache_dir).expanduser() if config.cache.cache_dir else get_cache_dir()
    return compute_discovery_cache_dir(parent, config.cluster.server)


# --- Credential source resolution ---


def resolve_credential(source: Optional[str]) -> Optional[str]:
    """Resolve a bearer token from its source descriptor.

    Supported formats:
        - ``None`` -- no token
        - ``"env:VAR_NAME"`` -- reads ``os.environ["VAR_NAME"]``
        - ``"file:/path/to/file"`` -- reads file content, stripped of whitespace

    Raises:
        ConfigError: If the source can't be resolved.
    """
    if source is None:
        return None

    if source.startswith("env:"):
        var_name = source[4:]
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigError(
                f"Environment variable '{var_name}' is not set (source: {source})"
            )
        return value

    if source.startswith("file:"):
        path = Path(source[5:]).expanduser()
        if not path.is_file():
            raise ConfigError(f"Credential file not found: {path} (source: {source})")
        try:
            return path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise ConfigError(f"Cannot read credential file {path}: {exc}") from exc

    raise ConfigError(f"Unknown credential source format: {source}")
