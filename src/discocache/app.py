"""Typer application and CLI entry point for discocache.

The CLI is a thin shell over :class:`~discocache.cache.CachedDiscoveryClient`:
each command resolves the configuration, opens a cached client for the
selected API server, prints one discovery document, and reports on stderr
(``--verbose``) whether the answer was fetched live or came from the cache.

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``.  :class:`~discocache.exceptions.DiscoCacheError`
instances exit with their ``exit_code``; anything else writes a crash log
under the data directory.
"""

from __future__ import annotations

import logging
import signal
import sys
import traceback
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from discocache import __version__
from discocache.cache import CachedDiscoveryClient, new_cached_discovery_client_for_config
from discocache.config import discovery_cache_dir_for, resolve_config
from discocache.exceptions import DiscoCacheError, GroupDiscoveryFailedError, InvalidUsageError
from discocache.exit_codes import EXIT_GENERIC_FAILURE
from discocache.models import APIResourceList
from discocache.output import OutputFormat, OutputManager, get_output, set_output

app = typer.Typer(
    name="discocache",
    help="Query API discovery documents through a local disk cache.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"discocache {__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    """Route ``discocache`` library logs to stderr; DEBUG when *verbose*."""
    logger = logging.getLogger("discocache")
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)
    handler = RichHandler(console=Console(stderr=True), show_time=False, show_path=False)
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    server: Optional[str] = typer.Option(
        None, "--server", "-s", help="API server URL."
    ),
    cache_dir: Optional[str] = typer.Option(
        None, "--cache-dir", help="Parent directory for discovery caches."
    ),
    ttl: Optional[float] = typer.Option(
        None, "--ttl", min=0, help="Cache time-to-live in seconds."
    ),
    json_output: bool = typer.Option(
        False, "--json", help="JSON output format."
    ),
    plain_output: bool = typer.Option(
        False, "--plain", help="Plain text output."
    ),
    no_color: bool = typer.Option(
        False, "--no-color", help="Disable color output."
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug output."
    ),
) -> None:
    """Root callback executed before every sub-command.

    Initialises the global :class:`~discocache.output.OutputManager` and
    stores connection overrides in ``ctx.obj`` for the sub-commands.
    """
    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose))
    _configure_logging(verbose)

    ctx.ensure_object(dict)
    ctx.obj["server"] = server
    ctx.obj["cache_dir"] = cache_dir
    ctx.obj["ttl"] = ttl


@contextmanager
def _cached_client(ctx: typer.Context) -> Iterator[CachedDiscoveryClient]:
    """Open a cached discovery client for the resolved configuration.

    ``ctx.obj["transport"]`` may carry an httpx transport (used by tests).
    """
    obj = ctx.obj or {}
    config = resolve_config(
        cli_server=obj.get("server"),
        cli_cache_dir=obj.get("cache_dir"),
        cli_ttl=obj.get("ttl"),
    )
    client = new_cached_discovery_client_for_config(config, transport=obj.get("transport"))
    with client:
        yield client
        get_output().debug(
            f"Discovery data {'fetched live' if client.fresh() else 'served from cache'} "
            f"({client.cache_dir})"
        )


def _resource_rows(resource_lists: list[APIResourceList], with_api_version: bool) -> list[list[str]]:
    rows = []
    for resource_list in resource_lists:
        for resource in resource_list.api_resources:
            row = [resource.name, ",".join(resource.short_names)]
            if with_api_version:
                row.append(resource_list.group_version)
            row += [str(resource.namespaced).lower(), resource.kind]
            rows.append(row)
    return rows


@app.command("groups")
def groups_command(ctx: typer.Context) -> None:
    """List the API groups and versions served by the server."""
    output = get_output()
    with _cached_client(ctx) as client:
        group_list = client.server_groups()

    if output.format == OutputFormat.JSON:
        output.print_document(group_list.model_dump(mode="json", by_alias=True))
        return
    rows = [
        [
            group.name or "(core)",
            ",".join(v.version for v in group.versions),
            group.preferred_version.version if group.preferred_version else "",
        ]
        for group in group_list.groups
    ]
    output.print_table(["NAME", "VERSIONS", "PREFERRED"], rows, title="API groups")


@app.command("resources")
def resources_command(
    ctx: typer.Context,
    group_version: str = typer.Argument(..., help="Group-version, e.g. apps/v1 or v1."),
) -> None:
    """List the resources served for one group-version."""
    parts = group_version.split("/")
    if len(parts) > 2 or not all(parts):
        raise InvalidUsageError(
            f"Invalid group-version {group_version!r}; expected GROUP/VERSION or VERSION"
        )
    output = get_output()
    with _cached_client(ctx) as client:
        resource_list = client.server_resources_for_group_version(group_version)

    if output.format == OutputFormat.JSON:
        output.print_document(resource_list.model_dump(mode="json", by_alias=True))
        return
    output.print_table(
        ["NAME", "SHORTNAMES", "NAMESPACED", "KIND"],
        _resource_rows([resource_list], with_api_version=False),
        title=group_version,
    )


@app.command("api-resources")
def api_resources_command(
    ctx: typer.Context,
    namespaced: Optional[bool] = typer.Option(
        None,
        "--namespaced/--cluster",
        help="Only namespaced (or only cluster-scoped) resources.",
    ),
) -> None:
    """List every resource in its group's preferred version."""
    output = get_output()
    partial: Optional[GroupDiscoveryFailedError] = None
    with _cached_client(ctx) as client:
        try:
            if namespaced:
                resource_lists = client.server_preferred_namespaced_resources()
            else:
                resource_lists = client.server_preferred_resources()
        except GroupDiscoveryFailedError as exc:
            partial = exc
            resource_lists = exc.resources

    if namespaced is False:
        resource_lists = [
            APIResourceList(
                group_version=rl.group_version,
                api_resources=[r for r in rl.api_resources if not r.namespaced],
            )
            for rl in resource_lists
        ]

    if output.format == OutputFormat.JSON:
        output.print_document(
            [rl.model_dump(mode="json", by_alias=True) for rl in resource_lists]
        )
    else:
        output.print_table(
            ["NAME", "SHORTNAMES", "APIVERSION", "NAMESPACED", "KIND"],
            _resource_rows(resource_lists, with_api_version=True),
            title="API resources",
        )

    if partial is not None:
        raise partial


@app.command("version")
def version_command(ctx: typer.Context) -> None:
    """Show the server's version information."""
    with _cached_client(ctx) as client:
        info = client.server_version()
    get_output().print_document(info.model_dump(mode="json", by_alias=True))


@app.command("openapi")
def openapi_command(ctx: typer.Context) -> None:
    """Dump the server's OpenAPI v2 document."""
    with _cached_client(ctx) as client:
        schema = client.openapi_schema()
    get_output().print_document(schema)


@app.command("invalidate")
def invalidate_command(ctx: typer.Context) -> None:
    """Delete the cached discovery documents for the server."""
    with _cached_client(ctx) as client:
        client.invalidate()
        cache_dir = client.cache_dir
    get_output().success(f"Invalidated discovery cache at {cache_dir}")


@app.command("status")
def status_command(ctx: typer.Context) -> None:
    """Show where the server's cache lives and what it holds."""
    obj = ctx.obj or {}
    config = resolve_config(
        cli_server=obj.get("server"),
        cli_cache_dir=obj.get("cache_dir"),
        cli_ttl=obj.get("ttl"),
    )
    cache_dir = discovery_cache_dir_for(config)
    files = sorted(p for p in cache_dir.rglob("*.json")) if cache_dir.is_dir() else []
    get_output().print_document(
        {
            "server": config.cluster.server if config.cluster else None,
            "directory": str(cache_dir),
            "ttl_seconds": config.cache.ttl_seconds,
            "documents": [str(p.relative_to(cache_dir)) for p in files],
            "policies": config.cache.policies.model_dump(mode="json"),
        }
    )


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path."""
    from discocache.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``discocache`` console script.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from discocache.output import error

        if isinstance(exc, DiscoCacheError):
            error(str(exc))
            sys.exit(exc.exit_code)
        log_path = _write_crash_log(exc)
        error(f"Unexpected error. Debug log: {log_path}")
        sys.exit(EXIT_GENERIC_FAILURE)
