"""Exception hierarchy for discocache.

All exceptions inherit from :class:`DiscoCacheError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`discocache.exit_codes`.
The top-level error handler in :func:`discocache.app.main` catches
``DiscoCacheError`` and exits with the appropriate code.

Inside the cache layer only errors raised by the delegate ever reach the
caller. Disk and decode failures are downgraded to cache misses.

Subclass hierarchy::

    DiscoCacheError (exit 1)
    +-- InvalidUsageError          (exit 2)
    +-- AuthError                  (exit 3)
    +-- NotFoundError              (exit 4)
    +-- ServerError                (exit 5)
    +-- ConnectionError_           (exit 6)
    +-- DecodeError                (exit 7)
    +-- GroupDiscoveryFailedError  (exit 8)
    +-- ConfigError                (exit 1)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from discocache.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONNECTION_ERROR,
    EXIT_DECODE_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_NOT_FOUND,
    EXIT_PARTIAL_DISCOVERY,
    EXIT_SERVER_ERROR,
)

if TYPE_CHECKING:
    from discocache.models import APIGroup, APIResourceList


class DiscoCacheError(Exception):
    """Base exception for all discocache errors.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(DiscoCacheError):
    """Raised for invalid CLI arguments."""

    exit_code = EXIT_INVALID_USAGE


class AuthError(DiscoCacheError):
    """Raised when the API server answers 401 or 403."""

    exit_code = EXIT_AUTH_FAILURE


class NotFoundError(DiscoCacheError):
    """Raised when the API server returns HTTP 404 for a discovery endpoint."""

    exit_code = EXIT_NOT_FOUND


class ServerError(DiscoCacheError):
    """Raised when the API server returns an HTTP 5xx (or unexpected 4xx) error."""

    exit_code = EXIT_SERVER_ERROR


class ConnectionError_(DiscoCacheError):
    """Raised on network-level failures (timeout, DNS resolution, connection refused).

    Named with a trailing underscore to avoid shadowing the built-in
    ``ConnectionError``.
    """

    exit_code = EXIT_CONNECTION_ERROR


class DecodeError(DiscoCacheError):
    """Raised when bytes cannot be decoded into the expected discovery document."""

    exit_code = EXIT_DECODE_ERROR


class GroupDiscoveryFailedError(DiscoCacheError):
    """Raised when resources could not be fetched for one or more group-versions.

    Discovery of the remaining group-versions still succeeded; their results
    travel on the exception so callers can decide to proceed with a partial
    view of the server.

    Attributes:
        failed: Mapping of group-version string to the error it raised.
        groups: All groups the server advertised.
        resources: Resource lists for the group-versions that succeeded.
    """

    exit_code = EXIT_PARTIAL_DISCOVERY

    def __init__(
        self,
        failed: dict[str, Exception],
        groups: Optional[list[APIGroup]] = None,
        resources: Optional[list[APIResourceList]] = None,
    ) -> None:
        detail = ", ".join(f"{gv}: {exc}" for gv, exc in sorted(failed.items()))
        super().__init__(f"unable to retrieve the complete list of server APIs: {detail}")
        self.failed = failed
        self.groups = groups or []
        self.resources = resources or []


class ConfigError(DiscoCacheError):
    """Raised for configuration problems (invalid JSON, bad credential sources, missing server)."""

    exit_code = EXIT_GENERIC_FAILURE
