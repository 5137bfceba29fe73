"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~discocache.exceptions.DiscoCacheError` subclass.
Shell wrappers can inspect the exit code to tell an unreachable control
plane apart from rejected credentials without parsing stderr.

Example::

    $ discocache --server https://10.0.0.1:6443 groups
    $ echo $?
    6   # EXIT_CONNECTION_ERROR -- the API server could not be reached
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments."""

EXIT_AUTH_FAILURE = 3
"""The API server rejected the request (HTTP 401 or 403)."""

EXIT_NOT_FOUND = 4
"""The requested discovery document does not exist (HTTP 404)."""

EXIT_SERVER_ERROR = 5
"""The API server returned an HTTP 5xx error or an unexpected 4xx."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_DECODE_ERROR = 7
"""A discovery document could not be decoded."""

EXIT_PARTIAL_DISCOVERY = 8
"""Discovery succeeded for some group-versions but failed for others."""
