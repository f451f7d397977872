"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~silentflow.exceptions.SilentFlowError` subclass.
Shell wrappers can inspect the exit code to decide whether to retry, start
an interactive login, or give up, without parsing stderr.

Example::

    $ silentflow acquire 1234.5678 --scope user.read --offline
    $ echo $?
    5   # EXIT_REFRESH_REQUIRED -- the cached token needs a network refresh
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or an invalid request."""

EXIT_INTERACTION_REQUIRED = 3
"""Silent acquisition is impossible; the user must sign in interactively."""

EXIT_REFRESH_REQUIRED = 5
"""The cache cannot satisfy the request and a network refresh is needed."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred while talking to the token endpoint."""
