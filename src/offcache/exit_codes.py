"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~offcache.exceptions.OffcacheError` subclass.
Shell wrappers and host supervisors can inspect the exit code to tell a
network outage from a broken store without parsing stderr.

Example::

    $ offcache install
    $ echo $?
    6   # EXIT_NETWORK_ERROR -- an origin could not be reached
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_NETWORK_ERROR = 6
"""An origin could not be reached (timeout, DNS failure, connection refused)."""

EXIT_STORE_ERROR = 8
"""The persistent cache store failed to open, read, write, or delete."""

EXIT_LIFECYCLE_ERROR = 9
"""A lifecycle transition was requested from a state that does not allow it."""
