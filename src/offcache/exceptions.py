"""Exception hierarchy for offcache.

All exceptions inherit from :class:`OffcacheError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`offcache.exit_codes`.
The top-level error handler in :func:`offcache.app.main` catches
``OffcacheError`` and exits with the appropriate code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Subclass hierarchy::

    OffcacheError (exit 1)
    +-- InvalidUsageError   (exit 2)
    +-- NetworkError        (exit 6)
    +-- StoreError          (exit 8)
    +-- LifecycleError      (exit 9)
    +-- ConfigError         (exit 1)
"""

from offcache.exit_codes import (
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_LIFECYCLE_ERROR,
    EXIT_NETWORK_ERROR,
    EXIT_STORE_ERROR,
)


class OffcacheError(Exception):
    """Base exception for all offcache errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`offcache.exit_codes`. The entry point catches
    this exception type and calls ``sys.exit(exc.exit_code)``.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(OffcacheError):
    """Raised for invalid CLI arguments or missing required parameters."""

    exit_code = EXIT_INVALID_USAGE


class NetworkError(OffcacheError):
    """Raised when an origin is unreachable or the fetch capability itself fails.

    An HTTP error status is *not* a network error: origins that answer
    with 404 or 500 produce a normal (non-ok) response snapshot.
    """

    exit_code = EXIT_NETWORK_ERROR


class StoreError(OffcacheError):
    """Raised when the cache store fails on open, match, put, delete, or list."""

    exit_code = EXIT_STORE_ERROR


class LifecycleError(OffcacheError):
    """Raised when ``activate()`` is requested outside the installed-waiting state."""

    exit_code = EXIT_LIFECYCLE_ERROR


class ConfigError(OffcacheError):
    """Raised for configuration problems (invalid JSON, failed validation, bad paths)."""

    exit_code = EXIT_GENERIC_FAILURE
