"""Exception hierarchy for persistcall.

All exceptions inherit from :class:`PersistCallError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`persistcall.exit_codes`.
The CLI entry point in :func:`persistcall.app.main` catches
``PersistCallError`` and exits with the appropriate code.

Subclass hierarchy::

    PersistCallError            (exit 1)
    +-- InvalidUsageError       (exit 2)
    +-- InvalidRequestError     (exit 3)
    +-- NetworkError            (exit 4)
    +-- DecodeError             (exit 5)
    |   +-- DoubleDecodeMissError
    +-- StoreError              (exit 6)
    |   +-- DiskReadError
    |   +-- DiskWriteError
    +-- ConfigError             (exit 1)

Storage faults never reach callers of the fetch coordinator: a
:class:`DiskReadError` is downgraded to a cache miss and a
:class:`DiskWriteError` is logged.  Only :class:`NetworkError`,
:class:`DecodeError` and :class:`InvalidRequestError` surface from a fetch.
"""

from __future__ import annotations

from persistcall.exit_codes import (
    EXIT_DECODE_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_REQUEST,
    EXIT_INVALID_USAGE,
    EXIT_NETWORK_ERROR,
    EXIT_STORE_ERROR,
)


class PersistCallError(Exception):
    """Base exception for all persistcall errors.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(PersistCallError):
    """Raised for invalid CLI input or misuse of the API (e.g. a bridge re-entering its own loop)."""

    exit_code = EXIT_INVALID_USAGE


class InvalidRequestError(PersistCallError):
    """Raised when a request descriptor cannot be canonicalised (missing URL, bad scheme)."""

    exit_code = EXIT_INVALID_REQUEST


class NetworkError(PersistCallError):
    """Raised by a transport when the fetch fails.

    Args:
        message: Human-readable description.
        status_code: HTTP status of the failed response, when there was one.
        url: The URL that was being fetched.
    """

    exit_code = EXIT_NETWORK_ERROR

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        url: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class DecodeError(PersistCallError):
    """Raised when bytes cannot be decoded into the requested type."""

    exit_code = EXIT_DECODE_ERROR


class DoubleDecodeMissError(DecodeError):
    """Raised when fetched bytes decode as neither type of a first-of-two fetch."""


class StoreError(PersistCallError):
    """Base class for cache storage faults."""

    exit_code = EXIT_STORE_ERROR


class DiskReadError(StoreError):
    """Raised internally when the disk store cannot be read."""


class DiskWriteError(StoreError):
    """Raised by :meth:`~persistcall.cache.disk.DiskStore.write` when an entry cannot be persisted."""


class ConfigError(PersistCallError):
    """Raised for configuration problems (invalid JSON, unknown strategy)."""

    exit_code = EXIT_GENERIC_FAILURE
