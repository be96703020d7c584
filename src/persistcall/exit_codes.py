"""Numeric process exit codes for the ``persistcall`` command line.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~persistcall.exceptions.PersistCallError` subclass.
Shell scripts can inspect the exit code to tell a network failure from a
decode failure without parsing stderr.

Example::

    $ persistcall fetch https://api.example.com/users --as json
    $ echo $?
    4   # EXIT_NETWORK_ERROR -- the transport could not fetch the resource
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or misused an API."""

EXIT_INVALID_REQUEST = 3
"""The request descriptor could not be canonicalised into a cache key."""

EXIT_NETWORK_ERROR = 4
"""The transport failed (non-2xx status, timeout, DNS failure, refused connection)."""

EXIT_DECODE_ERROR = 5
"""The fetched bytes could not be decoded into the requested shape."""

EXIT_STORE_ERROR = 6
"""The on-disk cache could not be read or written."""
