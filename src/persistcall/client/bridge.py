"""Blocking access to coroutines for synchronous callers.

:class:`SyncBridge` owns an event loop running on a daemon thread.
:meth:`SyncBridge.run` hands a coroutine to that loop and blocks the
calling thread until it settles; :meth:`SyncBridge.submit` does the same
without blocking and reports the result to a completion callback exactly
once.

There is no pre-sleep and, unless a ``timeout`` is passed, no time limit:
``run`` returns when the coroutine does.  Calling ``run`` from the bridge's
own loop thread would park the only thread able to make progress, so it
raises :class:`~persistcall.exceptions.InvalidUsageError` instead.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
from typing import Any, Callable, Coroutine, Optional, TypeVar

from persistcall.exceptions import InvalidUsageError
from persistcall.models import FetchOutcome

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SyncBridge:
    """Runs coroutines on a private loop thread on behalf of blocking callers.

    Must be closed (or used as a context manager) to stop the loop thread.

    Example::

        with SyncBridge() as bridge:
            data = bridge.run(fetcher.fetch_bytes(url))
    """

    def __init__(self, name: str = "persistcall-bridge") -> None:
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run_loop, name=name, daemon=True)
        self._closed = False
        self._thread.start()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop

    @property
    def closed(self) -> bool:
        return self._closed

    def run(
        self,
        coro: Coroutine[Any, Any, T],
        timeout: Optional[float] = None,
    ) -> T:
        """Block until *coro* completes on the bridge loop and return its result.

        Args:
            coro: The coroutine to run.
            timeout: Seconds to wait before giving up.  ``None`` waits as
                long as the coroutine takes.

        Raises:
            InvalidUsageError: If called from the bridge's own loop thread
                or after :meth:`close`.
            TimeoutError: If *timeout* elapses; the coroutine is cancelled.
            Exception: Whatever *coro* raised.
        """
        future = self._schedule(coro, blocking=True)
        try:
            return future.result(timeout)
        except concurrent.futures.TimeoutError:
            future.cancel()
            raise

    def submit(
        self,
        coro: Coroutine[Any, Any, T],
        on_complete: Callable[[FetchOutcome[T]], None],
    ) -> concurrent.futures.Future[T]:
        """Schedule *coro* and call *on_complete* once it settles.

        *on_complete* runs on the bridge thread and receives a
        :class:`~persistcall.models.FetchOutcome` carrying either the value
        or the exception, including cancellation.  It is invoked exactly
        once.

        Returns:
            The :class:`concurrent.futures.Future` for the coroutine.
        """
        future = self._schedule(coro, blocking=False)

        def _settle(done: concurrent.futures.Future[T]) -> None:
            if done.cancelled():
                outcome: FetchOutcome[T] = FetchOutcome(error=concurrent.futures.CancelledError())
            elif done.exception() is not None:
                outcome = FetchOutcome(error=done.exception())
            else:
                outcome = FetchOutcome(value=done.result())
            on_complete(outcome)

        future.add_done_callback(_settle)
        return future

    def close(self) -> None:
        """Stop the loop and join its thread.  Safe to call twice."""
        if self._closed:
            return
        if threading.current_thread() is self._thread:
            raise InvalidUsageError("SyncBridge.close() called from its own loop thread")
        self._closed = True
        logger.debug("Stopping %s", self._thread.name)
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join()
        self._loop.run_until_complete(self._loop.shutdown_asyncgens())
        self._loop.close()

    def __enter__(self) -> SyncBridge:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _schedule(
        self,
        coro: Coroutine[Any, Any, T],
        blocking: bool,
    ) -> concurrent.futures.Future[T]:
        if self._closed:
            coro.close()
            raise InvalidUsageError("SyncBridge is closed")
        if blocking and threading.current_thread() is self._thread:
            coro.close()
            raise InvalidUsageError(
                "SyncBridge cannot block on its own loop thread; await the coroutine instead"
            )
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()
