"""Originating contexts and per-operation handles.

An async GData operation does its network I/O on a worker thread, but every
progress and completion callback has to run where the request was issued.
An ``OperationContext`` captures that place:

- ``QueueContext``: callbacks are queued and the originating thread runs them
  by draining the queue (``run_pending`` / ``run_until_complete``).
- ``LoopContext``: callbacks are scheduled on an asyncio event loop with
  ``call_soon_threadsafe``.

``AsyncOperation`` binds one ``user_data`` token to a context and makes sure
nothing is posted for it once its completion has been posted.
"""

from __future__ import annotations

import asyncio
import logging
import queue
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

Callback = Callable[[Any], None]


class OperationContext(ABC):
    """Where progress and completion callbacks are delivered."""

    @abstractmethod
    def post(self, callback: Callback, state: Any) -> None:
        """Schedule ``callback(state)`` on the originating context."""


class QueueContext(OperationContext):
    """Context drained explicitly by the thread that owns it.

    Example:
        >>> context = QueueContext()
        >>> service.query_feed_async(uri, "op1", context=context)
        >>> context.run_until_complete(lambda: done.is_set(), timeout=30)
    """

    def __init__(self) -> None:
        self._queue: queue.Queue[tuple[Callback, Any]] = queue.Queue()

    def post(self, callback: Callback, state: Any) -> None:
        self._queue.put((callback, state))

    @property
    def pending(self) -> int:
        """Number of callbacks waiting to run."""
        return self._queue.qsize()

    def run_pending(self, timeout: float | None = None) -> int:
        """Run every queued callback on the calling thread.

        Args:
            timeout: Seconds to wait for the first callback if the queue is
                empty. None means don't wait.

        Returns:
            Number of callbacks run.
        """
        count = 0
        if timeout is not None:
            try:
                callback, state = self._queue.get(timeout=timeout)
            except queue.Empty:
                return 0
            callback(state)
            count += 1

        while True:
            try:
                callback, state = self._queue.get_nowait()
            except queue.Empty:
                return count
            callback(state)
            count += 1

    def run_until_complete(
        self,
        done: Callable[[], bool],
        timeout: float | None = None,
        poll_interval: float = 0.05,
    ) -> bool:
        """Pump callbacks until ``done()`` is true.

        Args:
            done: Predicate checked after each batch of callbacks.
            timeout: Overall deadline in seconds, None to wait forever.
            poll_interval: How long to block waiting for each callback.

        Returns:
            True if ``done()`` became true, False on timeout.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while not done():
            if deadline is not None and time.monotonic() >= deadline:
                return False
            self.run_pending(timeout=poll_interval)
        return True


class LoopContext(OperationContext):
    """Context bound to an asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self.loop = loop or asyncio.get_running_loop()

    def post(self, callback: Callback, state: Any) -> None:
        self.loop.call_soon_threadsafe(callback, state)


def capture_context() -> OperationContext:
    """Capture the calling context.

    Returns a LoopContext when called from a running event loop, otherwise a
    fresh QueueContext the caller is expected to drain.
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return QueueContext()
    return LoopContext(loop)


class OperationState(str, Enum):
    """Lifecycle of an async operation. REMOVED is terminal."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REMOVED = "removed"


_OUTCOMES = frozenset({OperationState.COMPLETED, OperationState.FAILED, OperationState.CANCELLED})


class AsyncOperation:
    """Handle for one in-flight operation, keyed by its user_data token.

    Posting is serialized per operation so the completion callback is queued
    after every progress callback, and anything posted after it is dropped.
    """

    def __init__(self, user_data: Any, context: OperationContext):
        self.user_data = user_data
        self.context = context
        self.state = OperationState.PENDING
        self.outcome: OperationState | None = None
        self._lock = threading.Lock()

    @property
    def completed(self) -> bool:
        return self.state is not OperationState.PENDING

    def post(self, callback: Callback, state: Any) -> bool:
        """Post a progress-style callback.

        Returns:
            False if the operation already posted its completion.
        """
        with self._lock:
            if self.completed:
                logger.debug(f"Dropping post for completed operation {self.user_data!r}")
                return False
            self.context.post(callback, state)
            return True

    def post_operation_completed(
        self,
        callback: Callback,
        state: Any,
        outcome: OperationState = OperationState.COMPLETED,
    ) -> bool:
        """Post the completion callback. Only the first call is delivered.

        Args:
            callback: Completion callback.
            state: Event passed to the callback.
            outcome: COMPLETED, FAILED or CANCELLED.

        Returns:
            True if this call delivered the completion.
        """
        if outcome not in _OUTCOMES:
            raise ValueError(f"Not a completion outcome: {outcome}")
        with self._lock:
            if self.completed:
                return False
            self.state = outcome
            self.outcome = outcome
            self.context.post(callback, state)
            self.state = OperationState.REMOVED
            return True

    def __repr__(self) -> str:
        return f"AsyncOperation(user_data={self.user_data!r}, state={self.state.value})"
