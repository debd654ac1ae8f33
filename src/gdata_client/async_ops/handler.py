"""Async operation lifecycle: submission, progress, completion and cancellation.

``AsyncDataHandler`` is the base of every service that offers ``*_async``
methods. A submitted operation is registered under its ``user_data`` token,
runs on its own worker thread, and reports back through listeners that are
always invoked on the context the request came from.

Example:
    >>> handler = GDataService("cl", "my-app")
    >>> handler.add_progress_listener(lambda h, e: print(e.percentage))
    >>> handler.add_completed_listener(on_done)
    >>> context = QueueContext()
    >>> handler.query_stream_async(uri, "op1", context=context)
    >>> context.run_until_complete(lambda: finished, timeout=60)
"""

from __future__ import annotations

import io
import logging
import threading
from collections.abc import Callable
from typing import Any, BinaryIO, Protocol

from gdata_client.async_ops.context import (
    AsyncOperation,
    OperationContext,
    OperationState,
    capture_context,
)
from gdata_client.async_ops.data import AsyncData
from gdata_client.async_ops.events import (
    AsyncOperationCompletedEvent,
    AsyncOperationProgressEvent,
)
from gdata_client.async_ops.exceptions import OperationCancelledError
from gdata_client.async_ops.registry import OperationRegistry
from gdata_client.atom import AtomFeed
from gdata_client.config import CHUNK_SIZE

logger = logging.getLogger(__name__)

CompletedListener = Callable[["AsyncDataHandler", AsyncOperationCompletedEvent], None]
ProgressListener = Callable[["AsyncDataHandler", AsyncOperationProgressEvent], None]


class ReadableStream(Protocol):
    def read(self, size: int = -1) -> bytes: ...


class AsyncDataHandler:
    """Bookkeeping for cancellable async operations.

    Args:
        registry: Registry of in-flight operations. Handlers that share a
            registry share the uniqueness of user_data tokens.
        chunk_size: Bytes moved per copy iteration; cancellation is checked
            once per chunk.
    """

    def __init__(
        self,
        registry: OperationRegistry | None = None,
        chunk_size: int = CHUNK_SIZE,
    ):
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        self.registry = registry if registry is not None else OperationRegistry()
        self.chunk_size = chunk_size
        self._completed_listeners: list[CompletedListener] = []
        self._progress_listeners: list[ProgressListener] = []

    # =========================================================================
    # Listeners
    # =========================================================================

    def add_completed_listener(self, listener: CompletedListener) -> None:
        self._completed_listeners.append(listener)

    def remove_completed_listener(self, listener: CompletedListener) -> None:
        self._completed_listeners.remove(listener)

    def add_progress_listener(self, listener: ProgressListener) -> None:
        self._progress_listeners.append(listener)

    def remove_progress_listener(self, listener: ProgressListener) -> None:
        self._progress_listeners.remove(listener)

    # These two run on the originating context, posted there by AsyncOperation.
    def _on_progress(self, event: AsyncOperationProgressEvent) -> None:
        for listener in list(self._progress_listeners):
            listener(self, event)

    def _on_completed(self, event: AsyncOperationCompletedEvent) -> None:
        for listener in list(self._completed_listeners):
            listener(self, event)

    # =========================================================================
    # Registration and submission
    # =========================================================================

    def register_operation(
        self,
        user_data: Any,
        context: OperationContext | None = None,
    ) -> AsyncOperation:
        """Create and register the handle for a new operation.

        Raises:
            DuplicateIdentifierError: If user_data is already in flight.
        """
        operation = AsyncOperation(user_data, context or capture_context())
        self.registry.register(user_data, operation)
        return operation

    def submit(
        self,
        data: AsyncData,
        work: Callable[[AsyncData], None],
        context: OperationContext | None = None,
    ) -> Any:
        """Register an operation and start its worker thread.

        Args:
            data: Request state; ``data.user_data`` is the operation id.
            work: Runs on the worker thread and fills in the results on data.
                Exceptions it raises become the completion error.
            context: Where events are delivered. Captured from the caller
                when omitted.

        Returns:
            The operation id (data.user_data).

        Raises:
            DuplicateIdentifierError: If data.user_data is already in flight.
                Nothing is registered in that case.
        """
        # nobody would receive the events
        data.report_progress = data.report_progress and bool(self._progress_listeners)
        data.operation = self.register_operation(data.user_data, context)
        worker = threading.Thread(
            target=self._run_worker,
            args=(data, work),
            name=f"gdata-async-{data.user_data!r}",
            daemon=True,
        )
        try:
            worker.start()
        except RuntimeError:
            self.registry.remove(data.user_data)
            raise
        logger.debug(f"Started {data.http_verb} {data.uri} as {data.user_data!r}")
        return data.user_data

    def _run_worker(self, data: AsyncData, work: Callable[[AsyncData], None]) -> None:
        # every failure ends up on the completion event
        try:
            work(data)
        except OperationCancelledError:
            logger.debug(f"Operation {data.user_data!r} stopped after cancellation")
            self.cancel_async(data.user_data)
            return
        except Exception as e:
            logger.debug(f"Operation {data.user_data!r} failed: {e}")
            data.exception = e
        self.complete(data)

    # =========================================================================
    # Progress, completion and cancellation
    # =========================================================================

    def is_cancelled(self, user_data: Any) -> bool:
        """True once user_data is no longer registered (cancelled or done)."""
        return not self.registry.contains(user_data)

    def send_progress_data(self, data: AsyncData, event: AsyncOperationProgressEvent) -> bool:
        """Deliver a progress event unless the operation was cancelled.

        Returns:
            False if the operation is gone; the caller should stop its work.
        """
        if self.is_cancelled(data.user_data):
            return False
        if data.operation is None:
            return False
        return data.operation.post(self._on_progress, event)

    def complete(self, data: AsyncData) -> bool:
        """Deliver the completion event for a finished operation.

        Suppressed if the operation was already cancelled or completed.

        Returns:
            True if the completion was delivered.
        """
        operation = self.registry.remove(data.user_data)
        if operation is None:
            logger.debug(f"Operation {data.user_data!r} already finished, suppressing completion")
            return False

        outcome = OperationState.FAILED if data.exception is not None else OperationState.COMPLETED
        return operation.post_operation_completed(
            self._on_completed,
            AsyncOperationCompletedEvent.from_data(data),
            outcome,
        )

    def cancel_async(self, user_data: Any) -> bool:
        """Cancel an in-flight operation.

        A completion event with ``cancelled=True`` is posted to the
        operation's context; it arrives later, not during this call.
        Cancelling an operation that already finished does nothing.

        Returns:
            True if the operation was still in flight.
        """

        def deliver(operation: AsyncOperation) -> None:
            operation.post_operation_completed(
                self._on_completed,
                AsyncOperationCompletedEvent.cancellation(user_data),
                OperationState.CANCELLED,
            )

        cancelled = self.registry.cancel(user_data, deliver)
        if not cancelled:
            logger.debug(f"Cancel ignored, {user_data!r} is not in flight")
        return cancelled

    # =========================================================================
    # Response handling
    # =========================================================================

    def handle_response_stream(
        self,
        data: AsyncData,
        response_stream: ReadableStream | BinaryIO | None,
        content_length: int | None,
        parser: Callable[[bytes, str], Any] | None = None,
    ) -> None:
        """Copy the response into memory and optionally parse it.

        Args:
            data: Operation state; results are stored on it.
            response_stream: Source stream, may be None.
            content_length: Declared length, None if unknown.
            parser: Called as ``parser(raw_bytes, uri)`` when ``data.parse``
                is set.
        """
        data.data_stream = self.copy_response_to_memory(data, response_stream, content_length)
        if not data.parse or parser is None or data.data_stream is None:
            return

        document = parser(data.data_stream.getvalue(), data.uri)
        if isinstance(document, AtomFeed):
            data.feed = document
        else:
            data.entry = document
        data.data_stream = None

    def copy_response_to_memory(
        self,
        data: AsyncData | None,
        response_stream: ReadableStream | BinaryIO | None,
        content_length: int | None,
    ) -> io.BytesIO | None:
        """Copy a stream into a BytesIO chunk by chunk.

        Progress is reported after each chunk. When the declared length fits
        in a single chunk there is nothing meaningful to report, so only the
        cancellation check runs.

        Raises:
            OperationCancelledError: If the operation was cancelled mid-copy.

        Returns:
            The buffer rewound to position 0, or None for a None stream.
        """
        if response_stream is None:
            return None

        buffer = io.BytesIO()
        size = self.chunk_size
        bytes_written = 0
        if data is not None:
            data.transfer_base = data.bytes_transferred

        while True:
            chunk = response_stream.read(size)
            if not chunk:
                break
            buffer.write(chunk)

            if data is None or not data.report_progress:
                continue

            bytes_written += len(chunk)
            self.report_transfer_progress(data, bytes_written, content_length)

        buffer.seek(0)
        return buffer

    def report_transfer_progress(
        self,
        data: AsyncData,
        position: int,
        total: int | None,
    ) -> None:
        """Report one transferred chunk, used for downloads and uploads.

        Positions and totals are shifted by ``data.transfer_base`` so a
        response continues where the upload stopped. Positions at or below
        one already reported (a retried upload) only check cancellation.
        No event is sent when the total is known to fit in one chunk, and the
        percentage is 0 when the total is unknown.

        Raises:
            OperationCancelledError: If the operation is no longer registered.
        """
        if total is not None and total <= self.chunk_size:
            if self.is_cancelled(data.user_data):
                raise OperationCancelledError(data.user_data)
            return

        position += data.transfer_base
        if total is not None:
            total += data.transfer_base
        if position <= data.bytes_transferred:
            if self.is_cancelled(data.user_data):
                raise OperationCancelledError(data.user_data)
            return
        data.bytes_transferred = position

        percentage = 0
        if total is not None:
            percentage = int(position * 100 / total)

        event = AsyncOperationProgressEvent(
            complete_size=total,
            position=position,
            percentage=percentage,
            uri=data.uri,
            http_verb=data.http_verb,
            user_data=data.user_data,
        )
        if not self.send_progress_data(data, event):
            raise OperationCancelledError(data.user_data)
