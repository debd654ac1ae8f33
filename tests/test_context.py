"""Tests for operation contexts and per-operation handles."""

import asyncio
import threading

import pytest

from gdata_client.async_ops import (
    AsyncOperation,
    LoopContext,
    OperationState,
    QueueContext,
    capture_context,
)


class TestQueueContext:
    """Test the explicitly drained context."""

    def test_callbacks_run_on_draining_thread(self):
        """Should run posted callbacks on the thread that drains the queue."""
        context = QueueContext()
        seen = []

        worker = threading.Thread(
            target=lambda: context.post(lambda s: seen.append((s, threading.current_thread())), "x")
        )
        worker.start()
        worker.join()

        assert seen == []
        assert context.pending == 1
        assert context.run_pending() == 1
        assert seen == [("x", threading.current_thread())]

    def test_callbacks_run_in_post_order(self):
        """Should preserve posting order."""
        context = QueueContext()
        seen = []
        for i in range(5):
            context.post(seen.append, i)
        context.run_pending()
        assert seen == [0, 1, 2, 3, 4]

    def test_run_pending_timeout_empty(self):
        """Should return 0 when nothing arrives before the timeout."""
        context = QueueContext()
        assert context.run_pending(timeout=0.01) == 0

    def test_run_until_complete(self):
        """Should pump callbacks until the predicate holds."""
        context = QueueContext()
        done = []

        def post_later():
            context.post(done.append, True)

        timer = threading.Timer(0.05, post_later)
        timer.start()
        assert context.run_until_complete(lambda: bool(done), timeout=5) is True
        timer.join()

    def test_run_until_complete_timeout(self):
        """Should give up after the timeout."""
        context = QueueContext()
        assert context.run_until_complete(lambda: False, timeout=0.05, poll_interval=0.01) is False


class TestLoopContext:
    """Test the asyncio-backed context."""

    def test_post_from_thread_runs_on_loop(self):
        """Should run callbacks on the event loop thread."""

        async def scenario():
            context = LoopContext()
            loop_thread = threading.current_thread()
            future = asyncio.get_running_loop().create_future()

            def callback(state):
                future.set_result((state, threading.current_thread()))

            worker = threading.Thread(target=context.post, args=(callback, "done"))
            worker.start()
            result = await asyncio.wait_for(future, timeout=5)
            worker.join()
            return result, loop_thread

        (state, thread), loop_thread = asyncio.run(scenario())
        assert state == "done"
        assert thread is loop_thread

    def test_capture_inside_loop(self):
        """Should capture a LoopContext from a running loop."""

        async def scenario():
            return capture_context()

        assert isinstance(asyncio.run(scenario()), LoopContext)

    def test_capture_outside_loop(self):
        """Should fall back to a QueueContext without a running loop."""
        assert isinstance(capture_context(), QueueContext)


class TestAsyncOperation:
    """Test the per-operation posting rules."""

    def test_post_while_pending(self):
        """Should forward posts while pending."""
        context = QueueContext()
        operation = AsyncOperation("op1", context)
        seen = []

        assert operation.post(seen.append, 1) is True
        context.run_pending()
        assert seen == [1]
        assert operation.state is OperationState.PENDING

    def test_completion_posted_once(self):
        """Should deliver only the first completion."""
        context = QueueContext()
        operation = AsyncOperation("op1", context)
        seen = []

        assert operation.post_operation_completed(seen.append, "first") is True
        assert operation.post_operation_completed(seen.append, "second") is False
        context.run_pending()

        assert seen == ["first"]
        assert operation.state is OperationState.REMOVED
        assert operation.outcome is OperationState.COMPLETED

    def test_post_after_completion_dropped(self):
        """Should drop progress posted after the completion."""
        context = QueueContext()
        operation = AsyncOperation("op1", context)
        seen = []

        operation.post_operation_completed(seen.append, "done", OperationState.CANCELLED)
        assert operation.post(seen.append, "late") is False
        context.run_pending()

        assert seen == ["done"]
        assert operation.outcome is OperationState.CANCELLED

    def test_invalid_outcome(self):
        """Should reject states that are not outcomes."""
        operation = AsyncOperation("op1", QueueContext())
        with pytest.raises(ValueError):
            operation.post_operation_completed(print, None, OperationState.PENDING)
        with pytest.raises(ValueError):
            operation.post_operation_completed(print, None, OperationState.REMOVED)

    def test_concurrent_completions(self):
        """Should deliver exactly one completion when many threads race."""
        context = QueueContext()
        operation = AsyncOperation("op1", context)
        barrier = threading.Barrier(8)
        seen = []

        def complete(i):
            barrier.wait()
            operation.post_operation_completed(seen.append, i)

        threads = [threading.Thread(target=complete, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        context.run_pending()

        assert len(seen) == 1
