"""Tests for the in-flight operation registry."""

import threading

import pytest

from gdata_client.async_ops import (
    AsyncOperation,
    DuplicateIdentifierError,
    OperationRegistry,
    QueueContext,
)


def make_operation(user_data):
    return AsyncOperation(user_data, QueueContext())


class TestRegistration:
    """Test register/lookup/remove."""

    def test_register_and_lookup(self):
        """Should find a registered operation by its id."""
        registry = OperationRegistry()
        operation = make_operation("op1")
        registry.register("op1", operation)

        assert registry.lookup("op1") is operation
        assert registry.contains("op1")
        assert "op1" in registry
        assert len(registry) == 1

    def test_lookup_missing(self):
        """Should return None for an unknown id."""
        registry = OperationRegistry()
        assert registry.lookup("nope") is None
        assert not registry.contains("nope")

    def test_duplicate_id_rejected(self):
        """Should reject a second registration while the first is in flight."""
        registry = OperationRegistry()
        first = make_operation("op1")
        registry.register("op1", first)

        with pytest.raises(DuplicateIdentifierError) as exc_info:
            registry.register("op1", make_operation("op1"))

        assert exc_info.value.user_data == "op1"
        assert registry.lookup("op1") is first

    def test_duplicate_is_value_error(self):
        """Should be catchable as ValueError."""
        registry = OperationRegistry()
        registry.register(1, make_operation(1))
        with pytest.raises(ValueError, match="unique"):
            registry.register(1, make_operation(1))

    def test_id_reusable_after_remove(self):
        """Should accept an id again once it was removed."""
        registry = OperationRegistry()
        registry.register("op1", make_operation("op1"))
        registry.remove("op1")
        registry.register("op1", make_operation("op1"))
        assert "op1" in registry

    def test_remove_absent_is_noop(self):
        """Should return None when removing an id that is not there."""
        registry = OperationRegistry()
        assert registry.remove("op1") is None

    def test_remove_returns_handle(self):
        """Should return the removed handle exactly once."""
        registry = OperationRegistry()
        operation = make_operation("op1")
        registry.register("op1", operation)

        assert registry.remove("op1") is operation
        assert registry.remove("op1") is None
        assert len(registry) == 0

    def test_arbitrary_hashable_ids(self):
        """Should accept any hashable object as an id."""
        registry = OperationRegistry()
        key = ("calendar", 42)
        registry.register(key, make_operation(key))
        assert registry.contains(("calendar", 42))


class TestCancel:
    """Test cancellation bookkeeping."""

    def test_cancel_delivers_under_lock(self):
        """Should remove the id and hand the operation to deliver."""
        registry = OperationRegistry()
        operation = make_operation("op1")
        registry.register("op1", operation)
        delivered = []

        assert registry.cancel("op1", delivered.append) is True
        assert delivered == [operation]
        assert "op1" not in registry

    def test_cancel_unknown_id(self):
        """Should do nothing for an id that is not in flight."""
        registry = OperationRegistry()
        delivered = []

        assert registry.cancel("op1", delivered.append) is False
        assert delivered == []

    def test_cancel_twice(self):
        """Should only deliver the first cancellation."""
        registry = OperationRegistry()
        registry.register("op1", make_operation("op1"))
        delivered = []

        registry.cancel("op1", delivered.append)
        registry.cancel("op1", delivered.append)
        assert len(delivered) == 1

    def test_cancel_races_remove(self):
        """Should let exactly one of cancel and remove take the id."""
        for _ in range(200):
            registry = OperationRegistry()
            registry.register("op1", make_operation("op1"))
            barrier = threading.Barrier(2)
            results = {}

            def cancel():
                barrier.wait()
                results["cancel"] = registry.cancel("op1", lambda op: None)

            def remove():
                barrier.wait()
                results["remove"] = registry.remove("op1") is not None

            threads = [threading.Thread(target=cancel), threading.Thread(target=remove)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

            assert results["cancel"] != results["remove"]
