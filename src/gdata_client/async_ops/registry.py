"""Registry of in-flight async operations."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any

from gdata_client.async_ops.context import AsyncOperation
from gdata_client.async_ops.exceptions import DuplicateIdentifierError

logger = logging.getLogger(__name__)


class OperationRegistry:
    """Maps user_data tokens to in-flight operation handles.

    Presence in the registry is what "still running" means: an id that is
    missing has either completed or been cancelled. Every check-then-act
    sequence runs under one lock, so a cancellation racing a completion
    removes the id exactly once.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._operations: dict[Any, AsyncOperation] = {}

    def register(self, user_data: Any, operation: AsyncOperation) -> None:
        """Register an operation.

        Raises:
            DuplicateIdentifierError: If user_data is already in flight.
        """
        with self._lock:
            if user_data in self._operations:
                raise DuplicateIdentifierError(user_data)
            self._operations[user_data] = operation
        logger.debug(f"Registered operation {user_data!r}")

    def lookup(self, user_data: Any) -> AsyncOperation | None:
        """Get the handle for user_data, or None if it is no longer in flight."""
        with self._lock:
            return self._operations.get(user_data)

    def contains(self, user_data: Any) -> bool:
        with self._lock:
            return user_data in self._operations

    def remove(self, user_data: Any) -> AsyncOperation | None:
        """Remove user_data if present.

        Removing an absent id is a no-op: a racing cancellation or completion
        may already have taken it.

        Returns:
            The removed handle, or None.
        """
        with self._lock:
            operation = self._operations.pop(user_data, None)
        if operation is not None:
            logger.debug(f"Removed operation {user_data!r}")
        return operation

    def cancel(self, user_data: Any, deliver: Callable[[AsyncOperation], None]) -> bool:
        """Remove user_data and hand its operation to ``deliver``.

        ``deliver`` runs while the lock is held, so no completion can slip in
        between the removal and the cancellation event being posted.

        Returns:
            True if the operation was in flight, False otherwise.
        """
        with self._lock:
            operation = self._operations.pop(user_data, None)
            if operation is None:
                return False
            deliver(operation)
        logger.debug(f"Cancelled operation {user_data!r}")
        return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._operations)

    def __contains__(self, user_data: Any) -> bool:
        return self.contains(user_data)
