"""Cancellable async operations with progress reporting."""

from gdata_client.async_ops.context import (
    AsyncOperation,
    LoopContext,
    OperationContext,
    OperationState,
    QueueContext,
    capture_context,
)
from gdata_client.async_ops.data import AsyncData, AsyncQueryData, AsyncSendData
from gdata_client.async_ops.events import (
    AsyncOperationCompletedEvent,
    AsyncOperationProgressEvent,
)
from gdata_client.async_ops.exceptions import (
    AsyncOperationError,
    DuplicateIdentifierError,
    OperationCancelledError,
)
from gdata_client.async_ops.handler import AsyncDataHandler
from gdata_client.async_ops.registry import OperationRegistry

__all__ = [
    "AsyncDataHandler",
    "OperationRegistry",
    "AsyncOperation",
    "OperationContext",
    "OperationState",
    "QueueContext",
    "LoopContext",
    "capture_context",
    "AsyncData",
    "AsyncQueryData",
    "AsyncSendData",
    "AsyncOperationCompletedEvent",
    "AsyncOperationProgressEvent",
    "AsyncOperationError",
    "DuplicateIdentifierError",
    "OperationCancelledError",
]
