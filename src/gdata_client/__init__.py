"""GData client with cancellable async operations and progress reporting."""

from gdata_client.async_ops import (
    AsyncOperationCompletedEvent,
    AsyncOperationProgressEvent,
    LoopContext,
    QueueContext,
)
from gdata_client.service import GDataService

__version__ = "0.1.0"

__all__ = [
    "GDataService",
    "QueueContext",
    "LoopContext",
    "AsyncOperationCompletedEvent",
    "AsyncOperationProgressEvent",
]
