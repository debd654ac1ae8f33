"""Event payloads delivered to async operation listeners."""

from __future__ import annotations

import io
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from gdata_client.async_ops.data import AsyncData
    from gdata_client.atom import AtomEntry, AtomFeed


@dataclass(frozen=True)
class AsyncOperationCompletedEvent:
    """Final event of an operation.

    Exactly one of feed, entry and response_stream is normally set on
    success. A cancelled operation carries none of them and no error.
    """

    user_data: Any
    cancelled: bool = False
    error: BaseException | None = None
    feed: AtomFeed | None = None
    entry: AtomEntry | None = None
    response_stream: io.BytesIO | None = None

    @property
    def succeeded(self) -> bool:
        return not self.cancelled and self.error is None

    @classmethod
    def from_data(cls, data: AsyncData) -> AsyncOperationCompletedEvent:
        return cls(
            user_data=data.user_data,
            cancelled=False,
            error=data.exception,
            feed=data.feed,
            entry=data.entry,
            response_stream=data.data_stream,
        )

    @classmethod
    def cancellation(cls, user_data: Any) -> AsyncOperationCompletedEvent:
        return cls(user_data=user_data, cancelled=True)


@dataclass(frozen=True)
class AsyncOperationProgressEvent:
    """Progress report for an upload or download.

    complete_size is None or 0 when the total is unknown; percentage is 0
    whenever it cannot be computed.
    """

    complete_size: int | None
    position: int
    percentage: int
    uri: str
    http_verb: str
    user_data: Any
