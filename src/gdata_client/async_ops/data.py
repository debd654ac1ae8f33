"""Per-operation request state handed to async workers."""

from __future__ import annotations

import io
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from gdata_client.async_ops.context import AsyncOperation

if TYPE_CHECKING:
    from gdata_client.atom import AtomEntry, AtomFeed


@dataclass
class AsyncData:
    """State owned by one async operation until its completion is posted.

    Attributes:
        uri: Target URI.
        user_data: Caller-supplied token identifying the operation.
        http_verb: HTTP method used for the request.
        operation: Handle bound to the originating context, set on submit.
        report_progress: Whether progress events are wanted at all. Cleared
            on submit when the handler has no progress listener.
        parse: Parse the response into an Atom document instead of
            returning the raw stream.
        bytes_transferred: Highest byte offset reported so far. Offsets
            reported for one operation never go backwards.
        transfer_base: Bytes moved before the current phase; response
            offsets continue after the uploaded body.
    """

    uri: str
    user_data: Any
    http_verb: str = "GET"
    operation: AsyncOperation | None = None
    report_progress: bool = True
    parse: bool = False
    exception: BaseException | None = None
    feed: AtomFeed | None = None
    entry: AtomEntry | None = None
    data_stream: io.BytesIO | None = None
    bytes_transferred: int = 0
    transfer_base: int = 0


@dataclass
class AsyncQueryData(AsyncData):
    """Data for an async GET, optionally conditional on a timestamp."""

    modified_since: datetime | None = None


@dataclass
class AsyncSendData(AsyncData):
    """Data for an async upload (POST/PUT/DELETE).

    The server's answer is parsed into ``entry`` when ``parse`` is set.
    """

    payload: bytes | None = None
    content_type: str = "application/atom+xml"
    etag: str | None = None
