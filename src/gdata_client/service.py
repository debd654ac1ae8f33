"""GData service: synchronous calls and cancellable async operations.

Example:
    >>> service = GDataService("cl", "my-app", authenticator=auth)
    >>> feed = service.query("https://www.google.com/calendar/feeds/default/private/full")

    >>> context = QueueContext()
    >>> service.add_completed_listener(on_completed)
    >>> service.query_feed_async(uri, "calendar-sync", context=context)
    >>> context.run_until_complete(lambda: finished, timeout=60)
"""

from __future__ import annotations

import io
import logging
from collections.abc import Iterator
from datetime import datetime
from typing import Any

from gdata_client.async_ops import (
    AsyncDataHandler,
    AsyncQueryData,
    AsyncSendData,
    OperationContext,
    OperationRegistry,
)
from gdata_client.atom import AtomEntry, AtomFeed, parse_document, parse_entry, parse_feed
from gdata_client.auth import Authenticator
from gdata_client.config import APPLICATION_NAME
from gdata_client.request import ATOM_CONTENT_TYPE, GDataRequestFactory

logger = logging.getLogger(__name__)


class GDataService(AsyncDataHandler):
    """Client for one GData service.

    Args:
        service_name: GData service code (e.g., "cl", "cp", "structuredcontent").
        application_name: Name of the calling application.
        authenticator: Signs requests. None for public feeds.
        factory: Pre-built request factory; overrides the options below.
        registry: Registry of in-flight async operations.
        **factory_options: Passed to GDataRequestFactory
            (protocol_major, number_of_retries, method_override, client, ...).
    """

    def __init__(
        self,
        service_name: str,
        application_name: str = APPLICATION_NAME,
        authenticator: Authenticator | None = None,
        factory: GDataRequestFactory | None = None,
        registry: OperationRegistry | None = None,
        **factory_options: Any,
    ):
        self.factory = factory or GDataRequestFactory(
            service_name,
            application_name,
            authenticator=authenticator,
            **factory_options,
        )
        super().__init__(registry=registry, chunk_size=self.factory.chunk_size)
        self.service_name = service_name

    @property
    def authenticator(self) -> Authenticator | None:
        return self.factory.authenticator

    def close(self):
        """Close the HTTP client."""
        self.factory.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    # =========================================================================
    # Synchronous operations
    # =========================================================================

    def query_stream(self, uri: str, modified_since: datetime | None = None) -> io.BytesIO:
        """GET a resource and return the raw body.

        Raises:
            GDataNotModifiedError: If modified_since is set and nothing changed.
        """
        with self.factory.create_request("GET", uri) as request:
            request.if_modified_since = modified_since
            request.execute()
            return self.copy_response_to_memory(
                None, request.get_response_stream(), request.content_length
            )

    def query(self, uri: str, modified_since: datetime | None = None) -> AtomFeed:
        """GET a feed."""
        with self.factory.create_request("GET", uri) as request:
            request.if_modified_since = modified_since
            request.execute()
            return parse_feed(request.read(), uri)

    def get_entry(self, uri: str) -> AtomEntry:
        """GET a single entry."""
        with self.factory.create_request("GET", uri) as request:
            request.execute()
            return parse_entry(request.read(), uri)

    def iter_entries(self, uri: str) -> Iterator[AtomEntry]:
        """Yield entries from a feed, following its next links."""
        next_uri: str | None = uri
        while next_uri:
            feed = self.query(next_uri)
            yield from feed.entries
            next_uri = feed.next_uri

    def insert(self, uri: str, entry: AtomEntry) -> AtomEntry:
        """POST a new entry to a feed and return the stored entry."""
        with self.factory.create_request("POST", uri) as request:
            request.set_content(entry.to_xml())
            request.execute()
            return parse_entry(request.read(), uri)

    def update(self, entry: AtomEntry, uri: str | None = None) -> AtomEntry:
        """PUT an entry back to its edit link.

        Raises:
            ValueError: If no uri is given and the entry has no edit link.
        """
        target = uri or entry.edit_uri
        if not target:
            raise ValueError("Entry has no edit link, pass uri explicitly")
        with self.factory.create_request("PUT", target) as request:
            request.set_content(entry.to_xml())
            request.etag = entry.etag
            request.execute()
            return parse_entry(request.read(), target)

    def delete(self, uri: str, etag: str | None = None) -> None:
        """DELETE an entry. Without an etag the delete is unconditional."""
        with self.factory.create_request("DELETE", uri) as request:
            request.etag = etag or "*"
            request.execute()

    # =========================================================================
    # Async operations
    # =========================================================================

    def query_feed_async(
        self,
        uri: str,
        user_data: Any,
        modified_since: datetime | None = None,
        context: OperationContext | None = None,
    ) -> Any:
        """Download and parse a feed on a worker thread.

        The completion event carries the parsed ``feed``.

        Raises:
            DuplicateIdentifierError: If user_data is already in flight.
        """
        data = AsyncQueryData(uri, user_data, parse=True, modified_since=modified_since)
        return self.submit(data, self._query_worker, context)

    def query_stream_async(
        self,
        uri: str,
        user_data: Any,
        modified_since: datetime | None = None,
        context: OperationContext | None = None,
    ) -> Any:
        """Download a resource on a worker thread.

        The completion event carries the raw ``response_stream``.
        """
        data = AsyncQueryData(uri, user_data, parse=False, modified_since=modified_since)
        return self.submit(data, self._query_worker, context)

    def insert_async(
        self,
        uri: str,
        entry: AtomEntry,
        user_data: Any,
        context: OperationContext | None = None,
    ) -> Any:
        """POST an entry on a worker thread; completion carries the new ``entry``."""
        return self.stream_send_async(
            uri, entry.to_xml(), user_data, http_verb="POST", parse=True, context=context
        )

    def update_async(
        self,
        entry: AtomEntry,
        user_data: Any,
        uri: str | None = None,
        context: OperationContext | None = None,
    ) -> Any:
        """PUT an entry on a worker thread; completion carries the stored ``entry``."""
        target = uri or entry.edit_uri
        if not target:
            raise ValueError("Entry has no edit link, pass uri explicitly")
        return self.stream_send_async(
            target,
            entry.to_xml(),
            user_data,
            http_verb="PUT",
            parse=True,
            etag=entry.etag,
            context=context,
        )

    def delete_async(
        self,
        uri: str,
        user_data: Any,
        etag: str | None = None,
        context: OperationContext | None = None,
    ) -> Any:
        """DELETE on a worker thread."""
        data = AsyncSendData(uri, user_data, http_verb="DELETE", etag=etag or "*")
        return self.submit(data, self._send_worker, context)

    def stream_send_async(
        self,
        uri: str,
        payload: bytes,
        user_data: Any,
        http_verb: str = "POST",
        content_type: str = ATOM_CONTENT_TYPE,
        parse: bool = False,
        etag: str | None = None,
        context: OperationContext | None = None,
    ) -> Any:
        """Upload a payload on a worker thread, reporting upload progress.

        Args:
            uri: Target URI.
            payload: Request body.
            user_data: Operation id.
            http_verb: POST or PUT.
            content_type: Content-Type of the payload.
            parse: Parse the response into an Atom entry.
            etag: If-Match value for PUT.
            context: Where events are delivered.
        """
        data = AsyncSendData(
            uri,
            user_data,
            http_verb=http_verb.upper(),
            parse=parse,
            payload=payload,
            content_type=content_type,
            etag=etag,
        )
        return self.submit(data, self._send_worker, context)

    def _query_worker(self, data: AsyncQueryData) -> None:
        with self.factory.create_request("GET", data.uri, async_data=data, handler=self) as request:
            request.if_modified_since = data.modified_since
            request.execute()
            self.handle_response_stream(
                data, request.get_response_stream(), request.content_length, parse_document
            )

    def _send_worker(self, data: AsyncSendData) -> None:
        with self.factory.create_request(
            data.http_verb, data.uri, async_data=data, handler=self
        ) as request:
            if data.payload is not None:
                request.set_content(data.payload, data.content_type)
            request.etag = data.etag
            request.execute()
            self.handle_response_stream(
                data, request.get_response_stream(), request.content_length, parse_document
            )
