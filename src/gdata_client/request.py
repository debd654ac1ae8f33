"""GData HTTP requests on top of httpx.

``GDataRequestFactory`` holds the settings shared by every request to one
service (protocol version, retries, authentication) and the httpx client.
``GDataRequest`` is a single request/response exchange with the GData
error handling rules:

- redirects are followed by hand so the Authorization header survives
- a 403 re-authenticates once and retries
- 5xx and transport errors are retried up to ``number_of_retries`` times
- 304 on a conditional query raises GDataNotModifiedError
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import TYPE_CHECKING

import httpx

from gdata_client.auth import Authenticator
from gdata_client.config import (
    APPLICATION_NAME,
    CHUNK_SIZE,
    DEFAULT_PROTOCOL_MAJOR,
    DEFAULT_PROTOCOL_MINOR,
    DEFAULT_RETRIES,
    DEFAULT_TIMEOUT,
)
from gdata_client.exceptions import (
    GDataForbiddenError,
    GDataNotModifiedError,
    GDataRedirectError,
    GDataRequestError,
)

if TYPE_CHECKING:
    from gdata_client.async_ops import AsyncData, AsyncDataHandler

logger = logging.getLogger(__name__)

ATOM_CONTENT_TYPE = "application/atom+xml"
GDATA_VERSION_HEADER = "GData-Version"
METHOD_OVERRIDE_HEADER = "X-HTTP-Method-Override"
USER_AGENT_SUFFIX = "GDataPython/1.0"
MAX_REDIRECTS = 5

_REDIRECT_CODES = {301, 302, 303, 307, 308}


class ResponseStream:
    """Readable view of a streamed httpx response.

    Gives the copy loop a ``read(size)`` interface over
    ``Response.iter_bytes``.
    """

    def __init__(self, response: httpx.Response, chunk_size: int = CHUNK_SIZE):
        self._response = response
        self._chunks = response.iter_bytes(chunk_size)
        self._buffer = b""

    def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            data = self._buffer + b"".join(self._chunks)
            self._buffer = b""
            return data

        while len(self._buffer) < size:
            try:
                self._buffer += next(self._chunks)
            except StopIteration:
                break

        data, self._buffer = self._buffer[:size], self._buffer[size:]
        return data

    def close(self) -> None:
        self._response.close()


class UploadStream:
    """Request body sent in chunks, reporting each chunk after it is handed off."""

    def __init__(
        self,
        content: bytes,
        chunk_size: int,
        on_chunk: Callable[[int, int], None],
    ):
        self._content = content
        self._chunk_size = chunk_size
        self._on_chunk = on_chunk

    def __iter__(self) -> Iterator[bytes]:
        total = len(self._content)
        for offset in range(0, total, self._chunk_size):
            chunk = self._content[offset : offset + self._chunk_size]
            yield chunk
            self._on_chunk(offset + len(chunk), total)


class GDataRequestFactory:
    """Creates requests for one GData service.

    Example:
        >>> with GDataRequestFactory("cl", "my-app", authenticator=auth) as factory:
        ...     with factory.create_request("GET", uri) as request:
        ...         request.execute()
        ...         body = request.read()
    """

    def __init__(
        self,
        service: str,
        application_name: str = APPLICATION_NAME,
        authenticator: Authenticator | None = None,
        protocol_major: int = DEFAULT_PROTOCOL_MAJOR,
        protocol_minor: int = DEFAULT_PROTOCOL_MINOR,
        number_of_retries: int = DEFAULT_RETRIES,
        method_override: bool = False,
        strict_redirect: bool = True,
        timeout: float = DEFAULT_TIMEOUT,
        chunk_size: int = CHUNK_SIZE,
        client: httpx.Client | None = None,
    ):
        """Initialize the factory.

        Args:
            service: GData service code (e.g., "cl").
            application_name: Sent in the User-Agent.
            authenticator: Signs each request. None for public feeds.
            protocol_major: Major GData protocol version sent in GData-Version.
            protocol_minor: Minor GData protocol version.
            number_of_retries: Retries for 5xx and transport errors.
            method_override: Tunnel PUT/DELETE/PATCH through POST.
            strict_redirect: Only follow redirects for GET.
            timeout: httpx timeout in seconds.
            chunk_size: Upload/download chunk size.
            client: httpx client to use. Must not follow redirects itself.
        """
        self.service = service
        self.application_name = application_name
        self.authenticator = authenticator
        self.protocol_major = protocol_major
        self.protocol_minor = protocol_minor
        self.number_of_retries = number_of_retries
        self.method_override = method_override
        self.strict_redirect = strict_redirect
        self.chunk_size = chunk_size
        self._client = client or httpx.Client(timeout=timeout, follow_redirects=False)

    @property
    def client(self) -> httpx.Client:
        return self._client

    @property
    def user_agent(self) -> str:
        return f"{self.application_name} {USER_AGENT_SUFFIX}"

    @property
    def protocol_version(self) -> str:
        return f"{self.protocol_major}.{self.protocol_minor}"

    def create_request(
        self,
        method: str,
        uri: str,
        async_data: AsyncData | None = None,
        handler: AsyncDataHandler | None = None,
    ) -> GDataRequest:
        return GDataRequest(method, uri, self, async_data=async_data, handler=handler)

    def close(self):
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


class GDataRequest:
    """One GData request/response exchange.

    Bind ``async_data`` and ``handler`` to report upload progress and stop
    the upload when the async operation is cancelled.
    """

    def __init__(
        self,
        method: str,
        uri: str,
        factory: GDataRequestFactory,
        async_data: AsyncData | None = None,
        handler: AsyncDataHandler | None = None,
    ):
        self.method = method.upper()
        self.target_uri = uri
        self.factory = factory
        self.async_data = async_data
        self.handler = handler
        self.content: bytes | None = None
        self.content_type = ATOM_CONTENT_TYPE
        self.if_modified_since: datetime | None = None
        self.etag: str | None = None
        self.headers: dict[str, str] = {}
        self.response: httpx.Response | None = None
        self.response_version: str | None = None

    def set_content(self, content: bytes, content_type: str = ATOM_CONTENT_TYPE) -> None:
        """Set the request body."""
        self.content = content
        self.content_type = content_type

    @property
    def content_length(self) -> int | None:
        """Declared Content-Length of the response, None if unknown.

        A compressed body declares its encoded size while the stream yields
        decoded bytes, so the length counts as unknown then.
        """
        if self.response is None:
            return None
        if self.response.headers.get("Content-Encoding", "identity").lower() != "identity":
            return None
        value = self.response.headers.get("Content-Length")
        if value is None or not value.isdigit():
            return None
        return int(value)

    def _build_headers(self, method: str) -> dict[str, str]:
        headers = {
            "User-Agent": self.factory.user_agent,
            GDATA_VERSION_HEADER: self.factory.protocol_version,
            **self.headers,
        }
        if self.if_modified_since is not None:
            modified = self.if_modified_since
            if modified.tzinfo is None:
                modified = modified.replace(tzinfo=timezone.utc)
            headers["If-Modified-Since"] = format_datetime(modified, usegmt=True)
        if self.etag is not None and self.method in ("PUT", "PATCH", "DELETE"):
            headers["If-Match"] = self.etag
        if self.content is not None:
            headers["Content-Type"] = self.content_type
        if method != self.method:
            headers[METHOD_OVERRIDE_HEADER] = self.method
        return headers

    def _wire_method(self) -> str:
        if self.factory.method_override and self.method not in ("GET", "POST"):
            return "POST"
        return self.method

    def _report_upload(self, position: int, total: int) -> None:
        self.handler.report_transfer_progress(self.async_data, position, total)

    def _send_once(self) -> httpx.Response:
        authenticator = self.factory.authenticator
        uri = self.target_uri
        if authenticator is not None:
            uri = authenticator.apply_to_uri(uri)

        method = self._wire_method()
        content = self.content
        if method == "POST" and self.method == "DELETE" and content is None:
            content = b""

        headers = self._build_headers(method)
        tracking = (
            bool(self.content)
            and self.async_data is not None
            and self.handler is not None
            and self.async_data.report_progress
        )
        if tracking:
            # Content-Length keeps httpx from switching to chunked encoding
            headers["Content-Length"] = str(len(self.content))
            content = UploadStream(self.content, self.factory.chunk_size, self._report_upload)

        client = self.factory.client
        request = client.build_request(method, uri, headers=headers, content=content)
        if authenticator is not None:
            authenticator.apply(request)

        try:
            response = client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise GDataRequestError(f"{self.method} {uri} failed: {e}") from e

        status = response.status_code
        if status in _REDIRECT_CODES:
            location = response.headers.get("Location", "")
            response.close()
            raise GDataRedirectError(location, status_code=status)
        if status == 304:
            response.close()
            raise GDataNotModifiedError(self.target_uri)
        if status >= 400:
            response.read()
            text = response.text
            response.close()
            if status == 403:
                raise GDataForbiddenError(f"{self.method} {uri} forbidden", status, text)
            raise GDataRequestError(f"{self.method} {uri} failed with {status}", status, text)

        return response

    def execute(self) -> httpx.Response:
        """Send the request, applying the redirect, re-auth and retry rules.

        Returns:
            The streamed response. Read it with ``get_response_stream`` or
            ``read``.

        Raises:
            GDataRequestError: If the service answers with an error.
        """
        attempt = 1
        redirects = 0
        reauthenticated = False

        while True:
            try:
                self.response = self._send_once()
                self.response_version = self.response.headers.get(GDATA_VERSION_HEADER)
                return self.response
            except GDataForbiddenError:
                if reauthenticated or self.factory.authenticator is None:
                    raise
                logger.info("Got 403 Forbidden, re-authenticating once")
                self.factory.authenticator.reset()
                reauthenticated = True
            except GDataRedirectError as e:
                if self.factory.strict_redirect and self.method != "GET":
                    raise
                if not e.location.strip():
                    raise
                redirects += 1
                if redirects > MAX_REDIRECTS:
                    raise
                logger.debug(f"Redirected to {e.location}")
                self.target_uri = str(httpx.URL(self.target_uri).join(e.location))
            except GDataNotModifiedError:
                raise
            except GDataRequestError as e:
                if e.status_code is not None and e.status_code < 500:
                    raise
                if attempt > self.factory.number_of_retries:
                    logger.warning(f"Giving up on {self.method} {self.target_uri} after {attempt} attempts")
                    raise
                logger.info(f"Retrying {self.method} {self.target_uri} ({attempt}): {e}")
                attempt += 1

    def get_response_stream(self) -> ResponseStream | None:
        if self.response is None:
            return None
        return ResponseStream(self.response, self.factory.chunk_size)

    def read(self) -> bytes:
        """Read the whole response body."""
        if self.response is None:
            raise GDataRequestError("Request has not been executed")
        return self.response.read()

    def close(self) -> None:
        if self.response is not None:
            self.response.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
