"""Tests for GData requests over httpx."""

import gzip
from datetime import datetime, timezone

import httpx
import pytest

from gdata_client.async_ops import (
    AsyncDataHandler,
    AsyncSendData,
    OperationCancelledError,
    QueueContext,
)
from gdata_client.auth import Authenticator, AuthSubAuthenticator
from gdata_client.exceptions import (
    GDataForbiddenError,
    GDataNotModifiedError,
    GDataRedirectError,
    GDataRequestError,
)
from gdata_client.request import (
    GDATA_VERSION_HEADER,
    METHOD_OVERRIDE_HEADER,
    GDataRequestFactory,
    ResponseStream,
)

FEED_URI = "https://www.google.com/calendar/feeds/default/private/full"


def make_factory(responder, **kwargs):
    """Build a factory whose client answers with ``responder(request)``."""
    calls = []

    def handle(request):
        calls.append(request)
        return responder(request, len(calls))

    client = httpx.Client(transport=httpx.MockTransport(handle), follow_redirects=False)
    factory = GDataRequestFactory("cl", "test-app", client=client, **kwargs)
    return factory, calls


class CountingAuthenticator(Authenticator):
    def __init__(self):
        super().__init__("test-app")
        self.resets = 0

    def apply(self, request):
        request.headers["Authorization"] = f"Test {self.resets}"
        return request

    def reset(self):
        self.resets += 1


class TestRequestHeaders:
    """Test the headers every request carries."""

    def test_version_and_user_agent(self):
        """Should send GData-Version and the application name."""
        factory, calls = make_factory(lambda r, n: httpx.Response(200, content=b"ok"))
        with factory.create_request("GET", FEED_URI) as request:
            request.execute()
            assert request.read() == b"ok"

        sent = calls[0]
        assert sent.headers[GDATA_VERSION_HEADER] == "2.0"
        assert sent.headers["User-Agent"] == "test-app GDataPython/1.0"

    def test_protocol_version_configurable(self):
        """Should send the configured protocol version."""
        factory, calls = make_factory(
            lambda r, n: httpx.Response(200), protocol_major=3, protocol_minor=1
        )
        factory.create_request("GET", FEED_URI).execute()
        assert calls[0].headers[GDATA_VERSION_HEADER] == "3.1"

    def test_response_version_and_length(self):
        """Should expose the server protocol version and content length."""
        factory, _ = make_factory(
            lambda r, n: httpx.Response(200, content=b"abc", headers={"GData-Version": "2.1"})
        )
        request = factory.create_request("GET", FEED_URI)
        request.execute()
        assert request.response_version == "2.1"
        assert request.content_length == 3

    def test_compressed_length_is_unknown(self):
        """Should not report the encoded size of a gzip body as its length."""
        body = b"<feed>" + b"x" * 20000 + b"</feed>"
        factory, _ = make_factory(
            lambda r, n: httpx.Response(
                200, content=gzip.compress(body), headers={"Content-Encoding": "gzip"}
            )
        )
        request = factory.create_request("GET", FEED_URI)
        request.execute()
        assert request.response.headers["Content-Length"].isdigit()
        assert request.content_length is None
        assert request.read() == body

    def test_if_modified_since(self):
        """Should format If-Modified-Since as an HTTP date."""
        factory, calls = make_factory(lambda r, n: httpx.Response(304))
        request = factory.create_request("GET", FEED_URI)
        request.if_modified_since = datetime(2024, 1, 1, tzinfo=timezone.utc)

        with pytest.raises(GDataNotModifiedError) as exc_info:
            request.execute()

        assert exc_info.value.status_code == 304
        assert calls[0].headers["If-Modified-Since"] == "Mon, 01 Jan 2024 00:00:00 GMT"

    def test_developer_key(self):
        """Should send X-GData-Key when a developer key is configured."""
        factory, calls = make_factory(
            lambda r, n: httpx.Response(200),
            authenticator=Authenticator("test-app", developer_key="abc123"),
        )
        factory.create_request("GET", FEED_URI).execute()
        assert calls[0].headers["X-GData-Key"] == "key=abc123"


class TestMethodOverride:
    """Test tunnelling verbs through POST."""

    def test_put_tunnelled(self):
        """Should POST with X-HTTP-Method-Override: PUT and If-Match."""
        factory, calls = make_factory(lambda r, n: httpx.Response(200), method_override=True)
        request = factory.create_request("PUT", FEED_URI)
        request.set_content(b"<entry/>")
        request.etag = 'W/"abc"'
        request.execute()

        sent = calls[0]
        assert sent.method == "POST"
        assert sent.headers[METHOD_OVERRIDE_HEADER] == "PUT"
        assert sent.headers["If-Match"] == 'W/"abc"'
        assert sent.headers["Content-Type"] == "application/atom+xml"
        assert sent.content == b"<entry/>"

    def test_delete_tunnelled_with_empty_body(self):
        """Should send an empty body when tunnelling DELETE."""
        factory, calls = make_factory(lambda r, n: httpx.Response(200), method_override=True)
        factory.create_request("DELETE", FEED_URI).execute()

        assert calls[0].method == "POST"
        assert calls[0].headers[METHOD_OVERRIDE_HEADER] == "DELETE"
        assert calls[0].headers["Content-Length"] == "0"

    def test_no_override_by_default(self):
        """Should send the real verb without the override header."""
        factory, calls = make_factory(lambda r, n: httpx.Response(200))
        factory.create_request("DELETE", FEED_URI).execute()

        assert calls[0].method == "DELETE"
        assert METHOD_OVERRIDE_HEADER not in calls[0].headers


class TestRetries:
    """Test retry and re-authentication rules."""

    def test_retry_server_errors(self):
        """Should retry 5xx responses until one succeeds."""
        factory, calls = make_factory(
            lambda r, n: httpx.Response(500 if n < 3 else 200, content=b"ok"),
            number_of_retries=3,
        )
        request = factory.create_request("GET", FEED_URI)
        request.execute()
        assert request.read() == b"ok"
        assert len(calls) == 3

    def test_retries_exhausted(self):
        """Should give up after number_of_retries retries."""
        factory, calls = make_factory(lambda r, n: httpx.Response(503), number_of_retries=2)

        with pytest.raises(GDataRequestError) as exc_info:
            factory.create_request("GET", FEED_URI).execute()

        assert exc_info.value.status_code == 503
        assert len(calls) == 3

    def test_client_errors_not_retried(self):
        """Should fail immediately on 4xx."""
        factory, calls = make_factory(lambda r, n: httpx.Response(404, text="missing"))

        with pytest.raises(GDataRequestError) as exc_info:
            factory.create_request("GET", FEED_URI).execute()

        assert exc_info.value.status_code == 404
        assert exc_info.value.response_text == "missing"
        assert len(calls) == 1

    def test_transport_errors_retried(self):
        """Should retry connection failures."""

        def responder(request, n):
            if n == 1:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200)

        factory, calls = make_factory(responder)
        factory.create_request("GET", FEED_URI).execute()
        assert len(calls) == 2

    def test_forbidden_reauthenticates_once(self):
        """Should reset the authenticator and retry once after a 403."""
        auth = CountingAuthenticator()
        factory, calls = make_factory(
            lambda r, n: httpx.Response(403 if n == 1 else 200), authenticator=auth
        )
        factory.create_request("GET", FEED_URI).execute()

        assert auth.resets == 1
        assert [c.headers["Authorization"] for c in calls] == ["Test 0", "Test 1"]

    def test_forbidden_twice(self):
        """Should raise when the retry is forbidden too."""
        auth = CountingAuthenticator()
        factory, calls = make_factory(lambda r, n: httpx.Response(403), authenticator=auth)

        with pytest.raises(GDataForbiddenError):
            factory.create_request("GET", FEED_URI).execute()
        assert len(calls) == 2

    def test_forbidden_without_authenticator(self):
        """Should not retry a 403 for unauthenticated requests."""
        factory, calls = make_factory(lambda r, n: httpx.Response(403))

        with pytest.raises(GDataForbiddenError):
            factory.create_request("GET", FEED_URI).execute()
        assert len(calls) == 1


class TestRedirects:
    """Test manual redirect handling."""

    def test_get_follows_redirect_with_auth(self):
        """Should follow a GET redirect and keep the Authorization header."""

        def responder(request, n):
            if n == 1:
                return httpx.Response(302, headers={"Location": "/calendar/feeds/moved"})
            return httpx.Response(200, content=b"moved")

        factory, calls = make_factory(
            responder, authenticator=AuthSubAuthenticator("test-app", "tok")
        )
        request = factory.create_request("GET", FEED_URI)
        request.execute()

        assert request.read() == b"moved"
        assert str(calls[1].url) == "https://www.google.com/calendar/feeds/moved"
        assert calls[1].headers["Authorization"] == 'AuthSub token="tok"'

    def test_strict_redirect_refuses_post(self):
        """Should not re-send a POST when redirects are strict."""
        factory, calls = make_factory(
            lambda r, n: httpx.Response(302, headers={"Location": "/elsewhere"})
        )
        request = factory.create_request("POST", FEED_URI)
        request.set_content(b"<entry/>")

        with pytest.raises(GDataRedirectError) as exc_info:
            request.execute()
        assert exc_info.value.location == "/elsewhere"
        assert len(calls) == 1

    def test_lenient_redirect_follows_post(self):
        """Should follow a POST redirect when strict_redirect is off."""

        def responder(request, n):
            if n == 1:
                return httpx.Response(307, headers={"Location": "https://example.com/post"})
            return httpx.Response(201)

        factory, calls = make_factory(responder, strict_redirect=False)
        request = factory.create_request("POST", FEED_URI)
        request.set_content(b"<entry/>")
        request.execute()

        assert calls[1].method == "POST"
        assert calls[1].content == b"<entry/>"

    def test_redirect_without_location(self):
        """Should raise on a redirect with no Location."""
        factory, _ = make_factory(lambda r, n: httpx.Response(302))
        with pytest.raises(GDataRedirectError):
            factory.create_request("GET", FEED_URI).execute()

    def test_redirect_loop(self):
        """Should stop following after too many hops."""
        factory, calls = make_factory(
            lambda r, n: httpx.Response(302, headers={"Location": f"/hop/{n}"})
        )
        with pytest.raises(GDataRedirectError):
            factory.create_request("GET", FEED_URI).execute()
        assert len(calls) == 6


class TestUploadProgress:
    """Test progress and cancellation for request bodies."""

    @pytest.fixture
    def handler(self):
        return AsyncDataHandler(chunk_size=4096)

    def test_upload_reports_chunks(self, handler):
        """Should report each uploaded chunk and send the whole body."""
        context = QueueContext()
        progress = []
        handler.add_progress_listener(lambda h, e: progress.append(e))
        payload = b"u" * 10000

        factory, calls = make_factory(lambda r, n: httpx.Response(201), chunk_size=4096)
        data = AsyncSendData(FEED_URI, "up1", http_verb="POST", payload=payload)
        data.operation = handler.register_operation("up1", context)

        request = factory.create_request("POST", FEED_URI, async_data=data, handler=handler)
        request.set_content(payload)
        request.execute()
        context.run_pending()

        assert calls[0].content == payload
        assert calls[0].headers["Content-Length"] == "10000"
        assert "Transfer-Encoding" not in calls[0].headers
        assert [e.position for e in progress] == [4096, 8192, 10000]
        assert [e.http_verb for e in progress] == ["POST"] * 3

    def test_retried_upload_progress_moves_forward(self, handler):
        """Should not report the re-sent chunks of a retried upload."""
        context = QueueContext()
        progress = []
        handler.add_progress_listener(lambda h, e: progress.append(e.position))
        payload = b"u" * 10000

        factory, calls = make_factory(
            lambda r, n: httpx.Response(500 if n == 1 else 201), chunk_size=4096
        )
        data = AsyncSendData(FEED_URI, "up3", http_verb="POST", payload=payload)
        data.operation = handler.register_operation("up3", context)

        request = factory.create_request("POST", FEED_URI, async_data=data, handler=handler)
        request.set_content(payload)
        request.execute()
        context.run_pending()

        assert len(calls) == 2
        assert calls[1].content == payload
        assert progress == [4096, 8192, 10000]

    def test_cancelled_upload(self, handler):
        """Should abort the upload once the operation is cancelled."""
        context = QueueContext()
        factory, _ = make_factory(lambda r, n: httpx.Response(201), chunk_size=4096)
        data = AsyncSendData(FEED_URI, "up2", http_verb="POST", payload=b"u" * 10000)
        data.operation = handler.register_operation("up2", context)
        handler.cancel_async("up2")

        request = factory.create_request("POST", FEED_URI, async_data=data, handler=handler)
        request.set_content(data.payload)
        with pytest.raises(OperationCancelledError):
            request.execute()


class TestResponseStream:
    """Test the read(size) adapter over httpx responses."""

    def test_read_in_chunks(self):
        """Should hand out exactly the requested sizes."""
        stream = ResponseStream(httpx.Response(200, content=b"r" * 10000), chunk_size=4096)

        sizes = []
        chunk = stream.read(4096)
        while chunk:
            sizes.append(len(chunk))
            chunk = stream.read(4096)
        assert sizes == [4096, 4096, 1808]

    def test_read_all(self):
        """Should return the remaining body for a negative size."""
        stream = ResponseStream(httpx.Response(200, content=b"abcdef"), chunk_size=2)
        assert stream.read(2) == b"ab"
        assert stream.read() == b"cdef"
        assert stream.read(1) == b""
