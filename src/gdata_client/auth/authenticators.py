"""Authenticators that sign GData requests.

Each authenticator knows how to decorate an outgoing ``httpx.Request`` for
one of the GData authentication schemes:

- ``ClientLoginAuthenticator``: username/password exchanged for a
  ``GoogleLogin`` token.
- ``AuthSubAuthenticator``: a web-application AuthSub session token.
- ``OAuth1Authenticator`` / ``TwoLeggedOAuthAuthenticator``: OAuth 1.0a,
  signed with Authlib.
- ``OAuth2Authenticator``: a bearer token from ``GoogleOAuth``,
  ``GoogleServiceAccount`` or a plain string.
"""

from __future__ import annotations

import logging
import os
import threading
from typing import Protocol
from urllib.parse import urlencode, urlsplit, urlunsplit

import httpx
from authlib.oauth1 import SIGNATURE_HMAC_SHA1, ClientAuth

from gdata_client.auth.exceptions import CaptchaRequiredError, GDataAuthError, TokenError

logger = logging.getLogger(__name__)

DEFAULT_ACCOUNT_TYPE = "HOSTED_OR_GOOGLE"


class TokenSource(Protocol):
    def get_access_token(self) -> str: ...


class Authenticator:
    """Unauthenticated access, optionally with a developer key.

    Subclasses override ``apply`` to add their Authorization header and
    ``reset`` to drop cached tokens after a 403.
    """

    def __init__(self, application_name: str, developer_key: str | None = None):
        self.application_name = application_name
        self.developer_key = developer_key

    def apply_to_uri(self, uri: str) -> str:
        """Rewrite the target URI before the request is built."""
        return uri

    def apply(self, request: httpx.Request) -> httpx.Request:
        """Add authentication headers to the request."""
        if self.developer_key:
            request.headers["X-GData-Key"] = f"key={self.developer_key}"
        return request

    def reset(self) -> None:
        """Forget cached tokens so the next request authenticates again."""


class ClientLoginAuthenticator(Authenticator):
    """ClientLogin (installed application) authentication.

    The auth token is fetched lazily on the first request and cached until
    ``reset`` is called.

    Example:
        >>> auth = ClientLoginAuthenticator("my-app", "cl", "me@example.com", "secret")
        >>> service = GDataService("cl", "my-app", auth)
    """

    LOGIN_URL = "https://www.google.com/accounts/ClientLogin"

    def __init__(
        self,
        application_name: str,
        service_name: str,
        username: str | None = None,
        password: str | None = None,
        account_type: str = DEFAULT_ACCOUNT_TYPE,
        login_handler: str = LOGIN_URL,
        client: httpx.Client | None = None,
        developer_key: str | None = None,
    ):
        """Initialize ClientLogin authentication.

        Args:
            application_name: Sent as the ClientLogin "source".
            service_name: GData service code (e.g., "cl" for Calendar).
            username: Account email. If None, reads from GDATA_USERNAME.
            password: Account password. If None, reads from GDATA_PASSWORD.
            account_type: GOOGLE, HOSTED or HOSTED_OR_GOOGLE.
            login_handler: ClientLogin endpoint.
            client: httpx client to use for the login call.
            developer_key: Optional developer key.
        """
        super().__init__(application_name, developer_key)
        self.service_name = service_name
        self.username = username or os.environ.get("GDATA_USERNAME")
        self.password = password or os.environ.get("GDATA_PASSWORD")
        self.account_type = account_type
        self.login_handler = login_handler
        self.captcha_token: str | None = None
        self.captcha_answer: str | None = None

        if not self.username or not self.password:
            raise GDataAuthError(
                "ClientLogin requires a username and password. "
                "Set GDATA_USERNAME/GDATA_PASSWORD or pass them explicitly."
            )

        self._client = client or httpx.Client(timeout=30.0)
        self._token: str | None = None
        self._lock = threading.Lock()

    @staticmethod
    def _parse_response(text: str) -> dict[str, str]:
        values = {}
        for line in text.splitlines():
            key, sep, value = line.partition("=")
            if sep:
                values[key.strip()] = value.strip()
        return values

    def query_auth_token(self) -> str:
        """Exchange the username and password for an auth token.

        Raises:
            CaptchaRequiredError: If Google wants a captcha solved first.
            GDataAuthError: If the login is rejected.
        """
        form = {
            "Email": self.username,
            "Passwd": self.password,
            "source": self.application_name,
            "service": self.service_name,
            "accountType": self.account_type,
        }
        if self.captcha_token and self.captcha_answer:
            form["logintoken"] = self.captcha_token
            form["logincaptcha"] = self.captcha_answer

        try:
            response = self._client.post(self.login_handler, data=form)
        except httpx.HTTPError as e:
            raise GDataAuthError(f"ClientLogin request failed: {e}") from e

        values = self._parse_response(response.text)

        if response.status_code != 200:
            error = values.get("Error", f"HTTP {response.status_code}")
            if error == "CaptchaRequired":
                captcha_url = str(httpx.URL(self.login_handler).join(values.get("CaptchaUrl", "")))
                raise CaptchaRequiredError(values.get("CaptchaToken", ""), captcha_url)
            raise GDataAuthError(f"ClientLogin failed: {error}")

        token = values.get("Auth")
        if not token:
            raise TokenError("ClientLogin response did not contain an Auth token")

        # a captcha answer is only good for one login
        self.captcha_token = None
        self.captcha_answer = None
        logger.info(f"ClientLogin token acquired for service {self.service_name}")
        return token

    @property
    def auth_token(self) -> str:
        with self._lock:
            if self._token is None:
                self._token = self.query_auth_token()
            return self._token

    @auth_token.setter
    def auth_token(self, value: str | None) -> None:
        with self._lock:
            self._token = value

    def apply(self, request: httpx.Request) -> httpx.Request:
        super().apply(request)
        request.headers["Authorization"] = f"GoogleLogin auth={self.auth_token}"
        return request

    def reset(self) -> None:
        self.auth_token = None


class AuthSubAuthenticator(Authenticator):
    """AuthSub session token authentication for web applications."""

    def __init__(self, application_name: str, token: str, developer_key: str | None = None):
        super().__init__(application_name, developer_key)
        self.token = token

    def apply(self, request: httpx.Request) -> httpx.Request:
        super().apply(request)
        request.headers["Authorization"] = f'AuthSub token="{self.token}"'
        return request


class OAuth1Authenticator(Authenticator):
    """Three-legged OAuth 1.0a. Signatures are computed by Authlib."""

    def __init__(
        self,
        application_name: str,
        consumer_key: str,
        consumer_secret: str,
        token: str | None = None,
        token_secret: str | None = None,
        signature_method: str = SIGNATURE_HMAC_SHA1,
        developer_key: str | None = None,
    ):
        super().__init__(application_name, developer_key)
        self.consumer_key = consumer_key
        self._client_auth = ClientAuth(
            consumer_key,
            client_secret=consumer_secret,
            token=token,
            token_secret=token_secret,
            signature_method=signature_method,
        )

    def apply(self, request: httpx.Request) -> httpx.Request:
        super().apply(request)
        try:
            body = request.content
        except httpx.RequestNotRead:
            # streamed uploads are never form-encoded, so the body isn't signed
            body = b""
        url, headers, _ = self._client_auth.prepare(
            request.method,
            str(request.url),
            {"Content-Type": request.headers.get("content-type", "")},
            body,
        )
        request.url = httpx.URL(url)
        request.headers["Authorization"] = headers["Authorization"]
        return request


class TwoLeggedOAuthAuthenticator(OAuth1Authenticator):
    """Two-legged OAuth acting on behalf of a domain user."""

    REQUESTOR_PARAMETER = "xoauth_requestor_id"

    def __init__(
        self,
        application_name: str,
        consumer_key: str,
        consumer_secret: str,
        requestor_id: str,
        developer_key: str | None = None,
    ):
        super().__init__(
            application_name,
            consumer_key,
            consumer_secret,
            developer_key=developer_key,
        )
        self.requestor_id = requestor_id

    def apply_to_uri(self, uri: str) -> str:
        parts = urlsplit(uri)
        extra = urlencode({self.REQUESTOR_PARAMETER: self.requestor_id})
        query = f"{parts.query}&{extra}" if parts.query else extra
        return urlunsplit(parts._replace(query=query))


class OAuth2Authenticator(Authenticator):
    """OAuth 2.0 bearer token authentication.

    Args:
        application_name: Name of the calling application.
        token_source: A static access token, or an object with
            ``get_access_token()`` such as GoogleOAuth or GoogleServiceAccount.
        token_type: Authorization scheme, "Bearer" unless told otherwise.
    """

    def __init__(
        self,
        application_name: str,
        token_source: str | TokenSource,
        token_type: str = "Bearer",
        developer_key: str | None = None,
    ):
        super().__init__(application_name, developer_key)
        self.token_source = token_source
        self.token_type = token_type

    @property
    def access_token(self) -> str:
        if isinstance(self.token_source, str):
            return self.token_source
        return self.token_source.get_access_token()

    def apply(self, request: httpx.Request) -> httpx.Request:
        super().apply(request)
        request.headers["Authorization"] = f"{self.token_type} {self.access_token}"
        return request
