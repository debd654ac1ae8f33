"""OAuth 2.0 tokens for GData feeds using Authlib.

``GoogleOAuth`` runs the installed-app consent flow once and then acts as
the token source for ``OAuth2Authenticator``: every GData request asks it
for an access token, and an expired token is refreshed on the way.

Files live in the client home by default:
    google/credentials.json - OAuth client credentials
    google/token.json       - OAuth tokens, in google-auth's authorized-user layout
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from authlib.integrations.requests_client import OAuth2Session
from authlib.oauth2 import OAuth2Error

from gdata_client.auth.exceptions import (
    CredentialsNotFoundError,
    ScopeMismatchError,
    TokenError,
)
from gdata_client.config import GOOGLE_CREDENTIALS, GOOGLE_TOKEN

logger = logging.getLogger(__name__)


# GData feed scopes
SCOPES = {
    "calendar": "https://www.google.com/calendar/feeds/",
    "contacts": "https://www.google.com/m8/feeds/",
    "content": "https://www.googleapis.com/auth/content",
    "blogger": "https://www.blogger.com/feeds/",
    "picasa": "https://picasaweb.google.com/data/",
    "youtube": "https://gdata.youtube.com",
    "spreadsheets": "https://spreadsheets.google.com/feeds/",
    "docs": "https://docs.google.com/feeds/",
}


def resolve_scopes(scopes: list[str]) -> list[str]:
    """Resolve scope names to full URLs."""
    resolved = []
    for scope in scopes:
        if scope.startswith("https://"):
            resolved.append(scope)
        elif scope in SCOPES:
            resolved.append(SCOPES[scope])
        else:
            raise ValueError(
                f"Unknown scope: {scope}. Use full URL or one of: {list(SCOPES.keys())}"
            )
    return resolved


def _expiry_timestamp(expiry: Any) -> float | None:
    if isinstance(expiry, str):
        return datetime.fromisoformat(expiry.replace("Z", "+00:00")).timestamp()
    return expiry


@dataclass
class TokenStatus:
    """Snapshot of the stored token, as shown by ``gdata-client google status``."""

    state: str
    scopes: list[str] = field(default_factory=list)
    expires_in: timedelta | None = None
    has_refresh_token: bool = False


class GoogleOAuth:
    """Installed-app OAuth 2.0 token source for GData services.

    Example:
        >>> auth = GoogleOAuth(scopes=["calendar"])
        >>> if not auth.is_authorized():
        ...     print(f"Visit: {auth.get_authorization_url()}")
        ...     auth.fetch_token(input("Paste redirect URL: "))
        >>> service = GDataService("cl", "my-app", OAuth2Authenticator("my-app", auth))
    """

    AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"
    REVOKE_URL = "https://oauth2.googleapis.com/revoke"

    def __init__(
        self,
        scopes: list[str] | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
        token_path: str | Path | None = None,
        credentials_path: str | Path | None = None,
        redirect_uri: str = "http://localhost:0",
    ):
        """Initialize the token source.

        Args:
            scopes: Scope names (e.g., ["calendar", "contacts"]) or full URLs.
                   Defaults to ["calendar"].
            client_id: OAuth client ID (read from the credentials file if not given).
            client_secret: OAuth client secret (read from the credentials file if not given).
            token_path: Token file. Defaults to <home>/google/token.json.
            credentials_path: Client credentials file. Defaults to <home>/google/credentials.json.
            redirect_uri: Redirect URI registered for the OAuth client.
        """
        self.token_path = Path(token_path) if token_path else GOOGLE_TOKEN
        self.credentials_path = Path(credentials_path) if credentials_path else GOOGLE_CREDENTIALS
        self.required_scopes = resolve_scopes(scopes or ["calendar"])

        if not client_id or not client_secret:
            client_id, client_secret = self._read_client_secrets()
        self.client_id = client_id
        self.client_secret = client_secret

        self.session = OAuth2Session(
            client_id=self.client_id,
            client_secret=self.client_secret,
            scope=" ".join(self.required_scopes),
            redirect_uri=redirect_uri,
            token=self._read_token(),
            update_token=self._write_token,
            token_endpoint=self.TOKEN_URL,
            grant_type="refresh_token",
            token_endpoint_auth_method="client_secret_post",
        )

    def _missing_scopes(self, granted) -> set[str]:
        return set(self.required_scopes) - set(granted)

    def _read_client_secrets(self) -> tuple[str, str]:
        if not self.credentials_path.exists():
            raise CredentialsNotFoundError(str(self.credentials_path))

        with open(self.credentials_path) as f:
            secrets = json.load(f)

        # Desktop and web clients nest the same fields under different keys
        app = secrets.get("installed") or secrets.get("web")
        if app is None:
            raise ValueError("Invalid credentials.json format. Expected 'installed' or 'web' key.")
        return app["client_id"], app["client_secret"]

    def _read_token(self) -> dict[str, Any] | None:
        """Load the stored token as an Authlib token dict."""
        if not self.token_path.exists():
            logger.info("No stored token at %s", self.token_path)
            return None

        try:
            with open(self.token_path) as f:
                stored = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load token: {e}")
            return None

        granted = stored.get("scopes", [])
        missing = self._missing_scopes(granted)
        if missing:
            logger.warning(f"Stored token lacks scopes {missing}; a new login is needed")
            return None

        return {
            "access_token": stored.get("token"),
            "refresh_token": stored.get("refresh_token"),
            "token_type": stored.get("type", "Bearer"),
            "expires_at": _expiry_timestamp(stored.get("expiry")),
            "scope": " ".join(granted),
        }

    def _write_token(
        self,
        token: dict[str, Any],
        refresh_token: str | None = None,
        access_token: str | None = None,
    ):
        """Authlib ``update_token`` hook; also called after the consent flow."""
        if access_token:
            token["access_token"] = access_token
        if refresh_token:
            token["refresh_token"] = refresh_token

        granted = token.get("scope", "").split()
        missing = self._missing_scopes(granted)
        if missing:
            raise ScopeMismatchError(missing)

        self.token_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.token_path, "w") as f:
            json.dump(
                {
                    "token": token["access_token"],
                    "refresh_token": token.get("refresh_token"),
                    "token_uri": self.TOKEN_URL,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "scopes": sorted(granted),
                    "type": token.get("token_type", "Bearer"),
                    "expiry": token.get("expires_at"),
                },
                f,
                indent=2,
            )
        logger.info("Token written to %s", self.token_path)

    def is_authorized(self) -> bool:
        """Check if we have a token carrying all required scopes."""
        token = self.session.token
        return bool(token) and not self._missing_scopes(token.get("scope", "").split())

    def get_authorization_url(self) -> str:
        """Return the consent page URL for the user to visit."""
        url, _state = self.session.create_authorization_url(
            self.AUTHORIZE_URL,
            access_type="offline",
            prompt="consent",
            include_granted_scopes="true",
        )
        return url

    def fetch_token(self, authorization_response: str) -> dict[str, Any]:
        """Exchange the redirect URL from the consent page for a token and store it."""
        token = self.session.fetch_token(
            self.TOKEN_URL,
            authorization_response=authorization_response,
            client_secret=self.client_secret,
        )
        self._write_token(token)
        return token

    def get_access_token(self) -> str:
        """Get a current access token, refreshing it if it expired.

        Raises:
            TokenError: If not authorized or token refresh fails.
        """
        if not self.is_authorized():
            raise TokenError("Not authorized or missing required scopes")

        token = self.session.token
        if token.is_expired():
            logger.info("Access token expired, refreshing")
            try:
                self.session.refresh_token(
                    self.TOKEN_URL, refresh_token=token.get("refresh_token")
                )
            except OAuth2Error as e:
                raise TokenError(f"Failed to refresh token: {e}") from e

        return self.session.token["access_token"]

    def revoke_token(self):
        """Revoke the current token and clear local storage."""
        if not self.session.token:
            logger.warning("No token to revoke")
            return

        try:
            self.session.post(
                self.REVOKE_URL,
                params={"token": self.session.token["access_token"]},
            )
        except Exception as e:
            logger.warning(f"Failed to revoke token remotely: {e}")

        if self.token_path.exists():
            self.token_path.unlink()
        logger.info("Token revoked")

    def status(self) -> TokenStatus:
        """Describe the stored token without refreshing it."""
        token = self.session.token
        if not token:
            return TokenStatus("no_token")

        expires_at = token.get("expires_at")
        expires_in = None
        if expires_at:
            expires_in = timedelta(seconds=max(0.0, expires_at - datetime.now().timestamp()))

        return TokenStatus(
            state="expired" if token.is_expired() else "valid",
            scopes=token.get("scope", "").split(),
            expires_in=expires_in,
            has_refresh_token=bool(token.get("refresh_token")),
        )
