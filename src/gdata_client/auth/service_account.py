"""Google Service Account authentication for GData feeds.

Service accounts are used for server-to-server authentication without user
interaction. The account can reach feeds shared with its email address, or
any user's feeds in a Google Workspace domain with domain-wide delegation.

Example:
    >>> auth = GoogleServiceAccount(
    ...     key_path="service_account_key.json",
    ...     scopes=["content"]
    ... )
    >>> service = GDataService("structuredcontent", "my-app",
    ...                        OAuth2Authenticator("my-app", auth))
"""

import json
import logging
import threading
from pathlib import Path

import google.auth.exceptions
from google.auth.transport.requests import Request
from google.oauth2 import service_account

from gdata_client.auth.exceptions import CredentialsNotFoundError, GDataAuthError, TokenError
from gdata_client.auth.oauth import resolve_scopes
from gdata_client.config import GOOGLE_SERVICE_ACCOUNT

logger = logging.getLogger(__name__)


class GoogleServiceAccount:
    """Google Service Account authentication.

    Uses a service account key file for server-to-server authentication.
    Tokens are refreshed on demand, so one instance can be shared by
    concurrent async operations.
    """

    def __init__(
        self,
        key_path: str | Path | None = None,
        scopes: list[str] | None = None,
    ):
        """Initialize service account authentication.

        Args:
            key_path: Path to service account JSON key file.
                Defaults to <home>/google/service_account_key.json.
            scopes: List of scope names (e.g., ["calendar", "content"]) or full URLs.
                   If None, defaults to ["calendar"].

        Raises:
            CredentialsNotFoundError: If key file not found.
            GDataAuthError: If key file is invalid.
        """
        self.key_path = Path(key_path) if key_path else GOOGLE_SERVICE_ACCOUNT

        if not self.key_path.exists():
            raise CredentialsNotFoundError(str(self.key_path))

        self.scopes = resolve_scopes(scopes or ["calendar"])

        try:
            with open(self.key_path) as f:
                key_data = json.load(f)
        except json.JSONDecodeError as e:
            raise GDataAuthError(f"Invalid JSON in key file: {e}") from e

        if key_data.get("type") != "service_account":
            raise GDataAuthError(
                f"Invalid key file: expected type 'service_account', "
                f"got '{key_data.get('type')}'"
            )

        self.client_email = key_data.get("client_email", "")
        self.project_id = key_data.get("project_id", "")

        self._credentials = service_account.Credentials.from_service_account_info(
            key_data,
            scopes=self.scopes,
        )
        self._lock = threading.Lock()

        logger.info(f"Service account initialized: {self.client_email}")
        logger.info(f"Scopes: {self.scopes}")

    @property
    def credentials(self):
        """Get the service account credentials."""
        return self._credentials

    @property
    def email(self) -> str:
        """Get the service account email address.

        Share your feeds with this email to grant access.
        """
        return self.client_email

    def get_access_token(self) -> str:
        """Get a valid access token, refreshing it when needed.

        Raises:
            TokenError: If the token cannot be refreshed.
        """
        with self._lock:
            if not self._credentials.valid:
                try:
                    self._credentials.refresh(Request())
                except google.auth.exceptions.RefreshError as e:
                    raise TokenError(f"Failed to refresh service account token: {e}") from e
                logger.debug(f"Refreshed service account token for {self.client_email}")
            return self._credentials.token

    def with_subject(self, subject_email: str) -> "GoogleServiceAccount":
        """Create credentials that impersonate a user (requires domain-wide delegation).

        Args:
            subject_email: Email of the user to impersonate.

        Returns:
            New GoogleServiceAccount instance with delegated credentials.
        """
        delegated_credentials = self._credentials.with_subject(subject_email)

        new_instance = object.__new__(GoogleServiceAccount)
        new_instance.key_path = self.key_path
        new_instance.scopes = self.scopes
        new_instance.client_email = self.client_email
        new_instance.project_id = self.project_id
        new_instance._credentials = delegated_credentials
        new_instance._lock = threading.Lock()

        logger.info(f"Created delegated credentials for: {subject_email}")
        return new_instance

    def get_info(self) -> dict:
        """Get information about the service account.

        Returns:
            Dictionary with service account details.
        """
        return {
            "type": "service_account",
            "email": self.client_email,
            "project_id": self.project_id,
            "scopes": self.scopes,
            "key_path": str(self.key_path),
        }
