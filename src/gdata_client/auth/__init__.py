"""Authentication for GData services."""

from gdata_client.auth.authenticators import (
    Authenticator,
    AuthSubAuthenticator,
    ClientLoginAuthenticator,
    OAuth1Authenticator,
    OAuth2Authenticator,
    TwoLeggedOAuthAuthenticator,
)
from gdata_client.auth.exceptions import (
    CaptchaRequiredError,
    CredentialsNotFoundError,
    GDataAuthError,
    ScopeMismatchError,
    TokenError,
)
from gdata_client.auth.oauth import GoogleOAuth
from gdata_client.auth.service_account import GoogleServiceAccount

__all__ = [
    "Authenticator",
    "AuthSubAuthenticator",
    "ClientLoginAuthenticator",
    "OAuth1Authenticator",
    "OAuth2Authenticator",
    "TwoLeggedOAuthAuthenticator",
    "GoogleOAuth",
    "GoogleServiceAccount",
    "GDataAuthError",
    "CredentialsNotFoundError",
    "TokenError",
    "ScopeMismatchError",
    "CaptchaRequiredError",
]
