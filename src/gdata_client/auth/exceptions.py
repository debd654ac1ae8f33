"""Authentication exceptions."""

from gdata_client.exceptions import GDataError


class GDataAuthError(GDataError):
    """Base exception for authentication errors."""

    pass


class CredentialsNotFoundError(GDataAuthError):
    """Raised when a credentials or key file is not found."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(
            f"Credentials file not found at {path}. "
            "Please download credentials from Google Cloud Console."
        )


class TokenError(GDataAuthError):
    """Raised when there's an issue with an auth token."""

    pass


class ScopeMismatchError(GDataAuthError):
    """Raised when token scopes don't match required scopes."""

    def __init__(self, missing_scopes: set[str]):
        self.missing_scopes = missing_scopes
        super().__init__(f"Token missing required scopes: {missing_scopes}")


class CaptchaRequiredError(GDataAuthError):
    """Raised when ClientLogin asks the user to solve a captcha.

    Retry the login with ``captcha_token`` and the user's answer to the image
    at ``captcha_url``.
    """

    def __init__(self, captcha_token: str, captcha_url: str):
        self.captcha_token = captcha_token
        self.captcha_url = captcha_url
        super().__init__(f"Captcha required, solve the image at {captcha_url}")
