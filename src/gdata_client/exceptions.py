"""GData client exceptions."""


class GDataError(Exception):
    """Base exception for all gdata-client errors."""

    pass


class GDataRequestError(GDataError):
    """Raised when a GData service answers with an error status."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_text: str | None = None,
    ):
        self.status_code = status_code
        self.response_text = response_text
        super().__init__(message)


class GDataForbiddenError(GDataRequestError):
    """Raised on 403 Forbidden, usually an expired or missing auth token."""

    pass


class GDataRedirectError(GDataRequestError):
    """Raised when the service redirects a request that may not be re-issued."""

    def __init__(self, location: str, status_code: int | None = 302):
        self.location = location
        super().__init__(f"Request redirected to {location!r}", status_code=status_code)


class GDataNotModifiedError(GDataRequestError):
    """Raised on 304 Not Modified for conditional queries."""

    def __init__(self, uri: str):
        self.uri = uri
        super().__init__(f"Content at {uri} not modified", status_code=304)


class GDataParseError(GDataError):
    """Raised when a response cannot be parsed into an Atom document."""

    pass
