"""Async operation exceptions."""

from gdata_client.exceptions import GDataError


class AsyncOperationError(GDataError):
    """Base exception for async operation bookkeeping errors."""

    pass


class DuplicateIdentifierError(AsyncOperationError, ValueError):
    """Raised when user_data is already registered for an in-flight operation."""

    def __init__(self, user_data: object):
        self.user_data = user_data
        super().__init__(f"user_data must be unique, {user_data!r} is already in flight")


class OperationCancelledError(AsyncOperationError):
    """Raised inside a worker when its operation was removed from the registry."""

    def __init__(self, user_data: object = None):
        self.user_data = user_data
        super().__init__("Operation was cancelled")
