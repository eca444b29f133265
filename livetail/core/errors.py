"""
Error taxonomy shared by the tail service, the HTTP layer and the feed poller.
"""

from typing import Optional


class LiveTailError(Exception):
    """Base class for live tail errors."""
    pass


class UnsupportedCategory(LiveTailError):
    """Category is not part of the configured category mapping."""

    def __init__(self, category: str):
        self.category = category
        super().__init__(f"Unsupported category: {category!r}")


class InvalidCursor(LiveTailError):
    """Cursor string cannot be decoded into a record key."""

    def __init__(self, cursor, reason: Optional[str] = None):
        self.cursor = cursor
        message = f"Invalid cursor: {cursor!r}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class TransportFailure(LiveTailError):
    """Network error, timeout or non-success HTTP response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class DecodeFailure(TransportFailure):
    """Response body was not valid JSON or did not have the expected shape."""
    pass
