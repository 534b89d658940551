"""Acquisition failure taxonomy.

Every error raised while fetching or parsing the gold price derives from
:class:`AcquisitionError`. They are local to a refresh cycle: the refresher
catches and logs them, and request handlers never see them.
"""

from typing import Optional


class AcquisitionError(Exception):
    """Base class for failures while acquiring the gold price."""
    pass


class FetchTimeoutError(AcquisitionError):
    """Raised when a fetch or page render exceeds its timeout."""
    pass


class NetworkError(AcquisitionError):
    """Raised on transport-level failures (DNS, connection reset, browser crash)."""
    pass


class HttpError(AcquisitionError):
    """Raised when the source answers with a non-success HTTP status."""

    def __init__(self, status: int, url: Optional[str] = None):
        self.status = status
        self.url = url
        message = f"HTTP {status}"
        if url:
            message = f"{message} for {url}"
        super().__init__(message)


class ExtractionError(AcquisitionError):
    """Raised when the fetched content has no parsable price for the target."""
    pass
