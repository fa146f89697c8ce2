"""Exception types raised by parcelfinder.

NotFound is deliberately absent: an empty search, a missing order or a
missing parcel is a normal outcome and is returned as ``None`` / ``[]``.
"""

from typing import Optional


class ParcelFinderError(Exception):
    """Base class for all parcelfinder errors."""
    pass


class ConfigurationError(ParcelFinderError):
    """Raised at startup when a required credential or base URL is missing."""
    pass


class TransientUpstreamError(ParcelFinderError):
    """An upstream call failed (timeout, connection error, non-2xx status)."""

    def __init__(self, message: str, service: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.service = service
        self.status_code = status_code


class MalformedUpstreamPayload(ParcelFinderError):
    """An upstream answered 2xx with a body that could not be decoded."""

    def __init__(self, message: str, service: str = ""):
        super().__init__(message)
        self.service = service
