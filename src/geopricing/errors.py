"""Error taxonomy for geopricing calculations."""

from __future__ import annotations


class GeopricingError(Exception):
    """Base class for all engine errors."""


class ConfigurationError(GeopricingError):
    """Missing credentials or shop configuration. Fatal and never retried."""


class GeocodingFailure(GeopricingError):
    """The customer address could not be resolved to coordinates."""

    def __init__(self, address: str, reason: str | None = None):
        self.address = address
        self.reason = reason
        message = f"Could not geocode address '{address}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class DistanceMatrixError(GeopricingError):
    """A distance-matrix request failed as a whole (HTTP, status or payload error)."""


class DriveTimeDegraded(GeopricingError):
    """Live drive time was unavailable and an estimate was substituted."""


class RateLimitExceeded(GeopricingError):
    """Raised only at the request boundary when a caller exhausts its window."""

    def __init__(self, identifier: str, limit: int, reset_at: float):
        self.identifier = identifier
        self.limit = limit
        self.reset_at = reset_at
        super().__init__(f"Rate limit of {limit} requests exceeded for '{identifier}'")
