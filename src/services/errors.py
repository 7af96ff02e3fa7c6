from __future__ import annotations

from typing import Any


class RatesCacheError(Exception):
    def __init__(self, message: str, *, status_code: int | None = None, payload: Any | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class ValidationError(RatesCacheError):
    """Request rejected locally, before any I/O."""


class UpstreamUnavailable(RatesCacheError):
    """Quote API unreachable or answered with a non-success status."""


class StoreError(UpstreamUnavailable):
    """Rate store or pair registry failed on read or write."""


class InvalidUpstreamResponse(RatesCacheError):
    """Quote API answered, but the payload is not a usable quote."""


__all__ = [
    "InvalidUpstreamResponse",
    "RatesCacheError",
    "StoreError",
    "UpstreamUnavailable",
    "ValidationError",
]
