"""Error taxonomy for the transfer tracking pipeline.

Startup failures (:class:`ConfigError`, :class:`SourceUnavailable`) are fatal.
Per-tick failures (:class:`FetchError`) leave the cursor where it was, and
per-log failures (:class:`DecodeError`, :class:`RangeError`,
:class:`StoreError`) drop only the offending log.
"""

from __future__ import annotations


class TrackerError(RuntimeError):
    """Base class for every error raised by the tracker."""


class ConfigError(TrackerError):
    """Missing or malformed required configuration."""


class SourceUnavailable(TrackerError):
    """The event source cannot be reached (connection-level failure)."""


# Name used in the operator-facing error taxonomy.
TrackerConnectionError = SourceUnavailable


class FetchError(TrackerError):
    """A single head lookup or log fetch failed transiently."""


class DecodeError(TrackerError):
    """A log entry does not match the tracked event shape."""


class RangeError(TrackerError):
    """A token id does not fit the store's integer key."""

    def __init__(self, token_id: int, bound: int) -> None:
        super().__init__(f"token id {token_id} is outside the storable range [0, {bound}]")
        self.token_id = token_id
        self.bound = bound


class StoreError(TrackerError):
    """The ownership store rejected a read or write."""


__all__ = [
    "TrackerError",
    "ConfigError",
    "SourceUnavailable",
    "TrackerConnectionError",
    "FetchError",
    "DecodeError",
    "RangeError",
    "StoreError",
]
