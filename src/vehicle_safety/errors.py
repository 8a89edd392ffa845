"""
Exceptions for the safety intelligence aggregator.

Hierarchy:
- SafetyIntelError (base)
  ├── InvalidIdentity (caller input, reported verbatim, never retried)
  │   └── InvalidVin
  │       └── VinNotDecoded
  ├── UpstreamUnavailable (one feed failed, timed out or returned non-2xx)
  │   └── MalformedUpstreamPayload (2xx with an unusable body)
  ├── AllFeedsUnavailable (every feed failed, nothing to serve)
  └── Cancelled (caller gave up before both feeds finished)
"""
from __future__ import annotations

from typing import Any


class SafetyIntelError(Exception):
    """Base exception for all aggregator operations."""

    def __init__(self, message: str, feed: str | None = None, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.feed = feed
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.feed:
            return f"[{self.feed}] {self.message}"
        return self.message


class InvalidIdentity(SafetyIntelError):
    """Raised when make, model or year cannot form a vehicle identity."""


class InvalidVin(InvalidIdentity):
    """Raised when a VIN is malformed."""


class VinNotDecoded(InvalidVin):
    """Raised when a well-formed VIN maps to no known vehicle."""


class UpstreamUnavailable(SafetyIntelError):
    """Raised when a feed request fails, times out or returns a non-success status."""

    def __init__(self, feed: str, message: str = "upstream unavailable", status: int | None = None) -> None:
        self.status = status
        super().__init__(message, feed=feed, details={"status": status})


class MalformedUpstreamPayload(UpstreamUnavailable):
    """Raised when a feed answered but its body could not be used."""

    def __init__(self, feed: str, message: str = "malformed upstream payload") -> None:
        super().__init__(feed, message=message)


class AllFeedsUnavailable(SafetyIntelError):
    def __init__(self, failures: list[UpstreamUnavailable]) -> None:
        self.failures = list(failures)
        feeds = ", ".join(sorted(f.feed or "unknown" for f in self.failures))
        super().__init__(
            f"all safety feeds unavailable ({feeds})",
            details={"feeds": [str(f) for f in self.failures]},
        )


class Cancelled(SafetyIntelError):
    def __init__(self, key: str, reason: str = "request cancelled") -> None:
        self.key = key
        super().__init__(f"{reason} for {key}")
