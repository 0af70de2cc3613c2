"""Exception hierarchy for the signal matching and zoning engine."""

from __future__ import annotations


class SignalCoreError(Exception):
    """Base exception for all engine errors."""


class InvalidParameter(SignalCoreError, ValueError):
    """A radius, threshold or limit is outside its accepted range."""

    def __init__(self, name: str, value: object, detail: str | None = None):
        self.name = name
        self.value = value
        message = f"Invalid value for '{name}': {value!r}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class InvalidRoute(SignalCoreError, ValueError):
    """The route is empty or contains malformed points."""


class CatalogUnavailable(SignalCoreError):
    """The signal catalog could not be read or held no usable records."""

    def __init__(self, source: str, detail: str):
        self.source = source
        super().__init__(f"Signal catalog unavailable from {source}: {detail}")


class ZoneNotFound(SignalCoreError, LookupError):
    """No zone carries the requested 1-based index."""

    def __init__(self, index: object, zone_count: int):
        self.index = index
        self.zone_count = zone_count
        super().__init__(f"Zone {index!r} not found (valid range 1..{zone_count})")


class ZonesNotReady(SignalCoreError):
    """No clustering run has completed yet."""

    def __init__(self) -> None:
        super().__init__("Zones are still being processed. Try again later.")


class MatchTimeout(SignalCoreError, TimeoutError):
    """A bounded-time operation exceeded its deadline."""

    def __init__(self, operation: str, timeout_seconds: float | None = None):
        self.operation = operation
        self.timeout_seconds = timeout_seconds
        if timeout_seconds is None:
            message = f"{operation} exceeded its deadline"
        else:
            message = f"{operation} exceeded its deadline of {timeout_seconds:.2f}s"
        super().__init__(message)
