"""Exception taxonomy for lookups and run setup."""

from __future__ import annotations

from gmaps_coords.models import FailureReason


class ConfigurationError(RuntimeError):
    """Raised when the run cannot start, e.g. no WebDriver port is reachable."""


class PoolExhaustedError(ConfigurationError):
    """Raised by the session pool once every slot has been retired."""


class LookupFailure(Exception):
    """Base class for per-record lookup failures."""

    reason: FailureReason = FailureReason.SESSION_ERROR

    @property
    def retryable(self) -> bool:
        return self.reason.retryable


class LookupTimeout(LookupFailure):
    reason = FailureReason.TIMEOUT


class PlaceNotFound(LookupFailure):
    reason = FailureReason.NOT_FOUND


class SessionError(LookupFailure):
    """The remote session is unreachable or answered with a protocol error."""

    reason = FailureReason.SESSION_ERROR
