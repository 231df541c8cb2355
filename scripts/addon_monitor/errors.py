"""Exception types shared by the monitor components.

The gateway never returns error strings: every failure is one of the
typed errors below, so callers can tell "rate limited, try again next
run" apart from "the API said no" and from "the API said nothing
intelligible".
"""

from __future__ import annotations


class MonitorError(Exception):
    """Base class for all monitor errors."""


class ConfigError(MonitorError):
    """Missing credential or invalid arguments; raised before any network call."""

    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.exit_code = exit_code


class GatewayError(MonitorError):
    """Base class for failures reported by the API gateway."""

    def __init__(
        self,
        message: str,
        endpoint: str = "",
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.endpoint = endpoint
        self.status_code = status_code


class RateLimitedError(GatewayError):
    """The request budget is exhausted or GitHub rejected the call for quota.

    ``skippable`` tells the caller whether only the current unit of work
    should be skipped (``True``) or the whole batch stopped.
    """

    def __init__(
        self,
        message: str,
        endpoint: str = "",
        status_code: int | None = None,
        remaining: int | None = None,
        skippable: bool = True,
    ):
        super().__init__(message, endpoint, status_code)
        self.remaining = remaining
        self.skippable = skippable


class ApiError(GatewayError):
    """GitHub answered with an error message (or the transport failed)."""


class MalformedResponseError(GatewayError):
    """The response body was not well-formed JSON."""
