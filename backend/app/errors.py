"""Error taxonomy shared by adapters, the daily store, and the API layer."""

from __future__ import annotations


class WillowError(Exception):
    """Base class for errors raised by the aggregation service."""


class UpstreamUnavailableError(WillowError):
    """A single provider could not be reached or returned an unusable payload.

    Raised inside source adapters only; the adapter boundary converts it into an
    empty contribution so callers never see it.
    """

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"{source}: {reason}")
        self.source = source
        self.reason = reason


class InvalidRequestError(WillowError):
    """Request parameters are missing or malformed."""


class AuthorizationError(WillowError):
    """The supplied admin credential does not match the configured secret."""


class AdminTokenNotConfiguredError(AuthorizationError):
    """No admin secret is configured, so forced regeneration is unavailable."""


class StoreError(WillowError):
    """The key-value store backing the daily set is unreachable."""


__all__ = [
    "WillowError",
    "UpstreamUnavailableError",
    "InvalidRequestError",
    "AuthorizationError",
    "AdminTokenNotConfiguredError",
    "StoreError",
]
