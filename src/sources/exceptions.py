"""Exception hierarchy for telemetry sources.

Every error carries a stable ``code`` that the broadcast scheduler forwards
verbatim to subscribers.
"""

from __future__ import annotations


class SourceError(Exception):
    """Base exception for all source errors."""

    code = "SOURCE_ERROR"


class SourceUnavailableError(SourceError):
    """The remote source could not be reached or answered with an error."""

    code = "SOURCE_UNAVAILABLE"


class InvalidDataError(SourceError):
    """The source answered, but the payload failed validation."""

    code = "INVALID_DATA"

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors: list[str] = list(errors or [])


class HubNotFoundError(SourceError):
    """No sensor hub is registered on the account."""

    code = "HUB_NOT_FOUND"


class SourceAuthError(SourceError):
    """Credentials are missing or were rejected."""

    code = "AUTH_ERROR"
