"""Exception types shared by the core and the adapters."""

from __future__ import annotations


class ReportwatchError(Exception):
    """Base class for all reportwatch errors."""


class AuthorizationRequired(ReportwatchError):
    """The stored session exists but is no longer authorized."""


class InvalidChannelKey(ReportwatchError, ValueError):
    """A tracked channel string is in none of the accepted surface forms."""


class ReportFailed(ReportwatchError):
    """The report call against a session failed."""


class LoginError(ReportwatchError):
    """The interactive login flow could not complete."""


# Errors that indicate a dropped or flaky session rather than a bug.
TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (ConnectionError, TimeoutError, OSError)
