"""
Error taxonomy for the driver correlation engine.

Fatal errors (ConfigurationError, RosterLoadError, FetchError) abort a run
and reach the caller. PersistenceError is recoverable: the runner and the
consolidator catch it at the record / group boundary, count it and move on.
"""
from typing import Any, Optional


class DriverIdentityError(Exception):
    """Base class for every error raised by the engine."""

    def __init__(self, message: str, report: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        # Partial report accumulated before a fatal error, when there is one.
        self.report = report


class ConfigurationError(DriverIdentityError):
    """Missing store connection or invalid run configuration."""


class RosterLoadError(DriverIdentityError):
    """The roster snapshot could not be loaded."""


class FetchError(DriverIdentityError):
    """A page of external records could not be retrieved."""


class PersistenceError(DriverIdentityError):
    """A single association write, repoint or delete failed."""
