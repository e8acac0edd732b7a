"""
Simple Update Checker - Errors
"""


class UpdateCheckerError(Exception):
    """Base class for all errors raised by the update checker."""


class ProviderError(UpdateCheckerError):
    """A version provider could not determine the latest version."""

    def __init__(self, message: str, provider: str = ""):
        super().__init__(message)
        self.provider = provider


class StoreError(UpdateCheckerError):
    """Reading from or writing to the program store failed."""


class ConsistencyError(UpdateCheckerError):
    """The program store and the in-memory view of it diverged."""


class NotificationError(UpdateCheckerError):
    """A push notification could not be delivered."""


class ConfigError(UpdateCheckerError):
    """The configuration could not be loaded or is invalid."""
