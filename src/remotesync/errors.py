"""
Exceptions raised by remotesync.
"""

from typing import Optional


class RemoteSyncError(Exception):
    """Base class for errors reported by remotesync."""


class ConfigError(RemoteSyncError):
    """The project configuration could not be read or is invalid."""

    def __init__(self, message: str, config_file: Optional[str] = None):
        super().__init__(message)
        self.config_file = config_file

    def __str__(self) -> str:
        message = super().__str__()
        if self.config_file:
            return f"{self.config_file}: {message}"
        return message


class NoRemotesError(RemoteSyncError):
    """A sync was requested but no remote targets are configured."""
