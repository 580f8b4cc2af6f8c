#!/usr/bin/env python3
"""
Sync target abstraction for local and remote SSH paths.

A target is where a project gets mirrored to. Remote targets use the
rsync notation ``[user@]host:path``; anything else is taken to be a
local directory, which rsync handles just as well.
"""

import re
import sys
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional


class FilePath(ABC):
    """
    Abstract base class for sync targets (local or remote).

    Provides the small interface the command builder and the
    user-facing messages need, independent of where the target lives.
    """

    def __init__(self, path: str):
        """
        Initialize a FilePath.

        Args:
            path: Path string (local or remote)
        """
        self._path = path

    @staticmethod
    def create(path: str) -> 'FilePath':
        """
        Factory method to create appropriate FilePath subclass.

        Args:
            path: Path string to wrap

        Returns:
            LocalFile or SSHFile instance depending on path format
        """
        if SSHFile.is_ssh_path(path):
            return SSHFile(path)
        else:
            return LocalFile(path)

    @abstractmethod
    def for_display(self) -> str:
        """Get a formatted string suitable for display to users."""
        pass

    @abstractmethod
    def for_rsync(self) -> str:
        """Get the path string formatted for use with rsync."""
        pass

    def __str__(self) -> str:
        return self.for_rsync()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}('{self._path}')"


class LocalFile(FilePath):
    """
    Represents a local filesystem path.

    Wraps Python's pathlib.Path and provides the FilePath interface.
    """

    def __init__(self, path: str):
        super().__init__(path)
        self._pathobj = Path(path).expanduser()

    def exists(self) -> bool:
        """Check if the local path exists."""
        return self._pathobj.exists()

    def is_dir(self) -> bool:
        """Check if the local path is a directory."""
        return self._pathobj.is_dir()

    def for_display(self) -> str:
        """Get resolved absolute path for display."""
        return str(self._pathobj.resolve())

    def for_rsync(self) -> str:
        return str(self._pathobj)

    def validate(self, arg_name: str) -> None:
        """
        Validate that this path exists and is a directory.

        Args:
            arg_name: Name for error messages

        Raises:
            SystemExit: If validation fails
        """
        if not self.exists():
            print(f"Error: {arg_name} does not exist: {self.for_display()}", file=sys.stderr)
            sys.exit(1)

        if not self.is_dir():
            print(f"Error: {arg_name} is not a directory: {self.for_display()}", file=sys.stderr)
            sys.exit(1)


class SSHFile(FilePath):
    """
    Represents a remote SSH target.

    Handles paths in the format user@host:/path or host:path. Relative
    remote paths are resolved by rsync against the login directory.
    """

    # Pattern to match SSH paths: [user@]host:path
    SSH_PATTERN = re.compile(r'^(?:([a-zA-Z0-9_.-]+)@)?([a-zA-Z0-9._-]+):(.*)$', re.DOTALL)

    # A single letter before the colon is a Windows drive, not a host
    DRIVE_PATTERN = re.compile(r'^[a-zA-Z]:[\\/]')

    def __init__(self, path: str):
        """
        Initialize an SSHFile.

        Args:
            path: Remote SSH path in format user@host:/path or host:/path

        Raises:
            ValueError: If the path is not in SSH format
        """
        super().__init__(path)

        match = self.SSH_PATTERN.match(path)
        if not match or self.DRIVE_PATTERN.match(path):
            raise ValueError(f"Invalid SSH path format: {path}")

        self._user, self._host, self._remote_path = match.groups()

    @staticmethod
    def is_ssh_path(path: str) -> bool:
        """
        Check if a path string is in SSH format.

        Args:
            path: Path string to check

        Returns:
            True if path matches SSH format
        """
        if SSHFile.DRIVE_PATTERN.match(path):
            return False
        match = SSHFile.SSH_PATTERN.match(path)
        return bool(match) and bool(match.group(3))

    @property
    def user(self) -> Optional[str]:
        return self._user

    @property
    def host(self) -> str:
        return self._host

    @property
    def path(self) -> str:
        return self._remote_path

    def for_display(self) -> str:
        return self._path

    def for_rsync(self) -> str:
        return self._path


def validate_target(path: str) -> FilePath:
    """
    Check a configured target string and wrap it.

    Args:
        path: Target as written in the configuration

    Returns:
        The FilePath for the target

    Raises:
        ValueError: If the string cannot be used as an rsync destination
    """
    if not path or not path.strip():
        raise ValueError("empty target")
    if any(ord(ch) < 32 or ord(ch) == 127 for ch in path):
        raise ValueError(f"target contains a control character: {path!r}")
    if any(ch.isspace() for ch in path):
        raise ValueError(f"target contains whitespace: {path!r}")

    match = SSHFile.SSH_PATTERN.match(path)
    if match and not SSHFile.DRIVE_PATTERN.match(path) and not match.group(3):
        raise ValueError(f"remote target has no path: {path!r}")

    return FilePath.create(path)
