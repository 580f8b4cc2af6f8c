#!/usr/bin/env python3
"""
rsync command construction.

Builds the argument list for mirroring a project directory, or a single
file inside it, to one target.
"""

import os
import subprocess
from pathlib import Path
from typing import Iterable, List, Optional

from .remote_path import FilePath

# Version control metadata is never mirrored
DEFAULT_EXCLUDES = (".git", ".hg", ".svn")


def check_rsync_available(rsync: str = "rsync") -> bool:
    """
    Check if rsync is available on the system.

    Returns:
        True if rsync is available, False otherwise
    """
    try:
        result = subprocess.run(
            [rsync, "--version"],
            capture_output=True,
            text=True,
            check=False
        )
        return result.returncode == 0
    except FileNotFoundError:
        return False


def merge_excludes(*groups: Iterable[str]) -> List[str]:
    """
    Union of several exclude lists, first occurrence wins.

    Trailing slashes are dropped so that ``build`` and ``build/`` count
    as the same directory.
    """
    merged = []
    seen = set()
    for group in groups:
        for name in group or ():
            name = name.strip().rstrip("/")
            if name and name not in seen:
                seen.add(name)
                merged.append(name)
    return merged


def relative_file(local_path: str, file: str) -> str:
    """
    Express ``file`` relative to the project root.

    Args:
        local_path: Project root
        file: Absolute path, or a path relative to the current directory

    Returns:
        POSIX-style path relative to ``local_path``

    Raises:
        ValueError: If the file lies outside the project
    """
    root = Path(local_path).expanduser().resolve()
    target = Path(file).expanduser()
    if not target.is_absolute():
        target = Path.cwd() / target
    target = Path(os.path.normpath(str(target)))
    # Resolve the directory only, a symlinked file is still synced by its own name
    target = target.parent.resolve() / target.name
    try:
        rel = target.relative_to(root)
    except ValueError:
        raise ValueError(f"{file} is not inside the project {root}")
    if str(rel) == ".":
        raise ValueError(f"{file} is the project root, not a file in it")
    return rel.as_posix()


def build_rsync_command(
    remote: str,
    local_path: str,
    excludes: Iterable[str] = (),
    dry_run: bool = False,
    file: Optional[str] = None,
    rsync: str = "rsync",
) -> List[str]:
    """
    Build the rsync command for one target.

    Args:
        remote: Destination, ``[user@]host:path`` or a local directory
        local_path: Project directory to mirror
        excludes: Project-level directory names to leave out
        dry_run: Only report what would be transferred
        file: Path relative to ``local_path``; syncs just that file
        rsync: rsync executable

    Returns:
        List of command arguments for subprocess
    """
    # rsync options:
    # -a: archive mode (recursive, preserves permissions, times, symlinks, etc.)
    # -v: verbose output
    # -R: use the part of the source after "/./" as the path on the remote
    command = [rsync, "-avR" if file else "-av"]

    if dry_run:
        command.append("--dry-run")

    for name in merge_excludes(DEFAULT_EXCLUDES, excludes):
        command.append(f"--exclude={name}")

    source = str(local_path).rstrip("/") or "/"
    if file:
        source = f"{source}/./{file}"
    elif not source.endswith("/"):
        # Trailing slash syncs the directory contents, not the directory itself
        source += "/"

    command.append(source)
    command.append(FilePath.create(remote).for_rsync())

    return command
