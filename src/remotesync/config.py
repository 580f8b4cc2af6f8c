"""
Project configuration.

A project is marked by a ``.remotesync.json`` file; the directory holding
it is the project root. The file is looked up from the current directory
upwards, much like git looks for ``.git``::

    {
        "remotes": ["deploy@web1:/srv/app", "web2:/srv/app"],
        "excludes": ["node_modules", "build"],
        "sync_on_save": true
    }

Environment variables override the file:

- REMOTESYNC_CONFIG: explicit path to the config file
- REMOTESYNC_REMOTES: whitespace-separated targets, replaces ``remotes``
- REMOTESYNC_EXCLUDES: whitespace-separated names, added to ``excludes``
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .command import DEFAULT_EXCLUDES, merge_excludes
from .errors import ConfigError
from .remote_path import validate_target

CONFIG_NAME = ".remotesync.json"


@dataclass(frozen=True)
class ProjectConfig:
    local_path: str
    remotes: List[str] = field(default_factory=list)
    excludes: List[str] = field(default_factory=list)
    sync_on_save: bool = True
    config_file: Optional[str] = None

    @property
    def all_excludes(self) -> List[str]:
        """Project excludes merged with the built-in ones."""
        return merge_excludes(DEFAULT_EXCLUDES, self.excludes)


def find_config_file(start: Optional[str] = None) -> Optional[Path]:
    """
    Find the nearest config file at or above ``start``.

    Returns:
        Path to the file, or None if there is none up to the filesystem root
    """
    directory = Path(start or os.getcwd()).expanduser().resolve()
    if directory.is_file():
        directory = directory.parent
    for candidate in [directory, *directory.parents]:
        config_file = candidate / CONFIG_NAME
        if config_file.is_file():
            return config_file
    return None


def _read_config_file(config_file: Path) -> Dict[str, Any]:
    try:
        with open(config_file, "r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigError(f"cannot read configuration: {e.strerror}", str(config_file))
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid JSON: {e}", str(config_file))
    if not isinstance(data, dict):
        raise ConfigError("configuration must be a JSON object", str(config_file))
    return data


def _string_list(data: Dict[str, Any], key: str, config_file: Optional[str]) -> List[str]:
    value = data.get(key, [])
    if isinstance(value, str):
        value = value.split()
    if not isinstance(value, list) or not all(isinstance(x, str) for x in value):
        raise ConfigError(f"'{key}' must be a list of strings", config_file)
    return [x.strip() for x in value if x.strip()]


def _unique(items: List[str]) -> List[str]:
    unique = []
    for item in items:
        if item not in unique:
            unique.append(item)
    return unique


def load_config(start: Optional[str] = None, environ: Optional[Dict[str, str]] = None) -> ProjectConfig:
    """
    Load the configuration of the project containing ``start``.

    Args:
        start: Directory (or file) inside the project; defaults to the cwd
        environ: Environment to read overrides from; defaults to os.environ

    Returns:
        ProjectConfig with environment overrides applied

    Raises:
        ConfigError: If the file is unreadable or holds invalid values
    """
    env = os.environ if environ is None else environ

    explicit = env.get("REMOTESYNC_CONFIG")
    if explicit:
        config_path = Path(explicit).expanduser()
        if not config_path.is_file():
            raise ConfigError("configuration file does not exist", str(config_path))
    else:
        config_path = find_config_file(start)

    data: Dict[str, Any] = {}
    config_file = None
    if config_path is not None:
        config_path = config_path.resolve()
        config_file = str(config_path)
        data = _read_config_file(config_path)
        root = config_path.parent
    else:
        root = Path(start or os.getcwd()).expanduser().resolve()
        if root.is_file():
            root = root.parent

    local_path = data.get("local_path", ".")
    if not isinstance(local_path, str) or not local_path:
        raise ConfigError("'local_path' must be a non-empty string", config_file)
    local_path = str((root / Path(local_path).expanduser()).resolve())

    remotes = _string_list(data, "remotes", config_file)
    excludes = _string_list(data, "excludes", config_file)

    sync_on_save = data.get("sync_on_save", True)
    if not isinstance(sync_on_save, bool):
        raise ConfigError("'sync_on_save' must be true or false", config_file)

    if env.get("REMOTESYNC_REMOTES") is not None:
        remotes = env["REMOTESYNC_REMOTES"].split()
    excludes += env.get("REMOTESYNC_EXCLUDES", "").split()

    for remote in remotes:
        try:
            validate_target(remote)
        except ValueError as e:
            raise ConfigError(f"invalid remote: {e}", config_file)

    return ProjectConfig(
        local_path=local_path,
        remotes=_unique(remotes),
        excludes=merge_excludes(excludes),
        sync_on_save=sync_on_save,
        config_file=config_file,
    )
