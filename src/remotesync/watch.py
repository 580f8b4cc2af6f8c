"""
Sync on save.

A watchdog observer watches the project tree. Each saved file becomes a
single-file sync request, handed over to the event loop that owns the
coordinator, so the observer thread never touches session state itself.
"""

import asyncio
import fnmatch
import logging
from pathlib import PurePosixPath
from typing import Callable, Iterable, Optional

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .command import relative_file
from .config import ProjectConfig
from .coordinator import SyncCoordinator
from .errors import RemoteSyncError
from .reporting import prt_error

logger = logging.getLogger(__name__)

# Editor swap, backup and lock files
IGNORED_PATTERNS = ("*.swp", "*.swx", "*~", ".#*", "#*#", "4913")


class SaveHandler(FileSystemEventHandler):
    """Turns file system events under a project into relative file paths."""

    def __init__(self, local_path: str, excludes: Iterable[str], on_save: Callable[[str], None]):
        super().__init__()
        self.local_path = local_path
        self.excludes = set(excludes)
        self.on_save = on_save

    def on_modified(self, event):
        if not event.is_directory:
            self._handle(event.src_path)

    def on_created(self, event):
        if not event.is_directory:
            self._handle(event.src_path)

    def on_moved(self, event):
        # Editors that save through a temporary file end with a rename
        if not event.is_directory:
            self._handle(event.dest_path)

    def relative_path(self, path) -> Optional[str]:
        """Project-relative path of ``path``, or None if it should not be synced."""
        if isinstance(path, bytes):
            path = path.decode(errors="replace")
        try:
            rel = relative_file(self.local_path, path)
        except ValueError:
            return None
        parts = PurePosixPath(rel).parts
        if any(part in self.excludes for part in parts):
            return None
        if any(fnmatch.fnmatch(parts[-1], pattern) for pattern in IGNORED_PATTERNS):
            return None
        return rel

    def _handle(self, path) -> None:
        rel = self.relative_path(path)
        if rel is None:
            logger.debug("ignoring event for %s", path)
            return
        logger.debug("saved: %s", rel)
        self.on_save(rel)


class ProjectWatcher:
    """
    Connects a watchdog observer on the project to a SyncCoordinator.

    Args:
        coordinator: Coordinator owned by ``loop``
        config: Project to watch
        loop: Event loop that runs the coordinator
        dry_run: Pass ``--dry-run`` to every sync
        observer_factory: Creates the watchdog observer
    """

    def __init__(
        self,
        coordinator: SyncCoordinator,
        config: ProjectConfig,
        loop: asyncio.AbstractEventLoop,
        dry_run: bool = False,
        observer_factory=Observer,
    ):
        self.coordinator = coordinator
        self.config = config
        self.loop = loop
        self.dry_run = dry_run
        self.handler = SaveHandler(config.local_path, config.all_excludes, self._on_save)
        self._observer_factory = observer_factory
        self._observer = None

    def start(self) -> None:
        self._observer = self._observer_factory()
        self._observer.schedule(self.handler, self.config.local_path, recursive=True)
        self._observer.start()
        logger.info("watching %s", self.config.local_path)

    def stop(self) -> None:
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    def _on_save(self, rel: str) -> None:
        # Called on the observer thread
        self.loop.call_soon_threadsafe(self.request, rel)

    def request(self, rel: str) -> None:
        try:
            self.coordinator.request_sync(
                self.config.remotes,
                self.config.local_path,
                self.config.excludes,
                dry_run=self.dry_run,
                file=rel,
                project=self.config.local_path,
            )
        except RemoteSyncError as e:
            prt_error(f"Error: {e}")


async def watch_project(
    coordinator: SyncCoordinator,
    config: ProjectConfig,
    dry_run: bool = False,
    stop: Optional[asyncio.Event] = None,
    observer_factory=Observer,
) -> None:
    """
    Sync the whole project once, then sync every saved file until ``stop`` is set.

    Raises:
        NoRemotesError: If the project has no remotes
    """
    coordinator.sync_project(config, dry_run=dry_run)
    watcher = ProjectWatcher(
        coordinator, config, asyncio.get_running_loop(),
        dry_run=dry_run, observer_factory=observer_factory,
    )
    watcher.start()
    try:
        await (stop or asyncio.Event()).wait()
    finally:
        watcher.stop()
    await coordinator.wait_idle()
