"""
Sync coordinator.

Runs one rsync per target without blocking the caller and keeps a session
table keyed by (project, remote). While a session is in flight, further
requests for the same pair are coalesced into a single pending request
that is replayed once the running rsync exits.

All state changes happen on the asyncio event loop that calls
``request_sync``; process completion comes back to the coordinator as the
end of the task that awaited the process.
"""

import asyncio
import logging
import os
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from .command import build_rsync_command, relative_file
from .config import ProjectConfig
from .errors import NoRemotesError
from .reporting import OutputSink, describe_exit, prt_error

logger = logging.getLogger(__name__)

Spawner = Callable[[List[str]], Awaitable[Any]]


async def spawn_rsync(argv: List[str]) -> asyncio.subprocess.Process:
    """Start rsync with stdout and stderr merged into one pipe."""
    return await asyncio.create_subprocess_exec(
        *argv,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT,
    )


@dataclass(frozen=True)
class SyncRequest:
    """Parameters of one rsync run."""
    local_path: str
    excludes: Tuple[str, ...] = ()
    dry_run: bool = False
    file: Optional[str] = None

    def merge(self, newer: 'SyncRequest') -> 'SyncRequest':
        """
        Coalesce a newer request into this pending one.

        The newer request's options win. Two different files, or any
        whole-project request, widen the result to the whole project.
        """
        file = self.file if self.file == newer.file else None
        return replace(newer, file=file)


@dataclass
class SyncSession:
    project: str
    remote: str
    request: SyncRequest
    argv: List[str]
    sink: OutputSink
    process: Any = None
    pending: Optional[SyncRequest] = None
    task: Optional[asyncio.Task] = field(default=None, repr=False)


@dataclass(frozen=True)
class SyncResult:
    project: str
    remote: str
    returncode: Optional[int]
    description: str
    dry_run: bool = False
    file: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class SyncCoordinator:
    """
    Serializes rsync runs per (project, remote).

    Args:
        spawn: Coroutine function starting a process from an argv list;
            defaults to an asyncio subprocess
        rsync: rsync executable
        echo: Echo rsync output to stderr
        report: Callable used for user-facing messages
    """

    def __init__(
        self,
        spawn: Optional[Spawner] = None,
        rsync: str = "rsync",
        echo: bool = True,
        report: Callable[[str], Any] = prt_error,
    ):
        self._spawn = spawn or spawn_rsync
        self._rsync = rsync
        self._echo = echo
        self._report = report
        self._sessions: Dict[Tuple[str, str], SyncSession] = {}
        self.results: List[SyncResult] = []

    def request_sync(
        self,
        remotes: Iterable[str],
        local_path: str,
        excludes: Iterable[str] = (),
        dry_run: bool = False,
        file: Optional[str] = None,
        project: Optional[str] = None,
    ) -> List[str]:
        """
        Request a sync of ``local_path`` to every remote.

        Must be called from within a running event loop. Remotes with an
        idle session get an rsync started; busy ones get their pending
        request set (or merged into the one already pending).

        Args:
            remotes: Targets, ``[user@]host:path`` or local directories
            local_path: Project directory
            excludes: Project-level directory names to leave out
            dry_run: Pass ``--dry-run`` to rsync
            file: Sync only this file, relative to ``local_path``
            project: Session table key; defaults to the absolute local path

        Returns:
            The remotes for which an rsync was started by this call

        Raises:
            NoRemotesError: If ``remotes`` is empty
        """
        remotes = list(dict.fromkeys(remotes))
        if not remotes:
            raise NoRemotesError("no remote targets configured")

        project = project or os.path.abspath(local_path)
        request = SyncRequest(local_path, tuple(excludes), dry_run, file)

        launched = []
        for remote in remotes:
            session = self._sessions.get((project, remote))
            if session is None:
                self._start(project, remote, request)
                launched.append(remote)
            elif session.pending is None:
                logger.debug("sync to %s busy, marking pending", remote)
                session.pending = request
            else:
                logger.debug("sync to %s already pending, merging request", remote)
                session.pending = session.pending.merge(request)
        return launched

    def sync_project(self, config: ProjectConfig, dry_run: bool = False, file: Optional[str] = None) -> List[str]:
        """Request a sync of a configured project, optionally of a single file."""
        if file is not None:
            file = relative_file(config.local_path, file)
        return self.request_sync(
            config.remotes,
            config.local_path,
            config.excludes,
            dry_run=dry_run,
            file=file,
            project=config.local_path,
        )

    def on_process_exit(self, session: SyncSession, returncode: int) -> None:
        """
        Finish a session: clear it, report the outcome, replay any pending request.
        """
        self._clear(session)
        result = self._record(session, returncode)
        mark = "✓" if result.ok else "✗"
        self._report(f"{mark} rsync to {session.remote} {result.description}")

        pending, session.pending = session.pending, None
        if pending is not None:
            logger.debug("replaying pending sync to %s", session.remote)
            self.request_sync(
                [session.remote],
                pending.local_path,
                pending.excludes,
                dry_run=pending.dry_run,
                file=pending.file,
                project=session.project,
            )

    def is_active(self, remote: str, project: str) -> bool:
        return (project, remote) in self._sessions

    def is_pending(self, remote: str, project: str) -> bool:
        session = self._sessions.get((project, remote))
        return session is not None and session.pending is not None

    def active_remotes(self, project: Optional[str] = None) -> List[str]:
        return [
            remote for (proj, remote) in self._sessions
            if project is None or proj == project
        ]

    def session(self, remote: str, project: str) -> Optional[SyncSession]:
        return self._sessions.get((project, remote))

    @property
    def failures(self) -> List[SyncResult]:
        return [r for r in self.results if not r.ok]

    async def wait_idle(self) -> List[SyncResult]:
        """
        Wait until no session is active, including replayed ones.

        Returns:
            Every result recorded so far
        """
        while self._sessions:
            tasks = [s.task for s in self._sessions.values() if s.task is not None]
            await asyncio.gather(*tasks)
        return list(self.results)

    def _start(self, project: str, remote: str, request: SyncRequest) -> SyncSession:
        loop = asyncio.get_running_loop()
        argv = build_rsync_command(
            remote,
            request.local_path,
            request.excludes,
            dry_run=request.dry_run,
            file=request.file,
            rsync=self._rsync,
        )
        session = SyncSession(
            project=project,
            remote=remote,
            request=request,
            argv=argv,
            sink=OutputSink(remote, echo=self._echo),
        )
        self._sessions[(project, remote)] = session
        logger.info("Executing: %s", " ".join(argv))
        session.task = loop.create_task(self._run(session))
        return session

    async def _run(self, session: SyncSession) -> None:
        try:
            session.process = await self._spawn(session.argv)
        except Exception as e:
            # OSError for a missing executable, ValueError for a NUL in argv
            self._launch_failed(session, e)
            return
        try:
            await self._drain(session)
            returncode = await session.process.wait()
        except Exception as e:
            self._lost(session, e)
            return
        self.on_process_exit(session, returncode)

    async def _drain(self, session: SyncSession) -> None:
        stdout = getattr(session.process, "stdout", None)
        if stdout is None:
            return
        buffer = b""
        while True:
            chunk = await stdout.read(4096)
            if not chunk:
                break
            buffer += chunk
            *lines, buffer = buffer.split(b"\n")
            for line in lines:
                session.sink.write(line.decode(errors="replace"))
        if buffer:
            session.sink.write(buffer.decode(errors="replace"))

    def _launch_failed(self, session: SyncSession, error: Exception) -> None:
        self._clear(session)
        self._record(session, None)
        self._report(f"✗ rsync to {session.remote} failed to start: {error}")
        if session.pending is not None:
            logger.warning("dropping pending sync to %s after launch failure", session.remote)
            session.pending = None

    def _lost(self, session: SyncSession, error: Exception) -> None:
        # The process started but could not be followed to its exit
        self._clear(session)
        self._record(session, None, description=f"failed while running: {error}")
        self._report(f"✗ rsync to {session.remote} failed while running: {error}")
        if session.pending is not None:
            logger.warning("dropping pending sync to %s after error", session.remote)
            session.pending = None

    def _clear(self, session: SyncSession) -> None:
        key = (session.project, session.remote)
        if self._sessions.get(key) is session:
            del self._sessions[key]

    def _record(
        self, session: SyncSession, returncode: Optional[int], description: Optional[str] = None
    ) -> SyncResult:
        result = SyncResult(
            project=session.project,
            remote=session.remote,
            returncode=returncode,
            description=description or describe_exit(returncode),
            dry_run=session.request.dry_run,
            file=session.request.file,
        )
        self.results.append(result)
        return result
