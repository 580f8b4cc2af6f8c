import asyncio
import logging
import sys

# Import from the same package
from .command import check_rsync_available
from .config import load_config
from .coordinator import SyncCoordinator
from .errors import RemoteSyncError
from .remote_path import LocalFile
from .reporting import prt_error
from .watch import watch_project


def remote_sync():
    """Main function for remote_sync command."""
    dry_run, verbose, args = parse_flags(sys.argv[1:], sync_usage)
    if len(args) > 1:
        sync_usage()
    file = args[0] if args else None

    configure_logging(verbose)
    require_rsync()
    config = load_config_or_exit()

    prt_error(f"Synchronizing FROM: {config.local_path}" + (f" ({file})" if file else ""))
    for remote in config.remotes:
        prt_error(f"              TO: {remote}")
    if dry_run:
        prt_error("(dry run, nothing will be transferred)")
    prt_error("")

    try:
        results = asyncio.run(sync_once(config, dry_run=dry_run, file=file))
    except (RemoteSyncError, ValueError) as e:
        prt_error(f"Error: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        prt_error("\n\nSynchronization interrupted by user.")
        sys.exit(130)

    failed = [r for r in results if not r.ok]
    if failed:
        prt_error(f"\n{len(failed)} of {len(results)} synchronizations failed.")
        sys.exit(1)
    prt_error("\nSynchronization completed successfully!")


async def sync_once(config, dry_run=False, file=None):
    coordinator = SyncCoordinator()
    coordinator.sync_project(config, dry_run=dry_run, file=file)
    return await coordinator.wait_idle()


def sync_usage():
    prt_error("Usage: remote_sync [--dry-run] [--verbose] [FILE]")
    prt_error("")
    prt_error("Mirrors the current project to every remote in its .remotesync.json")
    prt_error("")
    prt_error("Arguments:")
    prt_error("  FILE           Sync only this file (path relative to the current directory)")
    prt_error("")
    prt_error("Options:")
    prt_error("  --dry-run, -n  Show what would be transferred without transferring")
    prt_error("  --verbose, -v  Log what the coordinator is doing")
    prt_error("")
    prt_error("Examples:")
    prt_error("  cd /home/user/myproject")
    prt_error("  remote_sync")
    prt_error("  # Syncs /home/user/myproject/ to each configured remote")
    prt_error("")
    prt_error("  remote_sync src/app.py")
    prt_error("  # Syncs only src/app.py, keeping its path on the remote")
    sys.exit(1)


def remote_sync_watch():
    """Main function for remote_sync_watch command."""
    dry_run, verbose, args = parse_flags(sys.argv[1:], watch_usage)
    if args:
        watch_usage()

    configure_logging(verbose)
    require_rsync()
    config = load_config_or_exit()

    if not config.sync_on_save:
        prt_error(f"Error: sync on save is disabled for {config.local_path}")
        sys.exit(1)

    prt_error(f"Watching: {config.local_path}")
    for remote in config.remotes:
        prt_error(f"      TO: {remote}")
    prt_error("Press Ctrl-C to stop.")
    prt_error("")

    try:
        asyncio.run(watch_project(SyncCoordinator(), config, dry_run=dry_run))
    except RemoteSyncError as e:
        prt_error(f"Error: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        prt_error("\n\nStopped watching.")
        sys.exit(130)


def watch_usage():
    prt_error("Usage: remote_sync_watch [--dry-run] [--verbose]")
    prt_error("")
    prt_error("Mirrors the current project, then syncs every file as it is saved")
    prt_error("")
    prt_error("Options:")
    prt_error("  --dry-run, -n  Show what would be transferred without transferring")
    prt_error("  --verbose, -v  Log file events and sync sessions")
    sys.exit(1)


def parse_flags(argv, usage):
    """Split the common options from positional arguments."""
    dry_run = verbose = False
    args = []
    for arg in argv:
        if arg in ('--dry-run', '-n'):
            dry_run = True
        elif arg in ('--verbose', '-v'):
            verbose = True
        elif arg.startswith('-') and arg != '-':
            usage()
        else:
            args.append(arg)
    return dry_run, verbose, args


def configure_logging(verbose):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )


def require_rsync():
    if not check_rsync_available():
        prt_error("Error: rsync is not available on this system.")
        prt_error("Please install rsync:")
        prt_error("  Ubuntu/Debian: sudo apt-get install rsync")
        prt_error("  macOS: brew install rsync (or use built-in version)")
        prt_error("  Windows: Install via WSL, Cygwin, or msys2")
        sys.exit(1)


def load_config_or_exit():
    try:
        config = load_config()
    except RemoteSyncError as e:
        prt_error(f"Error: {e}")
        sys.exit(1)

    LocalFile(config.local_path).validate("Project directory")
    return config
