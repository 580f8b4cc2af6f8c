"""
Pytest configuration and shared fixtures for remotesync tests.
"""

import asyncio
import json
import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Dict, Generator, List, Optional
import pytest


def check_rsync_available() -> bool:
    """Check if rsync is available."""
    try:
        result = subprocess.run(
            ['rsync', '--version'],
            capture_output=True
        )
        return result.returncode == 0
    except FileNotFoundError:
        return False


# Skip markers
rsync_available = pytest.mark.skipif(
    not check_rsync_available(),
    reason="rsync not available"
)

# Marker for CLI tests (slow, skipped by default)
cli_tests = pytest.mark.cli


async def settle(rounds: int = 10) -> None:
    """Let scheduled tasks and callbacks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeStream:
    """Minimal stand-in for an asyncio StreamReader."""

    def __init__(self, data: bytes, chunk_size: int = 7):
        self._data = data
        self._chunk_size = chunk_size

    async def read(self, n: int = -1) -> bytes:
        size = min(n, self._chunk_size) if n > 0 else self._chunk_size
        chunk, self._data = self._data[:size], self._data[size:]
        return chunk


class FakeProcess:
    """A process whose exit is decided by the test."""

    def __init__(self, argv: List[str], output: Optional[bytes] = None):
        self.argv = argv
        self.stdout = FakeStream(output) if output is not None else None
        self._exit = asyncio.get_running_loop().create_future()

    @property
    def remote(self) -> str:
        return self.argv[-1]

    @property
    def finished(self) -> bool:
        return self._exit.done()

    def finish(self, returncode: int = 0) -> None:
        self._exit.set_result(returncode)

    def fail(self, error: Exception) -> None:
        """Make the pending wait() raise instead of returning an exit code."""
        self._exit.set_exception(error)

    async def wait(self) -> int:
        return await self._exit


class FakeSpawner:
    """
    Records every argv it is asked to run and hands out FakeProcess objects.

    Remotes listed in ``fail_for`` raise FileNotFoundError on launch, the
    way a missing executable does. Remotes in ``raise_for`` raise the
    exception given for them.
    """

    def __init__(self):
        self.calls: List[List[str]] = []
        self.processes: List[FakeProcess] = []
        self.fail_for = set()
        self.raise_for: Dict[str, Exception] = {}
        self.output: Optional[bytes] = None

    async def __call__(self, argv: List[str]) -> FakeProcess:
        self.calls.append(list(argv))
        if argv[-1] in self.fail_for:
            raise FileNotFoundError(2, "No such file or directory", argv[0])
        if argv[-1] in self.raise_for:
            raise self.raise_for[argv[-1]]
        process = FakeProcess(list(argv), self.output)
        self.processes.append(process)
        return process

    def calls_for(self, remote: str) -> List[List[str]]:
        return [argv for argv in self.calls if argv[-1] == remote]

    def running(self, remote: Optional[str] = None) -> List[FakeProcess]:
        return [
            p for p in self.processes
            if not p.finished and (remote is None or p.remote == remote)
        ]

    def finish(self, remote: str, returncode: int = 0) -> None:
        running = self.running(remote)
        assert running, f"no running process for {remote}"
        running[0].finish(returncode)

    def finish_all(self, returncode: int = 0) -> None:
        for process in self.running():
            process.finish(returncode)


@pytest.fixture
def spawner() -> FakeSpawner:
    return FakeSpawner()


@pytest.fixture
def messages() -> List[str]:
    """Collects user-facing messages from a coordinator."""
    return []


@pytest.fixture
def temp_local_dir() -> Generator[Path, None, None]:
    """
    Create a temporary local directory for testing.

    Yields:
        Path to temporary directory
    """
    temp_dir = Path(tempfile.mkdtemp(prefix='remotesync_test_')).resolve()
    try:
        yield temp_dir
    finally:
        if temp_dir.exists():
            shutil.rmtree(temp_dir)


@pytest.fixture
def test_file_content() -> Dict[str, str]:
    """
    Standard project file contents for verification.

    Returns:
        Dictionary mapping filenames to content
    """
    return {
        'README.md': '# Test project\n',
        'app.py': 'print("hello")\n',
        'file with spaces.txt': 'Testing spaces in filename',
        'src/module.py': 'VALUE = 1\n',
        'src/nested/deep.txt': 'File in nested subdirectory',
        'empty_file.txt': '',
    }


@pytest.fixture
def excluded_content() -> Dict[str, str]:
    """Files that live in directories which must never be mirrored."""
    return {
        '.git/HEAD': 'ref: refs/heads/main\n',
        'node_modules/pkg/index.js': 'module.exports = {}\n',
    }


@pytest.fixture
def populated_project(
    temp_local_dir: Path,
    test_file_content: Dict[str, str],
    excluded_content: Dict[str, str],
) -> Path:
    """
    Create a project directory with files, a .git directory and node_modules.

    Returns:
        Path to the project root (no config file yet)
    """
    project_dir = temp_local_dir / "project"
    project_dir.mkdir()

    for filepath, content in {**test_file_content, **excluded_content}.items():
        full_path = project_dir / filepath
        full_path.parent.mkdir(parents=True, exist_ok=True)
        full_path.write_text(content)

    return project_dir


@pytest.fixture
def empty_target(temp_local_dir: Path) -> Path:
    """
    Create an empty local directory to mirror into.

    Returns:
        Path to the target directory
    """
    target = temp_local_dir / "target"
    target.mkdir()
    return target


def write_config(project_dir: Path, **settings) -> Path:
    """Write a .remotesync.json into ``project_dir``."""
    config_file = project_dir / ".remotesync.json"
    config_file.write_text(json.dumps(settings, indent=2))
    return config_file


@pytest.fixture
def configured_project(populated_project: Path, empty_target: Path) -> Path:
    """A populated project whose only remote is ``empty_target``."""
    write_config(
        populated_project,
        remotes=[str(empty_target)],
        excludes=["node_modules"],
    )
    return populated_project


@pytest.fixture
def clean_env(monkeypatch) -> None:
    """Remove remotesync environment overrides."""
    for name in ("REMOTESYNC_CONFIG", "REMOTESYNC_REMOTES", "REMOTESYNC_EXCLUDES"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def original_cwd() -> Generator[Path, None, None]:
    """
    Save and restore the original working directory.

    Yields:
        Original working directory path
    """
    original = Path.cwd()
    try:
        yield original
    finally:
        os.chdir(original)


def verify_sync_result(
    dest_dir: Path,
    expected_files: Dict[str, str],
    check_content: bool = True
) -> List[str]:
    """
    Verify that a sync operation produced the expected results.

    Args:
        dest_dir: Destination directory to verify
        expected_files: Dict of relative paths to expected content
        check_content: Whether to verify file contents (default: True)

    Returns:
        List of error messages (empty if verification passed)
    """
    errors = []

    for filepath, expected_content in expected_files.items():
        full_path = dest_dir / filepath

        if not full_path.exists():
            errors.append(f"Missing file: {filepath}")
            continue

        if not full_path.is_file():
            errors.append(f"Not a file: {filepath}")
            continue

        if check_content:
            actual_content = full_path.read_text()
            if actual_content != expected_content:
                errors.append(
                    f"Content mismatch in {filepath}:\n"
                    f"  Expected: {repr(expected_content[:50])}\n"
                    f"  Got: {repr(actual_content[:50])}"
                )

    return errors


@pytest.fixture
def verify_sync(test_file_content: Dict[str, str]):
    """
    Fixture providing sync verification function with test_file_content bound.

    Returns:
        Verification function
    """
    def _verify(dest_dir: Path, check_content: bool = True) -> List[str]:
        return verify_sync_result(dest_dir, test_file_content, check_content)
    return _verify


# Pytest configuration
def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line(
        "markers",
        "cli: mark test as CLI integration test (slow, skipped by default)"
    )


def pytest_collection_modifyitems(config, items):
    """Skip CLI tests by default unless --run-cli flag is provided."""
    if not config.getoption("--run-cli", default=False):
        skip_cli = pytest.mark.skip(reason="CLI tests skipped (use --run-cli to run)")
        for item in items:
            if "cli" in item.keywords:
                item.add_marker(skip_cli)


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--run-cli",
        action="store_true",
        default=False,
        help="Run slow CLI integration tests"
    )
