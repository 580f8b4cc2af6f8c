"""
User-facing output: stderr messages, rsync output sinks and exit descriptions.
"""

import signal
import sys
from typing import List, Optional


def prt_error(*args, **kwargs):
    return print(*args, file=sys.stderr, **kwargs)


def describe_exit(returncode: Optional[int]) -> str:
    """
    Describe how an rsync process ended.

    Args:
        returncode: Process return code; negative for a signal,
            None if the process never started

    Returns:
        Short human-readable description
    """
    if returncode is None:
        return "failed to start"
    if returncode == 0:
        return "finished"
    if returncode < 0:
        try:
            name = signal.Signals(-returncode).name
        except ValueError:
            name = f"signal {-returncode}"
        return f"killed by {name}"
    return f"exited abnormally with code {returncode}"


class OutputSink:
    """
    Collects the output of one rsync run.

    Every line is kept in ``lines``; with ``echo`` set it is also written
    to stderr prefixed by the target, so interleaved output from several
    remotes stays readable.
    """

    def __init__(self, remote: str, echo: bool = True):
        self.remote = remote
        self.echo = echo
        self.lines: List[str] = []

    def write(self, line: str) -> None:
        line = line.rstrip("\r\n")
        self.lines.append(line)
        if self.echo:
            prt_error(f"[{self.remote}] {line}")

    def text(self) -> str:
        return "\n".join(self.lines)
