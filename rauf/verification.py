"""Prompt selection, completion detection and running of verification commands."""

from __future__ import annotations

import sys
from typing import IO, Iterable, Optional, Protocol

from .fences import scan_lines_outside_fence
from .runtime_exec import RuntimeExecError

COMPLETION_SENTINEL = "RAUF_COMPLETE"

_PROMPT_FILES = {
    "architect": "PROMPT_architect.md",
    "plan": "PROMPT_plan.md",
}
_DEFAULT_PROMPT = "PROMPT_build.md"


class VerificationError(Exception):
    """A verification command failed; ``output`` holds everything collected so far."""

    def __init__(self, message: str, output: str = "", command: str = ""):
        super().__init__(message)
        self.output = output
        self.command = command


class _ShellRunner(Protocol):
    def run_shell(
        self,
        command: str,
        stdout: Optional[IO[str]] = None,
        stderr: Optional[IO[str]] = None,
        timeout: Optional[float] = None,
    ) -> str: ...


class _Tee:
    """A text stream that writes to several streams at once."""

    def __init__(self, *streams: Optional[IO[str]]):
        self._streams = [s for s in streams if s is not None]

    def write(self, text: str) -> int:
        for stream in self._streams:
            stream.write(text)
        return len(text)

    def flush(self) -> None:
        for stream in self._streams:
            stream.flush()


def prompt_for_mode(mode: str) -> str:
    """The prompt file used for a mode; unknown modes use the build prompt."""
    return _PROMPT_FILES.get(mode.lower(), _DEFAULT_PROMPT)


def has_completion_sentinel(output: str) -> bool:
    """True if a line outside code fences consists of the completion sentinel alone."""
    return scan_lines_outside_fence(output, lambda trimmed: trimmed == COMPLETION_SENTINEL)


def format_verify_commands(cmds: Optional[Iterable[str]]) -> str:
    """Join the non-empty commands with " && "."""
    if not cmds:
        return ""
    return " && ".join(cmd.strip() for cmd in cmds if cmd.strip())


def run_verification(
    runner: _ShellRunner,
    cmds: Iterable[str],
    log_file: Optional[IO[str]] = None,
) -> str:
    """Run each command in turn, stopping at the first failure.

    Output is echoed to the console and the log file. Returns the combined
    output, each command's part headed by "## Command: <cmd>". A failing
    command raises VerificationError carrying the output collected so far.
    """
    parts: list[str] = []
    for raw in cmds:
        cmd = raw.strip()
        if not cmd:
            continue
        print(f"Running verification: {cmd}")
        failure: Optional[RuntimeExecError] = None
        try:
            output = runner.run_shell(
                cmd,
                _Tee(sys.stdout, log_file),
                _Tee(sys.stderr, log_file),
            )
        except RuntimeExecError as exc:
            failure = exc
            output = exc.output
        if output:
            parts.append(f"## Command: {cmd}\n{output}\n")
        if failure is not None:
            raise VerificationError(
                f"verification command {cmd!r} failed: {failure}",
                output="".join(parts),
                command=cmd,
            ) from failure
    return "".join(parts)