"""Running commands on the host shell or inside a Docker container."""

from __future__ import annotations

import codecs
import hashlib
import os
import signal
import subprocess
import sys
import threading
from dataclasses import dataclass, field
from typing import IO, Optional

from slugify import slugify

MAX_SHELL_OUTPUT = 1024 * 1024
CONTAINER_WORKDIR = "/workspace"

_DANGEROUS_DOCKER_FLAGS = {
    "--privileged": "grants full host access",
    "--cap-add": "adds container capabilities",
    "--security-opt": "modifies security settings",
    "--pid": "shares host PID namespace",
    "--network=host": "shares host network namespace",
    "--ipc": "shares IPC namespace",
}


class RuntimeExecError(Exception):
    """A command could not be prepared, started or did not succeed."""

    def __init__(self, message: str, output: str = "", returncode: Optional[int] = None):
        super().__init__(message)
        self.output = output
        self.returncode = returncode


def host_uid_gid() -> tuple[int, int]:
    """The current user and group ids, or (-1, -1) where the platform has none."""
    if os.name == "nt" or not hasattr(os, "getuid"):
        return -1, -1
    return os.getuid(), os.getgid()


def validate_docker_args(args: list[str]) -> None:
    """Raise ValueError if the arguments weaken container isolation."""
    for arg in args:
        for flag, description in _DANGEROUS_DOCKER_FLAGS.items():
            if arg == flag or arg.startswith(flag + "="):
                raise ValueError(f"docker_args contains {flag} which {description}")


def is_windows_abs_path(path: str) -> bool:
    """True for paths of the form C:\\foo or C:/foo."""
    if len(path) < 3:
        return False
    drive = path[0]
    return (
        drive.isascii()
        and drive.isalpha()
        and path[1] == ":"
        and path[2] in ("\\", "/")
    )


def format_docker_volume(host_path: str, container_path: str) -> str:
    """Build a "host:container" volume mount, warning about ambiguous paths."""
    if os.name == "nt":
        if not is_windows_abs_path(host_path) and ":" in host_path:
            print(
                f"Warning: workdir {host_path!r} has unusual format for Windows Docker volume mount",
                file=sys.stderr,
            )
    elif ":" in host_path:
        print(
            f"Warning: workdir {host_path!r} contains colons which may be "
            "misinterpreted by Docker volume mount",
            file=sys.stderr,
        )
    return f"{host_path}:{container_path}"


def _user_args() -> list[str]:
    uid, gid = host_uid_gid()
    if uid >= 0 and gid >= 0:
        return ["-u", f"{uid}:{gid}"]
    return []


class _LimitedBuffer:
    """Keeps the first ``limit`` bytes written to it, from several threads."""

    def __init__(self, limit: int):
        self._limit = limit
        self._data = bytearray()
        self._lock = threading.Lock()

    def write(self, chunk: bytes) -> None:
        with self._lock:
            room = self._limit - len(self._data)
            if room > 0:
                self._data.extend(chunk[:room])

    def text(self) -> str:
        with self._lock:
            return bytes(self._data).decode("utf-8", errors="replace")


def _pump(stream: IO[bytes], writer: Optional[IO[str]], buffer: _LimitedBuffer) -> None:
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    for chunk in iter(lambda: stream.read1(65536), b""):
        buffer.write(chunk)
        if writer is not None:
            writer.write(decoder.decode(chunk))
            writer.flush()
    if writer is not None:
        tail = decoder.decode(b"", final=True)
        if tail:
            writer.write(tail)
            writer.flush()
    stream.close()


def _kill(proc: subprocess.Popen) -> None:
    try:
        if os.name != "nt":
            os.killpg(proc.pid, signal.SIGKILL)
        else:
            proc.kill()
    except (ProcessLookupError, PermissionError, OSError):
        proc.kill()


@dataclass(frozen=True)
class RuntimeExec:
    """Where commands run: the host shell, a fresh container, or a kept container."""

    runtime: str = ""
    docker_image: str = ""
    docker_args: tuple[str, ...] = field(default_factory=tuple)
    docker_container: str = ""
    work_dir: str = ""
    quiet: bool = False

    def is_docker(self) -> bool:
        return self.runtime.lower() == "docker"

    def is_docker_persist(self) -> bool:
        return self.runtime.lower() in ("docker-persist", "docker_persist")

    def command(self, name: str, *args: str) -> list[str]:
        """Return the argv that runs ``name args`` in this runtime."""
        if not self.is_docker() and not self.is_docker_persist():
            return [name, *args]
        if not self.docker_image:
            raise RuntimeExecError("docker runtime requires docker_image")
        workdir = self.resolve_work_dir()
        if self.is_docker_persist():
            return self._command_docker_persist(workdir, name, *args)
        return self._command_docker_run(workdir, name, *args)

    def run_shell(
        self,
        command: str,
        stdout: Optional[IO[str]] = None,
        stderr: Optional[IO[str]] = None,
        timeout: Optional[float] = None,
    ) -> str:
        """Run a shell command, echoing its output, and return the combined output.

        At most 1 MiB of output is kept. A non-zero exit, a timeout or a
        failure to start raises RuntimeExecError carrying the output so far.
        """
        name, args = self.shell_args(command)
        argv = self.command(name, *args)
        buffer = _LimitedBuffer(MAX_SHELL_OUTPUT)
        try:
            proc = subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                start_new_session=os.name != "nt",
            )
        except OSError as exc:
            raise RuntimeExecError(f"failed to start {argv[0]}: {exc}") from exc
        pumps = [
            threading.Thread(target=_pump, args=(proc.stdout, stdout, buffer), daemon=True),
            threading.Thread(target=_pump, args=(proc.stderr, stderr, buffer), daemon=True),
        ]
        for pump in pumps:
            pump.start()
        try:
            returncode = proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            _kill(proc)
            proc.wait()
            for pump in pumps:
                pump.join(timeout=5)
            raise RuntimeExecError(
                f"command timed out after {timeout}s", output=buffer.text()
            ) from None
        for pump in pumps:
            pump.join()
        output = buffer.text()
        if returncode != 0:
            raise RuntimeExecError(
                f"command exited with status {returncode}",
                output=output,
                returncode=returncode,
            )
        return output

    def shell_args(self, command: str) -> tuple[str, list[str]]:
        """The shell and its arguments used to run a command line."""
        if self.is_docker() or self.is_docker_persist():
            return "sh", ["-c", command]
        if os.name == "nt":
            return "cmd", ["/C", command]
        return "sh", ["-c", command]

    def resolve_work_dir(self) -> str:
        """The configured working directory, or the current one, normalised."""
        return os.path.normpath(self.work_dir or os.getcwd())

    def _command_docker_run(self, workdir: str, name: str, *args: str) -> list[str]:
        argv = ["docker", "run", "--rm", "-i", *_user_args()]
        argv += ["-v", format_docker_volume(workdir, CONTAINER_WORKDIR), "-w", CONTAINER_WORKDIR]
        if self.docker_args:
            try:
                validate_docker_args(list(self.docker_args))
            except ValueError as exc:
                print(f"Warning: {exc}", file=sys.stderr)
            argv += list(self.docker_args)
        return [*argv, self.docker_image, name, *args]

    def _command_docker_persist(self, workdir: str, name: str, *args: str) -> list[str]:
        container = self.docker_container_name(workdir)
        self.ensure_docker_container(container, workdir)
        return ["docker", "exec", "-i", *_user_args(), container, name, *args]

    def docker_container_name(self, workdir: str) -> str:
        """The configured container name, or one derived from the work directory."""
        if self.docker_container.strip():
            return self.docker_container
        base = os.path.basename(os.path.normpath(workdir))
        if base in ("", ".", os.sep):
            base = "workspace"
        short_hash = hashlib.sha256(workdir.encode("utf-8")).hexdigest()[:8]
        return f"rauf-{slugify(base)}-{short_hash}"

    def ensure_docker_container(self, name: str, workdir: str) -> None:
        """Make sure the persistent container is running, restarting or creating it."""
        name = self.docker_container
        if not name:
            raise RuntimeExecError("docker_persist runtime requires docker_container")
        state = self.docker_container_state(name)
        if state == "running":
            return
        if state == "exited":
            self._docker(["docker", "start", name], f"failed to restart container {name}")
            return
        argv = ["docker", "run", "-d", "--name", name, *_user_args()]
        argv += ["-v", format_docker_volume(workdir, CONTAINER_WORKDIR), "-w", CONTAINER_WORKDIR]
        argv += list(self.docker_args)
        argv += [self.docker_image, "sleep", "infinity"]
        self._docker(argv, f"failed to start container {name}")

    def docker_container_state(self, name: str) -> str:
        """The container's status as Docker reports it, or "none" if it does not exist."""
        try:
            result = subprocess.run(
                ["docker", "inspect", "-f", "{{.State.Status}}", name],
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as exc:
            raise RuntimeExecError(f"docker inspect failed: {exc}") from exc
        if result.returncode != 0:
            err = result.stderr or ""
            if "No such object" in err or "not found" in err:
                return "none"
            raise RuntimeExecError(
                f"docker inspect failed: exit status {result.returncode}",
                output=err,
                returncode=result.returncode,
            )
        return (result.stdout or "").strip()

    @staticmethod
    def _docker(argv: list[str], failure: str) -> None:
        try:
            result = subprocess.run(argv, capture_output=True, text=True, check=False)
        except OSError as exc:
            raise RuntimeExecError(f"{failure}: {exc}") from exc
        if result.returncode != 0:
            raise RuntimeExecError(
                f"{failure}: exit status {result.returncode}",
                output=result.stderr or "",
                returncode=result.returncode,
            )