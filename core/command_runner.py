"""Utilities for executing external commands with optional dry-run support."""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Sequence, TextIO
import os
import shlex
import subprocess
import sys
import threading


@dataclass
class CommandResult:
    """Represents the outcome of an executed command."""

    command: Sequence[str]
    returncode: int
    stdout: str
    stderr: str
    streamed: bool = False
    log_path: Path | None = None
    timed_out: bool = False


class CommandError(RuntimeError):
    """Raised when a command fails."""

    def __init__(self, result: CommandResult):
        message = f"Command failed with exit code {result.returncode}: {' '.join(map(shlex.quote, result.command))}"
        if result.streamed:
            message = f"{message}\nstdout/stderr already streamed above."
        else:
            message = (
                f"{message}\n"
                f"stdout: {result.stdout}\n"
                f"stderr: {result.stderr}"
            )
        super().__init__(message)
        self.result = result


class ProcessHandle:
    """Handle on a process started in the background."""

    def __init__(self, command: Sequence[str], process: subprocess.Popen | None = None) -> None:
        self.command = list(command)
        self._process = process

    def running(self) -> bool:
        return self._process is not None and self._process.poll() is None

    def terminate(self, *, timeout: float = 10.0) -> None:
        process = self._process
        if process is None or process.poll() is not None:
            return
        process.terminate()
        try:
            process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()


class CommandRunner:
    """Abstract command runner interface."""

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
        note: str | None = None,
        stream: bool = False,
        log_file: Path | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        raise NotImplementedError

    def spawn(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        note: str | None = None,
    ) -> ProcessHandle:
        raise NotImplementedError

    def format_command(self, command: Sequence[str]) -> str:
        return " ".join(shlex.quote(part) for part in command)


class SubprocessCommandRunner(CommandRunner):
    """Command runner that executes commands via :mod:`subprocess`."""

    def __init__(self, *, output: TextIO | None = None) -> None:
        self._output = output

    @staticmethod
    def _merge_environment(env: Mapping[str, str] | None) -> Dict[str, str] | None:
        if env is None:
            return None
        merged = os.environ.copy()
        merged.update(env)
        return merged

    def _finalize(self, result: CommandResult, *, check: bool) -> CommandResult:
        if check and result.returncode != 0:
            raise CommandError(result)
        return result

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
        note: str | None = None,
        stream: bool = False,
        log_file: Path | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        merged_env = self._merge_environment(env)
        if not stream:
            try:
                process = subprocess.run(
                    command,
                    cwd=str(cwd) if cwd else None,
                    env=merged_env,
                    capture_output=True,
                    text=True,
                    check=False,
                    timeout=timeout,
                )
            except subprocess.TimeoutExpired as exc:
                return self._finalize(
                    CommandResult(
                        command=command,
                        returncode=-1,
                        stdout=_decode(exc.stdout),
                        stderr=_decode(exc.stderr),
                        timed_out=True,
                    ),
                    check=check,
                )
            return self._finalize(
                CommandResult(
                    command=command,
                    returncode=process.returncode,
                    stdout=process.stdout,
                    stderr=process.stderr,
                ),
                check=check,
            )

        returncode, timed_out = self._run_streaming(
            command,
            cwd=cwd,
            env=merged_env,
            log_file=log_file,
            timeout=timeout,
        )
        return self._finalize(
            CommandResult(
                command=command,
                returncode=returncode,
                stdout="",
                stderr="",
                streamed=True,
                log_path=log_file,
                timed_out=timed_out,
            ),
            check=check,
        )

    def _run_streaming(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None,
        env: Mapping[str, str] | None,
        log_file: Path | None,
        timeout: float | None,
    ) -> tuple[int, bool]:
        output = self._output or sys.stdout
        log_handle: TextIO | None = None
        if log_file is not None:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            log_handle = log_file.open("w", encoding="utf-8")

        try:
            process = subprocess.Popen(
                command,
                cwd=str(cwd) if cwd else None,
                env=env,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
                bufsize=1,
            )
            expired = threading.Event()

            def _expire() -> None:
                expired.set()
                process.kill()

            timer = threading.Timer(timeout, _expire) if timeout else None
            if timer is not None:
                timer.daemon = True
                timer.start()
            try:
                assert process.stdout is not None
                for line in process.stdout:
                    output.write(line)
                    if log_handle is not None:
                        log_handle.write(line)
                returncode = process.wait()
            except KeyboardInterrupt:
                process.terminate()
                try:
                    process.wait(timeout=10)
                except subprocess.TimeoutExpired:
                    process.kill()
                    process.wait()
                raise
            finally:
                if timer is not None:
                    timer.cancel()
                if process.stdout is not None:
                    process.stdout.close()
        finally:
            if log_handle is not None:
                log_handle.close()

        return returncode, expired.is_set()

    def spawn(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        note: str | None = None,
    ) -> ProcessHandle:
        process = subprocess.Popen(
            command,
            cwd=str(cwd) if cwd else None,
            env=self._merge_environment(env),
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
        return ProcessHandle(command, process)


def _decode(value: bytes | str | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def tail_lines(path: Path, count: int = 20) -> List[str]:
    """Return the last ``count`` lines of ``path`` (empty when unreadable)."""

    try:
        with path.open("r", encoding="utf-8", errors="replace") as handle:
            return [line.rstrip("\n") for line in deque(handle, maxlen=count)]
    except OSError:
        return []


@dataclass(slots=True)
class RecordedCommand:
    command: List[str]
    cwd: str | None
    env: Dict[str, str]
    note: str | None
    stream: bool
    log_file: str | None = None
    background: bool = False


class RecordingCommandRunner(CommandRunner):
    """Command runner that records commands instead of executing them."""

    def __init__(self) -> None:
        self.commands: List[RecordedCommand] = []

    def result_for(self, command: Sequence[str]) -> CommandResult:
        """Hook for subclasses that script command outcomes."""
        return CommandResult(command=command, returncode=0, stdout="", stderr="")

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
        note: str | None = None,
        stream: bool = False,
        log_file: Path | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        self.commands.append(
            RecordedCommand(
                command=list(command),
                cwd=str(cwd) if cwd else None,
                env=dict(env) if env else {},
                note=note,
                stream=stream,
                log_file=str(log_file) if log_file else None,
            )
        )
        result = self.result_for(command)
        result.streamed = stream
        result.log_path = log_file
        if check and result.returncode != 0:
            raise CommandError(result)
        return result

    def spawn(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        note: str | None = None,
    ) -> ProcessHandle:
        self.commands.append(
            RecordedCommand(
                command=list(command),
                cwd=str(cwd) if cwd else None,
                env=dict(env) if env else {},
                note=note,
                stream=False,
                background=True,
            )
        )
        return ProcessHandle(command)

    def iter_formatted(self, *, workspace: Path | None = None) -> Iterable[str]:
        default_cwd = str(workspace) if workspace else None
        for record in self.commands:
            cmd = self.format_command(record.command)
            cwd = record.cwd or default_cwd
            parts: List[str] = ["[dry-run]"]
            if record.note:
                parts.append(record.note)
            if cwd:
                parts.append(f"(cwd={cwd})")
            if record.background:
                parts.append("(background)")
            parts.append(cmd)
            yield " ".join(parts)


__all__ = [
    "CommandError",
    "CommandResult",
    "CommandRunner",
    "ProcessHandle",
    "RecordedCommand",
    "RecordingCommandRunner",
    "SubprocessCommandRunner",
    "tail_lines",
]
