"""Shared fixtures for the unibuild tests."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from io import StringIO
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Sequence

from core.command_runner import CommandResult, ProcessHandle, RecordingCommandRunner
from core.console import Console
from unibuild.config_loader import ProjectSettings

FIXED_NOW = datetime(2025, 1, 2, 3, 4, 5)

REQUIRED_ENV = {
    "IOS_APP_ID": "com.example.game",
    "APPLE_TEAM_ID": "TEAM123",
    "ANDROID_PACKAGE_NAME": "com.example.game",
    "ANDROID_KEYSTORE_PATH": "/keys/release.keystore",
    "ANDROID_KEYSTORE_PASS": "secret",
    "ANDROID_KEY_ALIAS": "release",
    "ANDROID_KEY_PASS": "secret",
}


@dataclass
class Script:
    match: str
    returncode: int = 0
    stdout: str = ""
    action: Callable[[Sequence[str]], None] | None = None
    error: OSError | None = None


class ScriptedCommandRunner(RecordingCommandRunner):
    """Recording runner whose outcomes are scripted by command substring."""

    def __init__(self) -> None:
        super().__init__()
        self.scripts: List[Script] = []

    def script(
        self,
        match: str,
        *,
        returncode: int = 0,
        stdout: str = "",
        action: Callable[[Sequence[str]], None] | None = None,
        error: OSError | None = None,
    ) -> None:
        self.scripts.append(Script(match, returncode, stdout, action, error))

    def _raise_scripted_error(self, command: Sequence[str]) -> None:
        text = self.format_command(command)
        for entry in self.scripts:
            if entry.match in text:
                if entry.error is not None:
                    raise entry.error
                return

    def result_for(self, command: Sequence[str]) -> CommandResult:
        self._raise_scripted_error(command)
        text = self.format_command(command)
        for entry in self.scripts:
            if entry.match in text:
                if entry.action is not None:
                    entry.action(command)
                return CommandResult(command=command, returncode=entry.returncode, stdout=entry.stdout, stderr="")
        return super().result_for(command)

    def spawn(self, command: Sequence[str], **kwargs: Any) -> ProcessHandle:
        handle = super().spawn(command, **kwargs)
        self._raise_scripted_error(command)
        return handle

    def formatted(self) -> List[str]:
        return [self.format_command(record.command) for record in self.commands]

    def matching(self, match: str) -> List[str]:
        return [line for line in self.formatted() if match in line]


def make_console(level: str = "debug") -> Console:
    return Console(level, stdout=StringIO(), stderr=StringIO(), clock=lambda: FIXED_NOW)


def console_output(console: Console) -> str:
    return console.stdout.getvalue() + console.stderr.getvalue()  # type: ignore[attr-defined]


def install_unity(root: Path, version: str, executable: str = "Editor/Unity") -> Path:
    path = root / version / executable
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("#!/bin/sh\n", encoding="utf-8")
    return path


def make_settings(editors: Path, **overrides: Mapping[str, Any]) -> ProjectSettings:
    data: Dict[str, Any] = {
        "toolchain": {"roots": [str(editors)], "executable": "Editor/Unity"},
        "clean": {"globs": []},
    }
    for key, value in overrides.items():
        data[key] = value
    return ProjectSettings.from_mapping(data)


def write_build_outputs(project_root: Path, podfile: str) -> Callable[[Sequence[str]], None]:
    """Return an action that mimics Unity writing its outputs for ``-buildTarget``."""

    def _action(command: Sequence[str]) -> None:
        args = list(command)
        target = args[args.index("-buildTarget") + 1]
        output = Path(args[args.index("-buildPath") + 1])
        if target == "iOS":
            output.mkdir(parents=True, exist_ok=True)
            (output / "Podfile").write_text(podfile, encoding="utf-8")
        else:
            output.parent.mkdir(parents=True, exist_ok=True)
            output.write_bytes(b"PK")
            (output.parent / "mapping.txt").write_text("mapping\n", encoding="utf-8")

    return _action
