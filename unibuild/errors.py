"""Error taxonomy shared by every build component."""
from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Sequence


class ErrorKind(str, Enum):
    RESOLUTION = "resolution"
    PREPROCESSING = "preprocessing"
    BUILD = "build"
    SANITIZE = "sanitize"
    CONFIGURATION = "configuration"
    DEVICE = "device"


EXIT_SUCCESS = 0
EXIT_USAGE = 1
EXIT_INTERRUPTED = 130

EXIT_CODES: dict[ErrorKind, int] = {
    ErrorKind.RESOLUTION: 2,
    ErrorKind.PREPROCESSING: 3,
    ErrorKind.BUILD: 4,
    ErrorKind.SANITIZE: 5,
    ErrorKind.CONFIGURATION: 6,
    ErrorKind.DEVICE: EXIT_SUCCESS,
}


class OrchestratorError(RuntimeError):
    """Base class for structured build errors."""

    kind: ErrorKind = ErrorKind.BUILD

    def __init__(self, message: str, *, log_path: Path | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.log_path = log_path

    @property
    def exit_code(self) -> int:
        return EXIT_CODES[self.kind]

    def one_line(self) -> str:
        text = f"{self.kind.value}: {self.message}"
        if self.log_path is not None:
            text = f"{text} (log: {self.log_path})"
        return text


class ToolchainNotFound(OrchestratorError):
    kind = ErrorKind.RESOLUTION

    def __init__(self, version: str, searched: Sequence[str]) -> None:
        self.version = version
        self.searched = list(searched)
        super().__init__(f"Unity {version} not found")

    def details(self) -> list[str]:
        lines = ["Checked locations:"]
        lines.extend(f"  - {location}" for location in self.searched)
        lines.append("Install the editor via Unity Hub or set UNITY_PATH to its executable.")
        return lines


class PreprocessingError(OrchestratorError):
    kind = ErrorKind.PREPROCESSING


class BuildError(OrchestratorError):
    kind = ErrorKind.BUILD

    def __init__(
        self,
        message: str,
        *,
        log_path: Path | None = None,
        returncode: int | None = None,
        log_tail: Sequence[str] = (),
    ) -> None:
        super().__init__(message, log_path=log_path)
        self.returncode = returncode
        self.log_tail = list(log_tail)


class SanitizeError(OrchestratorError):
    kind = ErrorKind.SANITIZE


class ConfigurationError(OrchestratorError):
    kind = ErrorKind.CONFIGURATION


class DeviceToolingError(OrchestratorError):
    kind = ErrorKind.DEVICE


__all__ = [
    "BuildError",
    "ConfigurationError",
    "DeviceToolingError",
    "EXIT_CODES",
    "EXIT_INTERRUPTED",
    "EXIT_SUCCESS",
    "EXIT_USAGE",
    "ErrorKind",
    "OrchestratorError",
    "PreprocessingError",
    "SanitizeError",
    "ToolchainNotFound",
]
