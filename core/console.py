"""Leveled console output used by the command line tools."""
from __future__ import annotations

from datetime import datetime
from typing import Callable, TextIO
import sys


class Console:
    """Simple console output handler with configurable log level.

    Levels: none < error < warn < info < debug
    Default: 'info'
    """

    LEVELS = {
        "none": 0,
        "error": 1,
        "warn": 2,
        "info": 3,
        "debug": 4,
    }

    def __init__(
        self,
        level: str = "info",
        *,
        stdout: TextIO | None = None,
        stderr: TextIO | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        if level not in self.LEVELS:
            raise ValueError(f"Unknown console level '{level}'")
        self.level_name = level
        self.level = self.LEVELS[level]
        self._stdout = stdout
        self._stderr = stderr
        self._clock = clock

    @property
    def stdout(self) -> TextIO:
        return self._stdout or sys.stdout

    @property
    def stderr(self) -> TextIO:
        return self._stderr or sys.stderr

    def _stamp(self) -> str:
        return self._clock().strftime("%Y-%m-%d %H:%M:%S")

    def _emit(self, stream: TextIO, message: str) -> None:
        print(f"[{self._stamp()}] {message}", file=stream)

    def info(self, message: str) -> None:
        if self.level >= self.LEVELS["info"]:
            self._emit(self.stdout, message)

    def warning(self, message: str) -> None:
        if self.level >= self.LEVELS["warn"]:
            self._emit(self.stderr, f"WARNING: {message}")

    def error(self, message: str) -> None:
        if self.level >= self.LEVELS["error"]:
            self._emit(self.stderr, f"ERROR: {message}")

    def debug(self, message: str) -> None:
        if self.level >= self.LEVELS["debug"]:
            self._emit(self.stdout, f"[DEBUG] {message}")

    def header(self, title: str) -> None:
        if self.level < self.LEVELS["info"]:
            return
        separator = "=" * (len(title) + 4)
        print("", file=self.stdout)
        print(separator, file=self.stdout)
        print(f"  {title}", file=self.stdout)
        print(separator, file=self.stdout)
        print("", file=self.stdout)

    def plain(self, message: str = "") -> None:
        """Write ``message`` without a timestamp, regardless of level."""
        print(message, file=self.stdout)


__all__ = ["Console"]
