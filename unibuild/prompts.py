"""Prompt policies deciding how preprocessing questions are answered."""
from __future__ import annotations

from enum import Enum
from typing import Mapping, TextIO
import os
import sys

from .request import Platform
from .staleness import StalenessMarker


class PreprocessingChoice(str, Enum):
    RUN = "run"
    SKIP = "skip"
    SKIP_SESSION = "skip-session"


class PromptPolicy:
    interactive = False

    def choose_preprocessing(
        self,
        platform: Platform,
        configuration: str,
        marker: StalenessMarker | None,
    ) -> PreprocessingChoice:
        raise NotImplementedError

    def continue_after_failure(self, platform: Platform, configuration: str) -> bool:
        raise NotImplementedError


class NonInteractivePolicy(PromptPolicy):
    """Fixed answers for CI: never run preprocessing unasked, never continue after a failure."""

    def choose_preprocessing(
        self,
        platform: Platform,
        configuration: str,
        marker: StalenessMarker | None,
    ) -> PreprocessingChoice:
        return PreprocessingChoice.SKIP

    def continue_after_failure(self, platform: Platform, configuration: str) -> bool:
        return False


class InteractivePolicy(PromptPolicy):
    interactive = True

    def __init__(self, *, stdin: TextIO | None = None, stdout: TextIO | None = None) -> None:
        self._stdin = stdin
        self._stdout = stdout

    @property
    def stdin(self) -> TextIO:
        return self._stdin or sys.stdin

    @property
    def stdout(self) -> TextIO:
        return self._stdout or sys.stdout

    def _ask(self, question: str) -> str:
        self.stdout.write(question)
        self.stdout.flush()
        answer = self.stdin.readline()
        self.stdout.write("\n")
        return answer.strip().lower()[:1]

    def _banner(self, title: str) -> None:
        rule = "=" * 55
        self.stdout.write(f"\n{rule}\n  {title}\n{rule}\n\n")

    def choose_preprocessing(
        self,
        platform: Platform,
        configuration: str,
        marker: StalenessMarker | None,
    ) -> PreprocessingChoice:
        target = f"{platform.build_target}/{configuration}"
        if marker is None:
            self._banner("Preprocessing Required")
            self.stdout.write(
                f"This is the first build for {target}.\n"
                "Preprocessing must run to prepare game data, localization, etc.\n\n"
            )
            answer = self._ask("Run preprocessing now? [Y/n]: ")
            return PreprocessingChoice.SKIP if answer == "n" else PreprocessingChoice.RUN

        self._banner("Preprocessing Check")
        self.stdout.write(
            f"Last run: {marker.timestamp} for {target}\n\n"
            "  [y] Yes - Run preprocessing (recommended for data changes)\n"
            "  [n] No  - Skip and use existing data (faster)\n"
            "  [s] Skip and don't ask again for this build session\n\n"
        )
        answer = self._ask("Your choice [y/n/s]: ")
        if answer == "y":
            return PreprocessingChoice.RUN
        if answer == "s":
            return PreprocessingChoice.SKIP_SESSION
        return PreprocessingChoice.SKIP

    def continue_after_failure(self, platform: Platform, configuration: str) -> bool:
        return self._ask("Continue with build anyway? [y/N]: ") == "y"


def select_policy(
    *,
    force_non_interactive: bool = False,
    stdin: TextIO | None = None,
    environment: Mapping[str, str] | None = None,
) -> PromptPolicy:
    """Pick the interactive policy only when attached to a terminal outside CI."""
    env = environment if environment is not None else os.environ
    stream = stdin or sys.stdin
    if force_non_interactive or env.get("CI", "").lower() == "true":
        return NonInteractivePolicy()
    try:
        attached = stream.isatty()
    except (AttributeError, ValueError):
        attached = False
    return InteractivePolicy(stdin=stdin) if attached else NonInteractivePolicy()


__all__ = [
    "InteractivePolicy",
    "NonInteractivePolicy",
    "PreprocessingChoice",
    "PromptPolicy",
    "select_policy",
]
