"""Preprocessing collaborator and the once-per-session decision around it."""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, List, Mapping, Sequence
import threading

from core.command_runner import CommandRunner
from core.console import Console

from .errors import PreprocessingError
from .prompts import PreprocessingChoice, PromptPolicy
from .request import BuildRequest, Platform
from .staleness import StalenessTracker


class PreprocessingOutcome(str, Enum):
    RAN = "ran"
    SKIPPED = "skipped"
    FAILED_CONTINUED = "failed-continued"


class PreprocessingRunner:
    """Runs the external preprocessing command for one configuration."""

    def __init__(
        self,
        runner: CommandRunner,
        *,
        project_root: Path,
        command: Sequence[str],
        environment: Mapping[str, str] | None = None,
    ) -> None:
        self._runner = runner
        self._project_root = project_root
        self._command = list(command)
        self._environment = dict(environment) if environment else None

    def command_for(self, configuration: str) -> List[str]:
        return [part.replace("{configuration}", configuration) for part in self._command]

    def run(self, configuration: str) -> int:
        command = self.command_for(configuration)
        if not command:
            raise PreprocessingError("No preprocessing command configured")
        try:
            result = self._runner.run(
                command,
                cwd=self._project_root,
                env=self._environment,
                check=False,
                stream=True,
                note="Preprocessing",
            )
        except OSError as exc:
            raise PreprocessingError(f"Could not start preprocessing: {exc}") from exc
        return result.returncode


class PreprocessingCoordinator:
    """Makes the preprocessing decision at most once per configuration per session.

    Preprocessing output is platform-agnostic, so a successful run refreshes the
    marker of every platform. The lock keeps the decision and the marker write
    mutually exclusive when pipelines run on worker threads.
    """

    def __init__(
        self,
        *,
        tracker: StalenessTracker,
        runner: PreprocessingRunner,
        policy: PromptPolicy,
        console: Console,
        platforms: Iterable[Platform] = tuple(Platform),
        dry_run: bool = False,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._tracker = tracker
        self._runner = runner
        self._policy = policy
        self._console = console
        self._platforms = tuple(platforms)
        self._dry_run = dry_run
        self._clock = clock
        self._lock = threading.Lock()
        self._decided: set[str] = set()
        self._ran: set[str] = set()
        self._suppressed = False

    @property
    def suppressed(self) -> bool:
        return self._suppressed

    def ran_this_session(self, configuration: str) -> bool:
        return configuration in self._ran

    def prepare(self, platform: Platform, request: BuildRequest) -> PreprocessingOutcome:
        configuration = request.configuration
        target = f"{platform.build_target}/{configuration}"

        if request.skip_preprocessing:
            self._console.info(f"Skipping preprocessing for {target} (--skip-preprocessing)")
            return PreprocessingOutcome.SKIPPED

        with self._lock:
            if self._suppressed:
                self._console.info(f"Preprocessing prompt suppressed for this session; skipping for {target}")
                return PreprocessingOutcome.SKIPPED

            marker = self._tracker.marker(platform, configuration)
            if configuration in self._decided:
                if marker is not None:
                    self._console.info(f"Preprocessing already handled this session; marker for {target}: {marker.timestamp}")
                else:
                    self._console.info(f"Preprocessing already handled this session; skipping for {target}")
                return PreprocessingOutcome.SKIPPED
            self._decided.add(configuration)
            stale = self._tracker.is_stale(platform, configuration)

            if marker is None:
                self._console.info(f"Preprocessing has never been run for {target}")
            else:
                self._console.info(f"Preprocessing was last run for {target} on: {marker.timestamp}")

            if request.force_preprocessing:
                return self._run(platform, configuration)

            if not self._policy.interactive:
                if stale:
                    self._console.warning(
                        f"Preprocessing data for {target} is missing or stale, but running in non-interactive mode. "
                        "Build may have missing data; rerun with --preprocess."
                    )
                else:
                    self._console.info("Running in non-interactive mode, skipping preprocessing prompt")
                return PreprocessingOutcome.SKIPPED

            choice = self._policy.choose_preprocessing(platform, configuration, marker)
            if choice is PreprocessingChoice.RUN:
                return self._run(platform, configuration)
            if choice is PreprocessingChoice.SKIP_SESSION:
                self._suppressed = True
                self._console.info("Skipping preprocessing prompt for this session")
                return PreprocessingOutcome.SKIPPED
            if stale:
                self._console.warning("Building without preprocessing may cause runtime errors")
            else:
                self._console.info("Skipping preprocessing, using existing data")
            return PreprocessingOutcome.SKIPPED

    def _run(self, platform: Platform, configuration: str) -> PreprocessingOutcome:
        self._console.info(f"=== Running preprocessing for {configuration} ===")
        returncode = self._runner.run(configuration)
        if returncode == 0:
            self._ran.add(configuration)
            self._console.info("Preprocessing completed successfully")
            if self._dry_run:
                self._console.info("[dry-run] Skipping marker update")
            else:
                for marker in self._tracker.record_all(self._platforms, configuration, self._clock()):
                    self._console.debug(
                        f"Recorded marker {self._tracker.describe(marker.platform, configuration)}"
                    )
            return PreprocessingOutcome.RAN

        self._console.error(f"Preprocessing failed with exit code {returncode}")
        if self._policy.interactive and self._policy.continue_after_failure(platform, configuration):
            self._console.warning("Continuing build despite preprocessing failure")
            return PreprocessingOutcome.FAILED_CONTINUED
        raise PreprocessingError(
            f"Preprocessing for {configuration} failed with exit code {returncode}; build cancelled"
        )


__all__ = [
    "PreprocessingCoordinator",
    "PreprocessingOutcome",
    "PreprocessingRunner",
]
