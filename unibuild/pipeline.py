"""Per-platform build pipelines.

A pipeline walks a fixed sequence of stages for one platform::

    START -> RESOLVE_PREPROCESSING_DECISION -> PREPROCESSING | SKIP_PREPROCESSING
          -> TOOLCHAIN_BUILD -> MANIFEST_SANITIZE -> PUBLISH_ARTIFACT -> DONE

Any :class:`~unibuild.errors.OrchestratorError` raised along the way moves the
pipeline to ``FAILED`` and is stored on the returned outcome; deciding whether
that failure is fatal for the whole run is left to the orchestrator.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import ClassVar, Dict, List, Mapping, Type

from core.command_runner import CommandRunner, tail_lines
from core.console import Console

from .environment import EnvironmentBuilder
from .errors import BuildError, OrchestratorError, SanitizeError
from .manifest import ManifestSanitizer, SanitizeReport
from .preprocessing import PreprocessingCoordinator, PreprocessingOutcome
from .request import Platform, ResolvedContext

LOG_TAIL_LINES = 20


class Stage(str, Enum):
    START = "start"
    RESOLVE_PREPROCESSING_DECISION = "resolve-preprocessing-decision"
    PREPROCESSING = "preprocessing"
    SKIP_PREPROCESSING = "skip-preprocessing"
    TOOLCHAIN_BUILD = "toolchain-build"
    MANIFEST_SANITIZE = "manifest-sanitize"
    PUBLISH_ARTIFACT = "publish-artifact"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class BuildArtifact:
    platform: Platform
    output_path: Path
    mapping_path: Path | None = None


@dataclass(slots=True)
class PlatformOutcome:
    platform: Platform
    success: bool = False
    artifact: BuildArtifact | None = None
    error: OrchestratorError | None = None
    log_path: Path | None = None
    stages: List[Stage] = field(default_factory=list)
    preprocessing: PreprocessingOutcome | None = None
    sanitize_report: SanitizeReport | None = None
    environment: Dict[str, str] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)


class PlatformPipeline:
    """Shared stage sequence; subclasses describe the platform specifics."""

    platform: ClassVar[Platform]
    method: ClassVar[str]
    extra_flags: ClassVar[tuple[str, ...]] = ()

    def __init__(
        self,
        context: ResolvedContext,
        *,
        runner: CommandRunner,
        coordinator: PreprocessingCoordinator,
        console: Console,
    ) -> None:
        self.context = context
        self._runner = runner
        self._coordinator = coordinator
        self._console = console
        self._environment = EnvironmentBuilder(context.project_root, context.environment)

    @property
    def target(self) -> str:
        return self.platform.build_target

    @property
    def platform_root(self) -> Path:
        return self.context.build_root / self.target

    def output_path(self) -> Path:
        raise NotImplementedError

    def output_directory(self) -> Path:
        return self.output_path()

    def artifact(self) -> BuildArtifact:
        return BuildArtifact(platform=self.platform, output_path=self.output_path())

    def log_path(self) -> Path:
        return self.context.logs_dir / f"unity-build-{self.target}-{self.context.session_id}.log"

    def toolchain_command(self) -> List[str]:
        return [
            str(self.context.toolchain.executable),
            "-batchmode",
            "-nographics",
            "-projectPath",
            str(self.context.project_root),
            "-buildTarget",
            self.target,
            "-buildPath",
            str(self.output_path()),
            "-executeMethod",
            f"BuildScript.{self.method}",
            "-profile",
            self.context.configuration,
            "-stackTraceLogType",
            "None",
            *self.extra_flags,
        ]

    def _enter(self, outcome: PlatformOutcome, stage: Stage) -> None:
        outcome.stages.append(stage)
        self._console.debug(f"{self.target}: {stage.value}")

    def run(self) -> PlatformOutcome:
        request = self.context.request
        outcome = PlatformOutcome(platform=self.platform)
        self._console.header(f"{self.target} Build ({self.context.configuration})")
        self._enter(outcome, Stage.START)
        try:
            outcome.environment = self._environment.build(
                self.platform, self.context.settings.platform(self.platform), request
            )

            self._enter(outcome, Stage.RESOLVE_PREPROCESSING_DECISION)
            outcome.preprocessing = self._coordinator.prepare(self.platform, request)
            if outcome.preprocessing is PreprocessingOutcome.SKIPPED:
                self._enter(outcome, Stage.SKIP_PREPROCESSING)
            else:
                self._enter(outcome, Stage.PREPROCESSING)

            self._enter(outcome, Stage.TOOLCHAIN_BUILD)
            self._preflight(outcome.environment)
            outcome.log_path = self._build(outcome.environment)

            self._enter(outcome, Stage.MANIFEST_SANITIZE)
            self.sanitize(outcome)

            self._enter(outcome, Stage.PUBLISH_ARTIFACT)
            outcome.artifact = self.artifact()
            self._console.info(f"{self.target} build completed. Artifact available at: {outcome.artifact.output_path}")
        except OrchestratorError as exc:
            if exc.log_path is None:
                exc.log_path = outcome.log_path
            outcome.error = exc
            self._enter(outcome, Stage.FAILED)
            self._console.error(f"{self.target}: {exc.one_line()}")
            return outcome

        outcome.success = True
        self._enter(outcome, Stage.DONE)
        return outcome

    def _preflight(self, env: Mapping[str, str]) -> None:
        project_root = self.context.project_root
        for script in self.context.settings.preflight_scripts:
            path = project_root / script
            if not path.is_file():
                self._console.warning(f"{script} not found, skipping validation")
                continue
            self._console.info(f"Running preflight check {script}")
            result = self._runner.run(
                ["bash", script],
                cwd=project_root,
                env=env,
                check=False,
                note="Preflight",
            )
            if result.returncode != 0:
                raise BuildError(
                    f"Preflight check {script} failed with exit code {result.returncode}; build aborted",
                    returncode=result.returncode,
                )

    def _build(self, env: Mapping[str, str]) -> Path:
        dry_run = self.context.request.dry_run
        if not dry_run:
            self.output_directory().mkdir(parents=True, exist_ok=True)
            self.context.logs_dir.mkdir(parents=True, exist_ok=True)

        command = self.toolchain_command()
        log_path = self.log_path()
        self._console.info(f"Building Unity project for {self.target} using {self.context.configuration} profile...")
        self._console.debug(f"Command: {self._runner.format_command(command)}")
        try:
            result = self._runner.run(
                command,
                cwd=self.context.project_root,
                env=env,
                check=False,
                stream=True,
                log_file=log_path,
                note=f"Unity {self.target}",
            )
        except OSError as exc:
            raise BuildError(f"Could not start Unity for {self.target}: {exc}", log_path=log_path) from exc

        if result.returncode != 0:
            tail = tail_lines(log_path, LOG_TAIL_LINES)
            if tail:
                self._console.error(f"Last {len(tail)} lines of {log_path}:")
                for line in tail:
                    self._console.plain(f"    {line}")
            raise BuildError(
                f"Unity build for {self.target} failed with exit code {result.returncode}",
                log_path=log_path,
                returncode=result.returncode,
                log_tail=tail,
            )
        self._console.info(f"Build log saved to: {log_path}")
        return log_path

    def sanitize(self, outcome: PlatformOutcome) -> None:
        """Post-build manifest cleanup; platforms without a manifest skip it."""


class IOSPipeline(PlatformPipeline):
    platform = Platform.IOS
    method = "BuildiOS"

    def output_path(self) -> Path:
        return self.platform_root

    def manifest_path(self) -> Path:
        return self.output_path() / "Podfile"

    def sanitize(self, outcome: PlatformOutcome) -> None:
        if self.context.request.dry_run:
            self._console.info("[dry-run] Skipping Podfile cleanup")
            return
        manifest = self.context.settings.manifest
        sanitizer = ManifestSanitizer(
            canonical_source=manifest.canonical_source,
            deprecated_packages=manifest.deprecated_packages,
            console=self._console,
        )
        try:
            outcome.sanitize_report = sanitizer.sanitize(self.manifest_path())
        except SanitizeError as exc:
            if manifest.strict:
                raise
            message = f"Podfile left unsanitized: {exc.message}. pod install may fail later."
            outcome.warnings.append(message)
            self._console.warning(message)


class AndroidPipeline(PlatformPipeline):
    platform = Platform.ANDROID
    method = "BuildAndroid"
    extra_flags = ("-buildAppBundle",)

    def output_path(self) -> Path:
        return self.platform_root / "app.aab"

    def output_directory(self) -> Path:
        return self.platform_root

    def mapping_path(self) -> Path:
        return self.platform_root / "mapping.txt"

    def artifact(self) -> BuildArtifact:
        return BuildArtifact(
            platform=self.platform,
            output_path=self.output_path(),
            mapping_path=self.mapping_path(),
        )


PIPELINES: Dict[Platform, Type[PlatformPipeline]] = {
    Platform.IOS: IOSPipeline,
    Platform.ANDROID: AndroidPipeline,
}


__all__ = [
    "AndroidPipeline",
    "BuildArtifact",
    "IOSPipeline",
    "LOG_TAIL_LINES",
    "PIPELINES",
    "PlatformOutcome",
    "PlatformPipeline",
    "Stage",
]
