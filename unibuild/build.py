"""Top-level build orchestration across the requested platforms."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Mapping
import os

from core.command_runner import CommandRunner
from core.console import Console

from .cleanup import clean_build_caches
from .config_loader import ProjectSettings
from .device import DeviceTooling, package_id_from
from .errors import EXIT_CODES, EXIT_SUCCESS, DeviceToolingError, ErrorKind, OrchestratorError, ToolchainNotFound
from .pipeline import PIPELINES, PlatformOutcome
from .preprocessing import PreprocessingCoordinator, PreprocessingRunner
from .prompts import PromptPolicy
from .request import BuildRequest, Platform, ResolvedContext, new_session_id
from .staleness import StalenessTracker
from .toolchains import ToolchainInstallation, ToolchainResolver


@dataclass(slots=True)
class BuildResult:
    request: BuildRequest
    outcomes: Dict[Platform, PlatformOutcome] = field(default_factory=dict)
    error: OrchestratorError | None = None
    toolchain: ToolchainInstallation | None = None
    cleaned: List[Path] = field(default_factory=list)
    device_error: DeviceToolingError | None = None

    @property
    def success(self) -> bool:
        if self.error is not None:
            return False
        return all(
            platform in self.outcomes and self.outcomes[platform].success
            for platform in self.request.platforms
        )

    @property
    def exit_code(self) -> int:
        """Exit code of the global error, else of the first failed platform in build order."""
        if self.error is not None:
            return self.error.exit_code
        for platform in self.request.platforms:
            outcome = self.outcomes.get(platform)
            if outcome is None or outcome.success:
                continue
            if outcome.error is not None:
                return outcome.error.exit_code
            return EXIT_CODES[ErrorKind.BUILD]
        return EXIT_SUCCESS

    def summary_lines(self) -> List[str]:
        lines: List[str] = []
        if self.error is not None:
            targets = ", ".join(platform.build_target for platform in self.request.platforms)
            lines.append(f"{targets}: NOT ATTEMPTED ({self.error.one_line()})")
            return lines
        for platform in self.request.platforms:
            outcome = self.outcomes.get(platform)
            if outcome is None:
                lines.append(f"{platform.build_target}: NOT ATTEMPTED")
            elif outcome.success and outcome.artifact is not None:
                lines.append(f"{platform.build_target}: SUCCESS -> {outcome.artifact.output_path}")
                if outcome.artifact.mapping_path is not None:
                    lines.append(f"    mapping: {outcome.artifact.mapping_path}")
                for warning in outcome.warnings:
                    lines.append(f"    warning: {warning}")
            else:
                detail = outcome.error.one_line() if outcome.error is not None else "unknown error"
                lines.append(f"{platform.build_target}: FAILED ({detail})")
        if self.device_error is not None:
            lines.append(f"Run on device: FAILED ({self.device_error.one_line()})")
        return lines


class Orchestrator:
    """Resolves the toolchain once, then drives each platform pipeline in order."""

    def __init__(
        self,
        *,
        project_root: Path,
        settings: ProjectSettings,
        runner: CommandRunner,
        policy: PromptPolicy,
        console: Console,
        environment: Mapping[str, str] | None = None,
        resolver: ToolchainResolver | None = None,
        tracker: StalenessTracker | None = None,
        device: DeviceTooling | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.project_root = project_root
        self.settings = settings
        self._runner = runner
        self._policy = policy
        self._console = console
        self._environment = dict(environment) if environment is not None else dict(os.environ)
        self._resolver = resolver or ToolchainResolver.from_settings(
            project_root, settings, environment=self._environment
        )
        self._tracker = tracker or StalenessTracker.for_directory(project_root / settings.cache_dir)
        self._device = device
        self._clock = clock

    def run(self, request: BuildRequest) -> BuildResult:
        result = BuildResult(request=request)
        console = self._console
        console.header("Unity Build")
        console.info(f"Project Path: {self.project_root}")
        console.info(f"Platforms: {', '.join(p.build_target for p in request.platforms)}")
        console.info(f"Configuration: {request.configuration} ({request.build_mode})")

        try:
            toolchain = self._resolver.resolve(request.toolchain_version)
        except ToolchainNotFound as exc:
            result.error = exc
            console.error(exc.one_line())
            for line in exc.details():
                console.error(line)
            self._print_summary(result)
            return result
        result.toolchain = toolchain
        console.info(f"Using Unity {toolchain.version} at {toolchain.executable} ({toolchain.strategy} match)")
        if toolchain.strategy == "nearest":
            console.warning(f"Exact Unity version not installed, falling back to {toolchain.version}")

        if request.clean_cache:
            result.cleaned = clean_build_caches(
                self.project_root, self.settings, console, dry_run=request.dry_run
            )

        context = ResolvedContext(
            request=request,
            project_root=self.project_root,
            settings=self.settings,
            toolchain=toolchain,
            session_id=new_session_id(self._clock()),
            environment=self._environment,
        )
        coordinator = PreprocessingCoordinator(
            tracker=self._tracker,
            runner=PreprocessingRunner(
                self._runner,
                project_root=self.project_root,
                command=self.settings.preprocessing_command,
                environment=self._environment,
            ),
            policy=self._policy,
            console=console,
            dry_run=request.dry_run,
            clock=self._clock,
        )

        for platform in request.platforms:
            pipeline = PIPELINES[platform](
                context,
                runner=self._runner,
                coordinator=coordinator,
                console=console,
            )
            result.outcomes[platform] = pipeline.run()

        if request.run_after_build:
            self._run_after_build(result)

        self._print_summary(result)
        return result

    def _device_tooling(self) -> DeviceTooling:
        if self._device is None:
            device = self.settings.device
            self._device = DeviceTooling(
                self._runner,
                self._console,
                boot_timeout=device.boot_timeout,
                poll_interval=device.poll_interval,
            )
        return self._device

    def _run_after_build(self, result: BuildResult) -> None:
        console = self._console
        outcome = result.outcomes.get(Platform.ANDROID)
        if outcome is None:
            console.warning("--run only applies to Android builds; skipping")
            return
        if not outcome.success or outcome.artifact is None:
            console.warning("Android build failed; skipping install and launch")
            return
        if result.request.dry_run:
            console.info("[dry-run] Skipping install and launch on device")
            return
        installable = self.project_root / self.settings.device.installable_path
        try:
            self._device_tooling().run_bundle(
                outcome.artifact.output_path,
                installable,
                package_id_from(outcome.environment),
            )
        except DeviceToolingError as exc:
            result.device_error = exc
            console.warning(f"Install/launch failed: {exc.message}. The build itself succeeded.")

    def _print_summary(self, result: BuildResult) -> None:
        self._console.header("Build Summary")
        for line in result.summary_lines():
            self._console.plain(line)


__all__ = ["BuildResult", "Orchestrator"]
