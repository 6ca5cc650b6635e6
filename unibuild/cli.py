"""Command line interface for the Unity build orchestrator."""
from __future__ import annotations

from argparse import ArgumentParser, Namespace
from pathlib import Path
from typing import Iterable
import sys

from core.command_runner import RecordingCommandRunner, SubprocessCommandRunner
from core.console import Console

from .build import Orchestrator
from .config_loader import ProjectSettings
from .errors import EXIT_INTERRUPTED, EXIT_SUCCESS, EXIT_USAGE, OrchestratorError, ToolchainNotFound
from .manifest import ManifestSanitizer
from .prompts import select_policy
from .request import (
    DEFAULT_CONFIGURATION,
    RELEASE_CONFIGURATION,
    BuildRequest,
    Platform,
    check_configuration_name,
)
from .staleness import StalenessTracker
from .toolchains import ToolchainResolver


def _make_runner(dry_run: bool) -> SubprocessCommandRunner | RecordingCommandRunner:
    return RecordingCommandRunner() if dry_run else SubprocessCommandRunner()


def _make_console(args: Namespace) -> Console:
    if getattr(args, "verbose", False):
        return Console("debug")
    if getattr(args, "quiet", False):
        return Console("error")
    return Console()


def _project_root(args: Namespace) -> Path:
    value = getattr(args, "project", None)
    return Path(value).expanduser().resolve() if value else Path.cwd()


def _emit_dry_run_output(runner: RecordingCommandRunner, *, workspace: Path) -> None:
    for line in runner.iter_formatted(workspace=workspace):
        print(line)


def _add_project_argument(parser: ArgumentParser) -> None:
    parser.add_argument("--project", metavar="DIR", help="Unity project root (default: current directory)")


def _parse_arguments(argv: Iterable[str]) -> Namespace:
    parser = ArgumentParser(prog="unibuild", description="Unity iOS/Android build orchestrator")
    subparsers = parser.add_subparsers(dest="command", required=True)

    build_parser = subparsers.add_parser("build", help="Build one or both mobile platforms")
    build_parser.add_argument("--platform", required=True, help="Target platform: ios, android, or both")
    build_parser.add_argument("--profile", help="Build profile (default: dev, prod with --release)")
    build_parser.add_argument("--release", action="store_true", help="Build in release mode with the prod profile")
    build_parser.add_argument(
        "--clean-cache",
        action="store_true",
        help="Clear Unity caches before building (forces a full recompile)",
    )
    build_parser.add_argument(
        "--run",
        action="store_true",
        help="Install and launch on a connected device/emulator after build (Android only)",
    )
    build_parser.add_argument("--toolchain-version", help="Unity version to use instead of the project's")
    build_parser.add_argument("--skip-preprocessing", action="store_true", help="Never run preprocessing")
    build_parser.add_argument("--preprocess", action="store_true", help="Run preprocessing without prompting")
    build_parser.add_argument("--non-interactive", action="store_true", help="Never prompt, even on a terminal")
    build_parser.add_argument("-n", "--dry-run", action="store_true", help="Print commands without executing them")
    verbosity = build_parser.add_mutually_exclusive_group()
    verbosity.add_argument("--verbose", action="store_true", help="Enable debug output")
    verbosity.add_argument("--quiet", action="store_true", help="Only print errors and the summary")
    _add_project_argument(build_parser)

    status_parser = subparsers.add_parser("status", help="Show preprocessing markers")
    status_parser.add_argument("--profile", help="Only show markers for this profile")
    _add_project_argument(status_parser)

    resolve_parser = subparsers.add_parser("resolve", help="Locate the Unity editor for the project")
    resolve_parser.add_argument("--toolchain-version", help="Unity version to look for")
    _add_project_argument(resolve_parser)

    sanitize_parser = subparsers.add_parser("sanitize", help="Clean up a generated Podfile in place")
    sanitize_parser.add_argument("path", help="Path to the Podfile")
    _add_project_argument(sanitize_parser)

    return parser.parse_args(list(argv))


def main(argv: Iterable[str] | None = None) -> int:
    args = _parse_arguments(sys.argv[1:] if argv is None else argv)

    if args.command == "build":
        return _handle_build(args)
    if args.command == "status":
        return _handle_status(args)
    if args.command == "resolve":
        return _handle_resolve(args)
    if args.command == "sanitize":
        return _handle_sanitize(args)
    raise ValueError(f"Unknown command: {args.command}")


def _handle_build(args: Namespace) -> int:
    console = _make_console(args)
    project_root = _project_root(args)
    try:
        request = BuildRequest.create(
            args.platform,
            profile=args.profile,
            release=args.release,
            toolchain_version=args.toolchain_version,
            clean_cache=args.clean_cache,
            skip_preprocessing=args.skip_preprocessing,
            force_preprocessing=args.preprocess,
            run_after_build=args.run,
            dry_run=args.dry_run,
        )
    except ValueError as exc:
        console.error(str(exc))
        return EXIT_USAGE

    try:
        settings = ProjectSettings.from_directory(project_root)
    except OrchestratorError as exc:
        console.error(exc.one_line())
        return exc.exit_code

    runner = _make_runner(args.dry_run)
    orchestrator = Orchestrator(
        project_root=project_root,
        settings=settings,
        runner=runner,
        policy=select_policy(force_non_interactive=args.non_interactive),
        console=console,
    )
    try:
        result = orchestrator.run(request)
    except KeyboardInterrupt:
        console.error("Build interrupted")
        return EXIT_INTERRUPTED

    if isinstance(runner, RecordingCommandRunner):
        _emit_dry_run_output(runner, workspace=project_root)
    return result.exit_code


def _handle_status(args: Namespace) -> int:
    console = _make_console(args)
    project_root = _project_root(args)
    if args.profile:
        try:
            check_configuration_name(args.profile)
        except ValueError as exc:
            console.error(str(exc))
            return EXIT_USAGE
    try:
        settings = ProjectSettings.from_directory(project_root)
    except OrchestratorError as exc:
        console.error(exc.one_line())
        return exc.exit_code

    tracker = StalenessTracker.for_directory(project_root / settings.cache_dir)
    configurations = [args.profile] if args.profile else [DEFAULT_CONFIGURATION, RELEASE_CONFIGURATION]
    for platform in Platform:
        for configuration in configurations:
            marker = tracker.marker(platform, configuration)
            stamp = marker.timestamp if marker is not None else "never"
            print(f"{platform.build_target:<8} {configuration:<8} {stamp}")
    print("Note: markers record when preprocessing last succeeded, not whether its data sources changed since.")
    return EXIT_SUCCESS


def _handle_resolve(args: Namespace) -> int:
    console = _make_console(args)
    project_root = _project_root(args)
    try:
        settings = ProjectSettings.from_directory(project_root)
    except OrchestratorError as exc:
        console.error(exc.one_line())
        return exc.exit_code

    resolver = ToolchainResolver.from_settings(project_root, settings)
    version, origin = resolver.requested_version(args.toolchain_version)
    print(f"Requested: {version} (from {origin})")
    try:
        installation = resolver.resolve(args.toolchain_version)
    except ToolchainNotFound as exc:
        console.error(exc.one_line())
        for line in exc.details():
            print(line)
        return exc.exit_code
    print(f"Executable: {installation.executable}")
    print(f"Version: {installation.version}")
    print(f"Strategy: {installation.strategy}")
    return EXIT_SUCCESS


def _handle_sanitize(args: Namespace) -> int:
    console = _make_console(args)
    project_root = _project_root(args)
    try:
        settings = ProjectSettings.from_directory(project_root)
    except OrchestratorError as exc:
        console.error(exc.one_line())
        return exc.exit_code

    sanitizer = ManifestSanitizer(
        canonical_source=settings.manifest.canonical_source,
        deprecated_packages=settings.manifest.deprecated_packages,
        console=console,
    )
    path = Path(args.path)
    if not path.is_absolute():
        path = project_root / path
    try:
        report = sanitizer.sanitize(path)
    except OrchestratorError as exc:
        console.error(exc.one_line())
        return exc.exit_code
    print(f"Sources found: {report.source_count}")
    print(f"Duplicate sources removed: {report.removed_duplicate_sources}")
    print(f"Deprecated declarations removed: {report.removed_deprecated_declarations}")
    return EXIT_SUCCESS


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
