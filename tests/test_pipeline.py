from __future__ import annotations

from pathlib import Path
from typing import Sequence
import tempfile
import unittest

from support import (
    REQUIRED_ENV,
    ScriptedCommandRunner,
    console_output,
    install_unity,
    make_console,
    make_settings,
    write_build_outputs,
)
from unibuild.errors import BuildError, ConfigurationError, SanitizeError
from unibuild.pipeline import AndroidPipeline, IOSPipeline, PlatformOutcome, Stage
from unibuild.preprocessing import PreprocessingCoordinator, PreprocessingRunner
from unibuild.prompts import NonInteractivePolicy
from unibuild.request import BuildRequest, ResolvedContext
from unibuild.staleness import MemoryMarkerStore, StalenessTracker
from unibuild.toolchains import ToolchainInstallation

PODFILE = "source 'https://a.example.com/'\nsource 'https://b.example.com/'\ntarget 'Unity-iPhone' do\nend\n"


class PipelineTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        root = Path(self.temp_dir.name)
        self.project = root / "project"
        self.project.mkdir()
        self.editors = root / "Editors"
        self.unity = install_unity(self.editors, "6000.2.14f1")
        self.runner = ScriptedCommandRunner()
        self.console = make_console()

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def _context(self, request: BuildRequest, *, environment=None, **overrides) -> ResolvedContext:
        return ResolvedContext(
            request=request,
            project_root=self.project,
            settings=make_settings(self.editors, **overrides),
            toolchain=ToolchainInstallation(self.unity, "6000.2.14f1", "exact"),
            session_id="20250102-030405",
            environment=dict(REQUIRED_ENV if environment is None else environment),
        )

    def _run(self, pipeline_type, request: BuildRequest, **kwargs) -> PlatformOutcome:
        coordinator = PreprocessingCoordinator(
            tracker=StalenessTracker(MemoryMarkerStore()),
            runner=PreprocessingRunner(self.runner, project_root=self.project, command=["true"]),
            policy=NonInteractivePolicy(),
            console=self.console,
        )
        pipeline = pipeline_type(
            self._context(request, **kwargs),
            runner=self.runner,
            coordinator=coordinator,
            console=self.console,
        )
        return pipeline.run()

    def _unity_command(self) -> Sequence[str]:
        commands = [record.command for record in self.runner.commands if record.command[0] == str(self.unity)]
        self.assertEqual(len(commands), 1)
        return commands[0]

    def test_ios_pipeline_walks_every_stage(self) -> None:
        self.runner.script(str(self.unity), action=write_build_outputs(self.project, PODFILE))

        outcome = self._run(IOSPipeline, BuildRequest.create("ios"))

        self.assertTrue(outcome.success, outcome.error)
        self.assertEqual(
            outcome.stages,
            [
                Stage.START,
                Stage.RESOLVE_PREPROCESSING_DECISION,
                Stage.SKIP_PREPROCESSING,
                Stage.TOOLCHAIN_BUILD,
                Stage.MANIFEST_SANITIZE,
                Stage.PUBLISH_ARTIFACT,
                Stage.DONE,
            ],
        )
        self.assertEqual(outcome.artifact.output_path, self.project / "build" / "iOS")
        self.assertIsNone(outcome.artifact.mapping_path)
        self.assertEqual(outcome.sanitize_report.removed_duplicate_sources, 1)

    def test_ios_toolchain_invocation(self) -> None:
        self.runner.script(str(self.unity), action=write_build_outputs(self.project, PODFILE))

        outcome = self._run(IOSPipeline, BuildRequest.create("ios", release=True))

        self.assertEqual(
            list(self._unity_command()),
            [
                str(self.unity),
                "-batchmode",
                "-nographics",
                "-projectPath",
                str(self.project),
                "-buildTarget",
                "iOS",
                "-buildPath",
                str(self.project / "build" / "iOS"),
                "-executeMethod",
                "BuildScript.BuildiOS",
                "-profile",
                "prod",
                "-stackTraceLogType",
                "None",
            ],
        )
        record = self.runner.commands[-1]
        self.assertTrue(record.stream)
        self.assertEqual(record.env["UNITY_BUILD_MODE"], "release")
        self.assertEqual(record.env["IOS_APP_ID"], "com.example.game")
        self.assertEqual(outcome.log_path, self.project / "Logs" / "unity-build-iOS-20250102-030405.log")
        self.assertEqual(record.log_file, str(outcome.log_path))

    def test_android_builds_bundle_with_mapping(self) -> None:
        self.runner.script(str(self.unity), action=write_build_outputs(self.project, PODFILE))

        outcome = self._run(AndroidPipeline, BuildRequest.create("android"))

        self.assertTrue(outcome.success, outcome.error)
        command = list(self._unity_command())
        self.assertEqual(command[-1], "-buildAppBundle")
        self.assertIn("BuildScript.BuildAndroid", command)
        self.assertEqual(outcome.artifact.output_path, self.project / "build" / "Android" / "app.aab")
        self.assertEqual(outcome.artifact.mapping_path, self.project / "build" / "Android" / "mapping.txt")
        self.assertIsNone(outcome.sanitize_report)
        self.assertEqual(self.runner.commands[-1].env["UNITY_BUILD_MODE"], "development")

    def test_toolchain_failure_surfaces_log_tail(self) -> None:
        def _fail(command: Sequence[str]) -> None:
            log_path = self.project / "Logs" / "unity-build-Android-20250102-030405.log"
            log_path.write_text("".join(f"line {index}\n" for index in range(30)), encoding="utf-8")

        self.runner.script(str(self.unity), returncode=1, action=_fail)

        outcome = self._run(AndroidPipeline, BuildRequest.create("android"))

        self.assertFalse(outcome.success)
        self.assertEqual(outcome.stages[-1], Stage.FAILED)
        self.assertNotIn(Stage.MANIFEST_SANITIZE, outcome.stages)
        self.assertIsInstance(outcome.error, BuildError)
        self.assertEqual(outcome.error.exit_code, 4)
        self.assertEqual(outcome.error.log_tail, [f"line {index}" for index in range(10, 30)])
        self.assertIn("unity-build-Android-20250102-030405.log", outcome.error.one_line())
        self.assertIsNone(outcome.artifact)

    def test_missing_environment_fails_before_any_command(self) -> None:
        env = dict(REQUIRED_ENV)
        del env["APPLE_TEAM_ID"]

        outcome = self._run(IOSPipeline, BuildRequest.create("ios"), environment=env)

        self.assertIsInstance(outcome.error, ConfigurationError)
        self.assertIn("APPLE_TEAM_ID", outcome.error.message)
        self.assertEqual(outcome.stages, [Stage.START, Stage.FAILED])
        self.assertEqual(self.runner.commands, [])

    def test_env_file_fills_missing_variables(self) -> None:
        env = dict(REQUIRED_ENV)
        del env["ANDROID_KEY_PASS"]
        env_file = self.project / "Scripts" / ".env.android.local"
        env_file.parent.mkdir()
        env_file.write_text("ANDROID_KEY_PASS=from-file\n", encoding="utf-8")

        outcome = self._run(AndroidPipeline, BuildRequest.create("android"), environment=env)

        self.assertTrue(outcome.success, outcome.error)
        self.assertEqual(outcome.environment["ANDROID_KEY_PASS"], "from-file")

    def test_missing_podfile_is_a_warning(self) -> None:
        outcome = self._run(IOSPipeline, BuildRequest.create("ios"))

        self.assertTrue(outcome.success)
        self.assertEqual(len(outcome.warnings), 1)
        self.assertIn("Podfile left unsanitized", console_output(self.console))

    def test_missing_podfile_fails_in_strict_mode(self) -> None:
        outcome = self._run(IOSPipeline, BuildRequest.create("ios"), manifest={"strict": True})

        self.assertFalse(outcome.success)
        self.assertIsInstance(outcome.error, SanitizeError)
        self.assertEqual(outcome.error.exit_code, 5)

    def test_failing_preflight_script_stops_the_build(self) -> None:
        script = self.project / "Scripts" / "validate-linkxml.sh"
        script.parent.mkdir()
        script.write_text("exit 1\n", encoding="utf-8")
        self.runner.script("validate-linkxml.sh", returncode=1)

        outcome = self._run(AndroidPipeline, BuildRequest.create("android"))

        self.assertIsInstance(outcome.error, BuildError)
        self.assertIn("validate-linkxml.sh", outcome.error.message)
        self.assertEqual(self.runner.matching(str(self.unity)), [])

    def test_missing_preflight_script_is_skipped(self) -> None:
        outcome = self._run(AndroidPipeline, BuildRequest.create("android"))

        self.assertTrue(outcome.success)
        self.assertIn("validate-linkxml.sh not found", console_output(self.console))

    def test_dry_run_creates_nothing(self) -> None:
        outcome = self._run(IOSPipeline, BuildRequest.create("ios", dry_run=True))

        self.assertTrue(outcome.success)
        self.assertFalse((self.project / "build").exists())
        self.assertFalse((self.project / "Logs").exists())
        self.assertEqual(len(self.runner.matching(str(self.unity))), 1)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
