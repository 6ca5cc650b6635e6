from __future__ import annotations

from pathlib import Path
import json
import tempfile
import textwrap
import unittest

from core.config_loader import load_config_file, merge_mappings, normalize_string_list
from unibuild.config_loader import ProjectSettings, read_env_file, read_toolchain_version
from unibuild.errors import ConfigurationError
from unibuild.request import Platform


class SharedLoaderTests(unittest.TestCase):
    def test_merge_is_deep(self) -> None:
        merged = merge_mappings({"a": {"b": 1, "c": 2}, "d": [1]}, {"a": {"c": 3}, "d": [2]})
        self.assertEqual(merged, {"a": {"b": 1, "c": 3}, "d": [2]})

    def test_normalize_string_list(self) -> None:
        self.assertEqual(normalize_string_list(None), [])
        self.assertEqual(normalize_string_list("  one "), ["one"])
        self.assertEqual(normalize_string_list(["a", " ", "b"]), ["a", "b"])
        with self.assertRaises(TypeError):
            normalize_string_list([1], field_name="roots")

    def test_unsupported_suffix_is_rejected(self) -> None:
        with tempfile.TemporaryDirectory() as temp:
            path = Path(temp) / "unibuild.ini"
            path.write_text("[project]\n", encoding="utf-8")
            with self.assertRaises(ValueError):
                load_config_file(path)


class ProjectSettingsTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_defaults_without_config_file(self) -> None:
        settings = ProjectSettings.from_directory(self.root)

        self.assertIsNone(settings.source)
        self.assertEqual(settings.default_toolchain_version, "6000.2.14f1")
        self.assertEqual(settings.cache_dir, ".build-cache")
        self.assertEqual(settings.preprocessing_command, ["bash", "Scripts/runBoardDoctor.sh", "{configuration}"])
        self.assertEqual(settings.manifest.canonical_source, "source 'https://cdn.cocoapods.org/'")
        self.assertEqual(settings.manifest.deprecated_packages, ["Firebase/Core"])
        self.assertIn("Library/ScriptAssemblies", settings.clean_paths)
        self.assertEqual(settings.platform(Platform.IOS).required_env, ["IOS_APP_ID", "APPLE_TEAM_ID"])
        self.assertEqual(settings.platform(Platform.ANDROID).env_file, "Scripts/.env.android.local")

    def test_toml_overrides_are_merged(self) -> None:
        (self.root / "unibuild.toml").write_text(
            textwrap.dedent(
                """
                [project]
                cache_dir = ".cache/unibuild"

                [toolchain]
                roots = ["/opt/unity"]

                [preprocessing]
                command = "python3 tools/preprocess.py {configuration}"

                [manifest]
                strict = true

                [platforms.android]
                required_env = ["ANDROID_PACKAGE_NAME"]
                """
            ),
            encoding="utf-8",
        )

        settings = ProjectSettings.from_directory(self.root)

        self.assertEqual(settings.source, self.root / "unibuild.toml")
        self.assertEqual(settings.cache_dir, ".cache/unibuild")
        self.assertEqual(settings.logs_dir, "Logs")
        self.assertEqual(settings.toolchain_roots, ["/opt/unity"])
        self.assertEqual(settings.preprocessing_command, ["python3", "tools/preprocess.py", "{configuration}"])
        self.assertTrue(settings.manifest.strict)
        self.assertEqual(settings.manifest.deprecated_packages, ["Firebase/Core"])
        self.assertEqual(settings.platform(Platform.ANDROID).required_env, ["ANDROID_PACKAGE_NAME"])
        self.assertEqual(settings.platform(Platform.IOS).required_env, ["IOS_APP_ID", "APPLE_TEAM_ID"])

    def test_yaml_config(self) -> None:
        (self.root / "unibuild.yaml").write_text(
            textwrap.dedent(
                """
                device:
                  boot_timeout: 30
                  poll_interval: 1
                clean:
                  paths:
                    - Library/Bee
                """
            ),
            encoding="utf-8",
        )

        settings = ProjectSettings.from_directory(self.root)

        self.assertEqual(settings.device.boot_timeout, 30.0)
        self.assertEqual(settings.device.poll_interval, 1.0)
        self.assertEqual(settings.clean_paths, ["Library/Bee"])

    def test_json_config(self) -> None:
        (self.root / "unibuild.json").write_text(
            json.dumps({"preflight": {"scripts": []}, "project": {"logs_dir": "BuildLogs"}}),
            encoding="utf-8",
        )

        settings = ProjectSettings.from_directory(self.root)

        self.assertEqual(settings.preflight_scripts, [])
        self.assertEqual(settings.logs_dir, "BuildLogs")

    def test_multiple_formats_are_rejected(self) -> None:
        (self.root / "unibuild.toml").write_text("", encoding="utf-8")
        (self.root / "unibuild.yml").write_text("", encoding="utf-8")

        with self.assertRaises(ConfigurationError) as ctx:
            ProjectSettings.from_directory(self.root)

        self.assertEqual(ctx.exception.exit_code, 6)

    def test_unrelated_files_are_ignored(self) -> None:
        (self.root / "package.json").write_text("{}", encoding="utf-8")
        (self.root / "settings.yaml").write_text("a: 1\n", encoding="utf-8")

        settings = ProjectSettings.from_directory(self.root)

        self.assertIsNone(settings.source)

    def test_unknown_section_is_rejected(self) -> None:
        with self.assertRaises(ConfigurationError) as ctx:
            ProjectSettings.from_mapping({"deploy": {}})
        self.assertIn("deploy", str(ctx.exception))

    def test_invalid_value_is_a_configuration_error(self) -> None:
        with self.assertRaises(ConfigurationError):
            ProjectSettings.from_mapping({"toolchain": {"roots": [1, 2]}})
        with self.assertRaises(ConfigurationError):
            ProjectSettings.from_mapping({"device": {"boot_timeout": "soon"}})

    def test_malformed_file_is_a_configuration_error(self) -> None:
        (self.root / "unibuild.toml").write_text("[project\n", encoding="utf-8")

        with self.assertRaises(ConfigurationError):
            ProjectSettings.from_directory(self.root)


class EnvironmentFileTests(unittest.TestCase):
    def test_read_env_file(self) -> None:
        with tempfile.TemporaryDirectory() as temp:
            path = Path(temp) / ".env.ios.local"
            path.write_text(
                textwrap.dedent(
                    """
                    # signing
                    IOS_APP_ID=com.example.game
                    export APPLE_TEAM_ID="TEAM 123"
                    EMPTY=
                    NO_VALUE
                    """
                ),
                encoding="utf-8",
            )

            values = read_env_file(path)

        self.assertEqual(values["IOS_APP_ID"], "com.example.game")
        self.assertEqual(values["APPLE_TEAM_ID"], "TEAM 123")
        self.assertEqual(values["EMPTY"], "")
        self.assertNotIn("NO_VALUE", values)

    def test_missing_env_file_is_empty(self) -> None:
        self.assertEqual(read_env_file(Path("/nonexistent/.env")), {})


class ProjectVersionTests(unittest.TestCase):
    def test_reads_editor_version(self) -> None:
        with tempfile.TemporaryDirectory() as temp:
            path = Path(temp) / "ProjectVersion.txt"
            path.write_text(
                "m_EditorVersion: 2022.3.10f1\nm_EditorVersionWithRevision: 2022.3.10f1 (ff3792e53c62)\n",
                encoding="utf-8",
            )
            self.assertEqual(read_toolchain_version(path), "2022.3.10f1")

    def test_missing_file_returns_none(self) -> None:
        self.assertIsNone(read_toolchain_version(Path("/nonexistent/ProjectVersion.txt")))


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
