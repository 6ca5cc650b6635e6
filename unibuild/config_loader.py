"""Project configuration loading for the build orchestrator."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping
import platform as host_platform

from dotenv import dotenv_values

from core.config_loader import (
    FILE_LOADERS,
    load_config_file,
    merge_mappings,
    normalize_string_list,
)

from .errors import ConfigurationError
from .request import Platform

CONFIG_STEM = "unibuild"
DEFAULT_TOOLCHAIN_VERSION = "6000.2.14f1"
DEFAULT_CANONICAL_SOURCE = "source 'https://cdn.cocoapods.org/'"


def _default_executable() -> str:
    if host_platform.system() == "Darwin":
        return "Unity.app/Contents/MacOS/Unity"
    return "Editor/Unity"


def _defaults() -> Dict[str, Any]:
    return {
        "project": {
            "name": "UnityProject",
            "build_output": "build",
            "logs_dir": "Logs",
            "cache_dir": ".build-cache",
            "version_file": "ProjectSettings/ProjectVersion.txt",
            "default_toolchain_version": DEFAULT_TOOLCHAIN_VERSION,
        },
        "toolchain": {
            "roots": [
                "/Applications/Unity/Hub/Editor",
                "~/Applications/Unity/Hub/Editor",
                "~/Unity/Hub/Editor",
            ],
            "executable": _default_executable(),
        },
        "preprocessing": {
            "command": ["bash", "Scripts/runBoardDoctor.sh", "{configuration}"],
        },
        "preflight": {
            "scripts": ["Scripts/validate-linkxml.sh"],
        },
        "manifest": {
            "canonical_source": DEFAULT_CANONICAL_SOURCE,
            "deprecated_packages": ["Firebase/Core"],
            "strict": False,
        },
        "clean": {
            "paths": [
                "Library/ScriptAssemblies",
                "Library/Bee",
                "Library/Il2cppBuildCache",
                "build/Android",
                "build/iOS",
                ".gradle",
            ],
            "globs": ["~/Library/Developer/Xcode/DerivedData/Unity-iPhone-*"],
        },
        "device": {
            "boot_timeout": 120.0,
            "poll_interval": 5.0,
            "installable_path": "build/Android/app.apks",
        },
        "platforms": {
            "ios": {
                "required_env": ["IOS_APP_ID", "APPLE_TEAM_ID"],
                "env_file": "Scripts/.env.ios.local",
            },
            "android": {
                "required_env": [
                    "ANDROID_PACKAGE_NAME",
                    "ANDROID_KEYSTORE_PATH",
                    "ANDROID_KEYSTORE_PASS",
                    "ANDROID_KEY_ALIAS",
                    "ANDROID_KEY_PASS",
                ],
                "env_file": "Scripts/.env.android.local",
            },
        },
    }


def _command(value: Any, *, field_name: str) -> List[str]:
    if isinstance(value, str):
        return value.split()
    return normalize_string_list(value, field_name=field_name)


@dataclass(slots=True)
class PlatformSettings:
    required_env: List[str] = field(default_factory=list)
    env_file: str | None = None

    @classmethod
    def from_mapping(cls, name: str, data: Mapping[str, Any]) -> "PlatformSettings":
        env_file = data.get("env_file")
        return cls(
            required_env=normalize_string_list(data.get("required_env"), field_name=f"platforms.{name}.required_env"),
            env_file=str(env_file) if env_file else None,
        )


@dataclass(slots=True)
class ManifestSettings:
    canonical_source: str = DEFAULT_CANONICAL_SOURCE
    deprecated_packages: List[str] = field(default_factory=list)
    strict: bool = False


@dataclass(slots=True)
class DeviceSettings:
    boot_timeout: float = 120.0
    poll_interval: float = 5.0
    installable_path: str = "build/Android/app.apks"


@dataclass(slots=True)
class ProjectSettings:
    name: str
    build_output: str
    logs_dir: str
    cache_dir: str
    version_file: str
    default_toolchain_version: str
    toolchain_roots: List[str]
    toolchain_executable: str
    preprocessing_command: List[str]
    preflight_scripts: List[str]
    manifest: ManifestSettings
    clean_paths: List[str]
    clean_globs: List[str]
    device: DeviceSettings
    platforms: Dict[Platform, PlatformSettings]
    source: Path | None = None

    @classmethod
    def defaults(cls) -> "ProjectSettings":
        return cls.from_mapping({})

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, source: Path | None = None) -> "ProjectSettings":
        allowed = set(_defaults().keys())
        unknown = {str(key) for key in data.keys() if str(key) not in allowed}
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigurationError(f"Configuration contains unknown sections: {joined}")

        merged = merge_mappings(_defaults(), data)
        try:
            return cls._build(merged, source=source)
        except (TypeError, ValueError) as exc:
            label = f" in {source}" if source else ""
            raise ConfigurationError(f"Invalid configuration{label}: {exc}") from exc

    @classmethod
    def _build(cls, merged: Mapping[str, Any], *, source: Path | None) -> "ProjectSettings":
        project = merged["project"]
        toolchain = merged["toolchain"]
        manifest = merged["manifest"]
        clean = merged["clean"]
        device = merged["device"]

        platforms: Dict[Platform, PlatformSettings] = {}
        for platform in Platform:
            section = merged["platforms"].get(platform.value, {})
            if not isinstance(section, Mapping):
                raise TypeError(f"platforms.{platform.value} must be a mapping")
            platforms[platform] = PlatformSettings.from_mapping(platform.value, section)

        return cls(
            name=str(project["name"]),
            build_output=str(project["build_output"]),
            logs_dir=str(project["logs_dir"]),
            cache_dir=str(project["cache_dir"]),
            version_file=str(project["version_file"]),
            default_toolchain_version=str(project["default_toolchain_version"]),
            toolchain_roots=normalize_string_list(toolchain["roots"], field_name="toolchain.roots"),
            toolchain_executable=str(toolchain["executable"]),
            preprocessing_command=_command(merged["preprocessing"]["command"], field_name="preprocessing.command"),
            preflight_scripts=normalize_string_list(merged["preflight"]["scripts"], field_name="preflight.scripts"),
            manifest=ManifestSettings(
                canonical_source=str(manifest["canonical_source"]),
                deprecated_packages=normalize_string_list(
                    manifest["deprecated_packages"], field_name="manifest.deprecated_packages"
                ),
                strict=bool(manifest["strict"]),
            ),
            clean_paths=normalize_string_list(clean["paths"], field_name="clean.paths"),
            clean_globs=normalize_string_list(clean["globs"], field_name="clean.globs"),
            device=DeviceSettings(
                boot_timeout=float(device["boot_timeout"]),
                poll_interval=float(device["poll_interval"]),
                installable_path=str(device["installable_path"]),
            ),
            platforms=platforms,
            source=source,
        )

    @classmethod
    def from_directory(cls, project_root: Path) -> "ProjectSettings":
        """Load ``unibuild.{toml,json,yaml,yml}`` from ``project_root`` if present."""
        candidates = [
            project_root / f"{CONFIG_STEM}{suffix}"
            for suffix in FILE_LOADERS
            if (project_root / f"{CONFIG_STEM}{suffix}").is_file()
        ]
        if not candidates:
            return cls.defaults()
        if len(candidates) > 1:
            names = ", ".join(candidate.name for candidate in candidates)
            raise ConfigurationError(
                f"Multiple configuration files found: {names}. Only one format is allowed."
            )
        path = candidates[0]
        try:
            data = load_config_file(path)
        except (OSError, TypeError, ValueError) as exc:
            raise ConfigurationError(f"Failed to load {path}: {exc}") from exc
        return cls.from_mapping(data, source=path)

    def platform(self, platform: Platform) -> PlatformSettings:
        return self.platforms[platform]


def read_env_file(path: Path) -> Dict[str, str]:
    """Read a ``KEY=VALUE`` env file, dropping keys without a value."""
    if not path.is_file():
        return {}
    return {key: value for key, value in dotenv_values(path).items() if value is not None}


def read_toolchain_version(version_file: Path) -> str | None:
    """Extract ``m_EditorVersion`` from a ProjectVersion.txt file."""
    if not version_file.is_file():
        return None
    for line in version_file.read_text(encoding="utf-8", errors="replace").splitlines():
        key, separator, value = line.partition(":")
        if separator and key.strip() == "m_EditorVersion":
            version = "".join(value.split())
            if version:
                return version
    return None


__all__ = [
    "CONFIG_STEM",
    "DEFAULT_TOOLCHAIN_VERSION",
    "DeviceSettings",
    "ManifestSettings",
    "PlatformSettings",
    "ProjectSettings",
    "read_env_file",
    "read_toolchain_version",
]
