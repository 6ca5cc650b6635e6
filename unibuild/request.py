"""Immutable request and context types threaded through a build run."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Mapping

if TYPE_CHECKING:  # pragma: no cover
    from .config_loader import ProjectSettings
    from .toolchains import ToolchainInstallation


class Platform(str, Enum):
    IOS = "ios"
    ANDROID = "android"

    @property
    def build_target(self) -> str:
        return _BUILD_TARGETS[self]

    @classmethod
    def parse(cls, value: str) -> tuple["Platform", ...]:
        """Parse a CLI platform selector into platforms in build order."""
        normalized = value.strip().lower()
        if normalized == "both":
            return (cls.IOS, cls.ANDROID)
        if normalized in _ALIASES:
            return (_ALIASES[normalized],)
        raise ValueError(f"Invalid platform '{value}'. Use ios, android, or both.")


_BUILD_TARGETS = {
    Platform.IOS: "iOS",
    Platform.ANDROID: "Android",
}

_ALIASES = {
    "ios": Platform.IOS,
    "a": Platform.IOS,
    "android": Platform.ANDROID,
    "b": Platform.ANDROID,
}

DEFAULT_CONFIGURATION = "dev"
RELEASE_CONFIGURATION = "prod"


def check_configuration_name(name: str) -> str:
    """Reject names that cannot be used as a single path component."""
    if not name:
        raise ValueError("Configuration name cannot be empty")
    if name in (".", "..") or "/" in name or "\\" in name:
        raise ValueError(f"Invalid configuration name '{name}': path separators are not allowed")
    return name


@dataclass(frozen=True, slots=True)
class BuildRequest:
    platforms: tuple[Platform, ...]
    configuration: str = DEFAULT_CONFIGURATION
    toolchain_version: str | None = None
    release: bool = False
    clean_cache: bool = False
    skip_preprocessing: bool = False
    force_preprocessing: bool = False
    run_after_build: bool = False
    dry_run: bool = False

    def __post_init__(self) -> None:
        if not self.platforms:
            raise ValueError("At least one platform must be requested")
        check_configuration_name(self.configuration)
        if self.skip_preprocessing and self.force_preprocessing:
            raise ValueError("--skip-preprocessing and --preprocess are mutually exclusive")

    @classmethod
    def create(
        cls,
        platform: str,
        *,
        profile: str | None = None,
        release: bool = False,
        **flags: object,
    ) -> "BuildRequest":
        """Build a request from CLI-style values.

        ``release`` selects the prod configuration unless ``profile`` is given.
        """
        if profile:
            configuration = profile
        elif release:
            configuration = RELEASE_CONFIGURATION
        else:
            configuration = DEFAULT_CONFIGURATION
        return cls(
            platforms=Platform.parse(platform),
            configuration=configuration,
            release=release,
            **flags,  # type: ignore[arg-type]
        )

    @property
    def build_mode(self) -> str:
        return "release" if self.release else "development"


@dataclass(frozen=True, slots=True)
class ResolvedContext:
    """Everything a pipeline needs, resolved once per orchestrator run."""

    request: BuildRequest
    project_root: Path
    settings: "ProjectSettings"
    toolchain: "ToolchainInstallation"
    session_id: str
    environment: Mapping[str, str] = field(default_factory=dict)

    @property
    def configuration(self) -> str:
        return self.request.configuration

    @property
    def build_root(self) -> Path:
        return self.project_root / self.settings.build_output

    @property
    def logs_dir(self) -> Path:
        return self.project_root / self.settings.logs_dir


def new_session_id(now: datetime | None = None) -> str:
    return (now or datetime.now()).strftime("%Y%m%d-%H%M%S")


__all__ = [
    "BuildRequest",
    "DEFAULT_CONFIGURATION",
    "Platform",
    "RELEASE_CONFIGURATION",
    "ResolvedContext",
    "check_configuration_name",
    "new_session_id",
]
