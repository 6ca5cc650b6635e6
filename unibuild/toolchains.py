"""Unity editor discovery with ordered fallback strategies."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Mapping, Sequence
import os

from .config_loader import ProjectSettings, read_toolchain_version
from .errors import ToolchainNotFound

VERSION_ENV = "UNITY_VERSION"
EXECUTABLE_ENV = "UNITY_PATH"


@dataclass(frozen=True, slots=True)
class ToolchainInstallation:
    executable: Path
    version: str
    strategy: str


@dataclass(frozen=True, slots=True)
class Candidate:
    found: bool
    path: Path | None = None
    version: str | None = None


def version_prefix(version: str) -> str:
    """Return the ``major.minor`` prefix used for nearest-match lookups."""
    parts = version.split(".")
    if len(parts) < 2:
        return parts[0]
    return ".".join(parts[:2])


class ResolutionStrategy:
    """One way of locating an editor for a requested version."""

    name = "strategy"

    def find(self, version: str) -> Candidate:
        raise NotImplementedError

    def searched(self, version: str) -> List[str]:
        return []


class ExplicitExecutableStrategy(ResolutionStrategy):
    name = "explicit"

    def __init__(self, executable: str | None) -> None:
        self._executable = Path(executable).expanduser() if executable else None

    def find(self, version: str) -> Candidate:
        if self._executable is not None and self._executable.is_file():
            return Candidate(True, self._executable, version)
        return Candidate(False)

    def searched(self, version: str) -> List[str]:
        if self._executable is None:
            return []
        return [f"{self._executable} (${EXECUTABLE_ENV})"]


class ExactVersionStrategy(ResolutionStrategy):
    name = "exact"

    def __init__(self, roots: Sequence[Path], executable: str) -> None:
        self._roots = list(roots)
        self._executable = executable

    def find(self, version: str) -> Candidate:
        for root in self._roots:
            path = root / version / self._executable
            if path.is_file():
                return Candidate(True, path, version)
        return Candidate(False)

    def searched(self, version: str) -> List[str]:
        return [str(root / version / self._executable) for root in self._roots]


class NearestVersionStrategy(ResolutionStrategy):
    """Pick the lexicographically-last install sharing the ``major.minor`` prefix."""

    name = "nearest"

    def __init__(self, roots: Sequence[Path], executable: str) -> None:
        self._roots = list(roots)
        self._executable = executable

    def _matches(self, version: str) -> Iterable[tuple[str, Path]]:
        prefix = version_prefix(version)
        for root in self._roots:
            if not root.is_dir():
                continue
            for directory in root.glob(f"{prefix}.*"):
                path = directory / self._executable
                if directory.is_dir() and path.is_file():
                    yield directory.name, path

    def find(self, version: str) -> Candidate:
        matches = sorted(self._matches(version))
        if not matches:
            return Candidate(False)
        name, path = matches[-1]
        return Candidate(True, path, name)

    def searched(self, version: str) -> List[str]:
        prefix = version_prefix(version)
        return [str(root / f"{prefix}.*" / self._executable) for root in self._roots]


class ToolchainResolver:
    def __init__(
        self,
        *,
        project_root: Path,
        version_file: str,
        default_version: str,
        strategies: Sequence[ResolutionStrategy],
        environment: Mapping[str, str] | None = None,
    ) -> None:
        self._project_root = project_root
        self._version_file = version_file
        self._default_version = default_version
        self._strategies = list(strategies)
        self._env = dict(environment) if environment is not None else dict(os.environ)

    @classmethod
    def from_settings(
        cls,
        project_root: Path,
        settings: ProjectSettings,
        *,
        environment: Mapping[str, str] | None = None,
    ) -> "ToolchainResolver":
        env = dict(environment) if environment is not None else dict(os.environ)
        roots = [Path(root).expanduser() for root in settings.toolchain_roots]
        strategies: List[ResolutionStrategy] = [
            ExplicitExecutableStrategy(env.get(EXECUTABLE_ENV)),
            ExactVersionStrategy(roots, settings.toolchain_executable),
            NearestVersionStrategy(roots, settings.toolchain_executable),
        ]
        return cls(
            project_root=project_root,
            version_file=settings.version_file,
            default_version=settings.default_toolchain_version,
            strategies=strategies,
            environment=env,
        )

    def requested_version(self, override: str | None = None) -> tuple[str, str]:
        """Return the version to look for and where it came from."""
        if override:
            return override, "override"
        from_env = self._env.get(VERSION_ENV, "").strip()
        if from_env:
            return from_env, f"${VERSION_ENV}"
        detected = read_toolchain_version(self._project_root / self._version_file)
        if detected:
            return detected, self._version_file
        return self._default_version, "default"

    def resolve(self, requested_version: str | None = None) -> ToolchainInstallation:
        version, _origin = self.requested_version(requested_version)
        searched: List[str] = []
        for strategy in self._strategies:
            candidate = strategy.find(version)
            if candidate.found and candidate.path is not None:
                return ToolchainInstallation(
                    executable=candidate.path,
                    version=candidate.version or version,
                    strategy=strategy.name,
                )
            searched.extend(strategy.searched(version))
        raise ToolchainNotFound(version, searched)


__all__ = [
    "Candidate",
    "EXECUTABLE_ENV",
    "ExactVersionStrategy",
    "ExplicitExecutableStrategy",
    "NearestVersionStrategy",
    "ResolutionStrategy",
    "ToolchainInstallation",
    "ToolchainResolver",
    "VERSION_ENV",
    "version_prefix",
]
