"""Per-platform toolchain environment assembly."""
from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Mapping

from .config_loader import PlatformSettings, read_env_file
from .errors import ConfigurationError
from .request import BuildRequest, Platform

BUILD_MODE_ENV = "UNITY_BUILD_MODE"


class EnvironmentBuilder:
    """Layers a platform's local env file over the base environment."""

    def __init__(self, project_root: Path, base: Mapping[str, str]) -> None:
        self._project_root = project_root
        self._base = dict(base)

    def env_file_for(self, settings: PlatformSettings) -> Path | None:
        if not settings.env_file:
            return None
        return self._project_root / settings.env_file

    def build(self, platform: Platform, settings: PlatformSettings, request: BuildRequest) -> Dict[str, str]:
        env = dict(self._base)
        env_file = self.env_file_for(settings)
        if env_file is not None:
            env.update(read_env_file(env_file))
        env[BUILD_MODE_ENV] = request.build_mode
        missing = self.missing(env, settings)
        if missing:
            hint = f" (set them or add them to {env_file})" if env_file is not None else ""
            raise ConfigurationError(
                f"Missing required environment variables for {platform.build_target}: {', '.join(missing)}{hint}"
            )
        return env

    @staticmethod
    def missing(env: Mapping[str, str], settings: PlatformSettings) -> List[str]:
        return [name for name in settings.required_env if not env.get(name)]


__all__ = ["BUILD_MODE_ENV", "EnvironmentBuilder"]
