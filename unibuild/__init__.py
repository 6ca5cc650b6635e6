"""Unity iOS/Android build orchestrator."""
from __future__ import annotations

from .build import BuildResult, Orchestrator
from .cli import main
from .request import BuildRequest, Platform

__all__ = ["BuildRequest", "BuildResult", "Orchestrator", "Platform", "main"]
