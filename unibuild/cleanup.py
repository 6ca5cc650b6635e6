"""Removal of local build caches before a non-incremental rebuild."""
from __future__ import annotations

from glob import glob
from pathlib import Path
from typing import List
import os
import shutil

from core.console import Console

from .config_loader import ProjectSettings


def cache_targets(project_root: Path, settings: ProjectSettings) -> List[Path]:
    """Return existing cache paths, project-relative entries first."""
    targets: List[Path] = []
    for entry in settings.clean_paths:
        path = project_root / entry
        if path.exists() or path.is_symlink():
            targets.append(path)
    for pattern in settings.clean_globs:
        expanded = os.path.expanduser(pattern)
        if not os.path.isabs(expanded):
            expanded = str(project_root / expanded)
        for match in sorted(glob(expanded)):
            path = Path(match)
            if path not in targets:
                targets.append(path)
    return targets


def _remove(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()


def clean_build_caches(
    project_root: Path,
    settings: ProjectSettings,
    console: Console,
    *,
    dry_run: bool = False,
) -> List[Path]:
    """Remove cache targets, returning the paths removed (or listed in a dry run).

    A target that cannot be removed is reported and left in place.
    """
    console.header("Cleaning build caches")
    targets = cache_targets(project_root, settings)
    if not targets:
        console.info("No build caches found")
        return []

    if dry_run:
        for path in targets:
            console.info(f"[dry-run] Would remove {path}")
        return targets

    removed: List[Path] = []
    for path in targets:
        console.info(f"Removing {path}")
        try:
            _remove(path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            console.warning(f"Could not remove {path}: {exc}")
            continue
        removed.append(path)
    return removed


__all__ = ["cache_targets", "clean_build_caches"]
