"""Per-(platform, configuration) preprocessing markers.

A marker only records that preprocessing succeeded and when. It does not
fingerprint the data sources that feed preprocessing, so a marker stays
"fresh" after upstream data changes.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List

from .request import Platform

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True, slots=True)
class StalenessMarker:
    platform: Platform
    configuration: str
    timestamp: str


class MarkerStore:
    """Storage backend for marker text keyed by (platform, configuration)."""

    def read(self, platform: Platform, configuration: str) -> str | None:
        raise NotImplementedError

    def write(self, platform: Platform, configuration: str, text: str) -> None:
        raise NotImplementedError

    def describe(self, platform: Platform, configuration: str) -> str:
        return f"{platform.build_target}/{configuration}"


class FileMarkerStore(MarkerStore):
    """One small text file per key under a project-local cache directory."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def path_for(self, platform: Platform, configuration: str) -> Path:
        return self.directory / f"preprocess-{platform.build_target}-{configuration}.tracker"

    def read(self, platform: Platform, configuration: str) -> str | None:
        path = self.path_for(platform, configuration)
        if not path.is_file():
            return None
        text = path.read_text(encoding="utf-8").strip()
        return text or "unknown"

    def write(self, platform: Platform, configuration: str, text: str) -> None:
        path = self.path_for(platform, configuration)
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = path.with_name(path.name + ".tmp")
        temp_path.write_text(text + "\n", encoding="utf-8")
        temp_path.replace(path)

    def describe(self, platform: Platform, configuration: str) -> str:
        return str(self.path_for(platform, configuration))


class MemoryMarkerStore(MarkerStore):
    def __init__(self) -> None:
        self.entries: Dict[tuple[Platform, str], str] = {}

    def read(self, platform: Platform, configuration: str) -> str | None:
        return self.entries.get((platform, configuration))

    def write(self, platform: Platform, configuration: str, text: str) -> None:
        self.entries[(platform, configuration)] = text


class StalenessTracker:
    def __init__(self, store: MarkerStore) -> None:
        self.store = store

    @classmethod
    def for_directory(cls, directory: Path) -> "StalenessTracker":
        return cls(FileMarkerStore(directory))

    def marker(self, platform: Platform, configuration: str) -> StalenessMarker | None:
        text = self.store.read(platform, configuration)
        if text is None:
            return None
        return StalenessMarker(platform=platform, configuration=configuration, timestamp=text)

    def is_stale(
        self,
        platform: Platform,
        configuration: str,
        *,
        treat_existing_as_stale: bool = False,
    ) -> bool:
        """True when no marker exists, or when the caller treats any marker as stale."""
        if self.marker(platform, configuration) is None:
            return True
        return treat_existing_as_stale

    def record_success(
        self,
        platform: Platform,
        configuration: str,
        timestamp: datetime | None = None,
    ) -> StalenessMarker:
        text = (timestamp or datetime.now()).strftime(TIMESTAMP_FORMAT)
        self.store.write(platform, configuration, text)
        return StalenessMarker(platform=platform, configuration=configuration, timestamp=text)

    def record_all(
        self,
        platforms: Iterable[Platform],
        configuration: str,
        timestamp: datetime | None = None,
    ) -> List[StalenessMarker]:
        stamp = timestamp or datetime.now()
        return [self.record_success(platform, configuration, stamp) for platform in platforms]

    def describe(self, platform: Platform, configuration: str) -> str:
        return self.store.describe(platform, configuration)


__all__ = [
    "FileMarkerStore",
    "MarkerStore",
    "MemoryMarkerStore",
    "StalenessMarker",
    "StalenessTracker",
    "TIMESTAMP_FORMAT",
]
