"""Post-build cleanup of the generated CocoaPods Podfile."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List
import re

from core.console import Console

from .errors import SanitizeError

SOURCE_PREFIX = "source "


@dataclass(slots=True)
class SanitizeReport:
    path: Path
    source_count: int = 0
    removed_duplicate_sources: int = 0
    removed_deprecated_declarations: int = 0
    removed_lines: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.removed_duplicate_sources or self.removed_deprecated_declarations)


def _line_ending(line: str) -> str:
    stripped = line.rstrip("\r\n")
    return line[len(stripped):]


def _is_source(line: str) -> bool:
    return line.startswith(SOURCE_PREFIX)


class ManifestSanitizer:
    """Keeps exactly one ``source`` line and drops deprecated pod declarations.

    Lines are compared and rewritten with their original line endings, and the
    file is only written back when something was removed.
    """

    def __init__(
        self,
        *,
        canonical_source: str,
        deprecated_packages: Iterable[str] = (),
        console: Console | None = None,
    ) -> None:
        self.canonical_source = canonical_source
        self.deprecated_packages = list(deprecated_packages)
        self._console = console
        self._deprecated_patterns = [
            re.compile(r"^\s*pod\s+(['\"])" + re.escape(name) + r"\1") for name in self.deprecated_packages
        ]

    def _log(self, message: str) -> None:
        if self._console is not None:
            self._console.info(message)

    def _is_deprecated(self, line: str) -> bool:
        return any(pattern.search(line) for pattern in self._deprecated_patterns)

    def _read(self, path: Path) -> List[str]:
        if not path.is_file():
            raise SanitizeError(f"Podfile not found at: {path}")
        try:
            text = path.read_bytes().decode("utf-8")
        except UnicodeDecodeError as exc:
            raise SanitizeError(f"Podfile at {path} is not valid UTF-8: {exc}") from exc
        except OSError as exc:
            raise SanitizeError(f"Could not read Podfile at {path}: {exc}") from exc
        return text.splitlines(keepends=True)

    def sanitize(self, path: Path) -> SanitizeReport:
        lines = self._read(path)
        report = SanitizeReport(path=path)
        report.source_count = sum(1 for line in lines if _is_source(line))
        collapse_sources = report.source_count > 1

        if collapse_sources:
            self._log(f"Found {report.source_count} source lines in Podfile, cleaning up duplicates...")

        output: List[str] = []
        kept_source = False
        for line in lines:
            if collapse_sources and _is_source(line):
                if not kept_source:
                    output.append(self.canonical_source + _line_ending(line))
                    kept_source = True
                    self._log(f"Kept source: {self.canonical_source}")
                else:
                    report.removed_duplicate_sources += 1
                    report.removed_lines.append(line.rstrip("\r\n"))
                    self._log(f"Removed duplicate: {line.rstrip()}")
                continue
            if self._is_deprecated(line):
                report.removed_deprecated_declarations += 1
                report.removed_lines.append(line.rstrip("\r\n"))
                self._log(f"Removed deprecated pod: {line.strip()}")
                continue
            output.append(line)

        if not report.changed:
            self._log(f"Podfile already clean (sources: {report.source_count})")
            return report

        try:
            temp_path = path.with_name(path.name + ".tmp")
            temp_path.write_bytes("".join(output).encode("utf-8"))
            temp_path.replace(path)
        except OSError as exc:
            raise SanitizeError(f"Could not write Podfile at {path}: {exc}") from exc
        self._log(
            f"Podfile cleaned: removed {report.removed_duplicate_sources} duplicate source(s) "
            f"and {report.removed_deprecated_declarations} deprecated declaration(s)"
        )
        return report


__all__ = ["ManifestSanitizer", "SanitizeReport", "SOURCE_PREFIX"]
