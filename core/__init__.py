"""Shared core utilities for command execution, configuration and console output."""

from .command_runner import (
    CommandError,
    CommandResult,
    CommandRunner,
    ProcessHandle,
    RecordingCommandRunner,
    SubprocessCommandRunner,
    tail_lines,
)
from .config_loader import (
    ConfigLoader,
    FILE_LOADERS,
    load_config_file,
    merge_mappings,
    normalize_string_list,
)
from .console import Console

__all__ = [
    "CommandError",
    "CommandResult",
    "CommandRunner",
    "ProcessHandle",
    "RecordingCommandRunner",
    "SubprocessCommandRunner",
    "tail_lines",
    "ConfigLoader",
    "FILE_LOADERS",
    "load_config_file",
    "merge_mappings",
    "normalize_string_list",
    "Console",
]
