from __future__ import annotations

import os
from enum import IntEnum, StrEnum, auto
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, computed_field

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

BANNER = b"*Local Files*\n"
START_MARKER = "'''--- {path} ---\n"
END_MARKER = b"'''"
BINARY_OMISSION_MARKER = b"[Binary file - contents omitted]"
REPLACEMENT_CHARACTER = "�".encode()

SAMPLE_SIZE = 4096
BINARY_MIN_COUNT = 5
BINARY_RATIO_PERCENT = 10
MMAP_THRESHOLD = 1 << 20
IO_BUFFER_SIZE = 1 << 18
SPOOL_MAX_SIZE = 1 << 24

DEFAULT_MAX_FILE_SIZE_MB = 1024
DEFAULT_MAX_FILES = 100_000
DEFAULT_MAX_CONSECUTIVE_NEWLINES = 2
PROGRESS_EVERY = 10

TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"
TEMP_SUFFIX = ".tmp"
SECURE_FILE_MODE = 0o600
SECURE_DIR_MODE = 0o700
UNKNOWN_BRANCH = "unknown"


class ExitCode(IntEnum):
    """Process exit codes reported by the command line."""

    SUCCESS = 0
    RUNTIME_ERROR = 1
    ARGUMENT_ERROR = 2
    IO_ERROR = 3
    MEMORY_ERROR = 4
    INTERRUPTED = 130


class RunOutcome(StrEnum):
    """Final state of a run that did not raise; cancellation is not a failure."""

    SUCCESS = auto()
    CANCELLED = auto()


def extension_of(path: str) -> str:
    """Return the final dot-suffix of the base name of ``path``.

    Args:
        path (str): a file path, absolute or relative

    Returns:
        str: the suffix including its leading dot (e.g. ``".py"``), or an empty
            string when the base name has no dot
    """
    name = os.path.basename(path)
    idx = name.rfind(".")
    return name[idx:] if idx >= 0 else ""


class ExtensionIndex:
    """Read-only set of allowed file suffixes.

    Tokens are trimmed and given a leading dot when they lack one. Duplicates
    keep their first position, which only matters for display.
    """

    __slots__ = ("_members", "_ordered")

    def __init__(self, extensions: Iterable[str] = ()) -> None:
        ordered: dict[str, None] = {}
        for ext in extensions:
            normalized = self.normalize(ext)
            if normalized:
                ordered.setdefault(normalized, None)
        self._ordered = tuple(ordered)
        self._members = frozenset(ordered)

    @staticmethod
    def normalize(token: str) -> str:
        """Trim a token and prefix it with ``.`` when needed; empty stays empty."""
        token = token.strip()
        if not token:
            return ""
        return token if token.startswith(".") else f".{token}"

    @classmethod
    def from_string(cls, types: str) -> ExtensionIndex:
        """Build an index from a comma separated list such as ``".c, h,.txt"``.

        Args:
            types (str): comma separated extensions

        Returns:
            ExtensionIndex: the populated index
        """
        return cls((types or "").split(","))

    def matches(self, path: str) -> bool:
        """Check the suffix of ``path`` against the index (case-sensitive)."""
        ext = extension_of(path)
        return bool(ext) and ext in self._members

    def __contains__(self, ext: object) -> bool:
        return ext in self._members

    def __iter__(self) -> Iterator[str]:
        return iter(self._ordered)

    def __len__(self) -> int:
        return len(self._ordered)

    def __repr__(self) -> str:
        return f"ExtensionIndex({list(self._ordered)!r})"


class FilterConfig(BaseModel):
    """Admission criteria applied by the path collector.

    Attributes:
        extensions: Allowed suffixes; empty means "no extension filtering".
        filter_files: When False, the extension filter is disabled entirely.
        name_pattern: Shell glob matched against the base name only.
        include_dot_files: Keep entries whose name starts with ``.``.
        max_file_size: Files strictly larger than this many bytes are skipped.
        recursive: Descend into directories.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    extensions: ExtensionIndex = Field(default_factory=ExtensionIndex)
    filter_files: bool = Field(default=True, description="Apply the extension filter")
    name_pattern: str = Field(default="", description="Glob matched against base names")
    include_dot_files: bool = Field(default=False, description="Keep hidden entries")
    max_file_size: int = Field(
        default=DEFAULT_MAX_FILE_SIZE_MB * 1024 * 1024,
        ge=0,
        description="Maximum file size in bytes",
    )
    recursive: bool = Field(default=False, description="Descend into directories")

    @computed_field
    @property
    def filters_extensions(self) -> bool:
        """Whether the extension filter takes part in admission."""
        return self.filter_files and len(self.extensions) > 0


class FileDescriptor(BaseModel):
    """One admitted file: its literal path and the size seen during traversal."""

    model_config = ConfigDict(frozen=True)

    path: str = Field(..., description="Path as given or as built during traversal")
    size: int = Field(..., ge=0, description="File size in bytes")


class ProcessingStats(BaseModel):
    """Counters updated by the serializer loop."""

    processed: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    elapsed: float = Field(default=0.0, ge=0.0, description="Wall time in seconds")

    @computed_field
    @property
    def files_per_second(self) -> float:
        """Throughput over the elapsed wall time."""
        if self.elapsed <= 0:
            return 0.0
        return self.processed / self.elapsed


class RunResult(BaseModel):
    """What a run hands back to its caller."""

    outcome: RunOutcome
    artifact: Path | None = Field(default=None, description="Artifact path on success")
    stats: ProcessingStats = Field(default_factory=ProcessingStats)
    repository: str = Field(default="", description="Repository name in repository mode")
    branch: str = Field(default="", description="Current branch in repository mode")
