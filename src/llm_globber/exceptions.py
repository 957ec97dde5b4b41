from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class LlmGlobberError(Exception):
    """Base exception for errors in the llm_globber package."""

    def __str__(self) -> str:
        return str(getattr(self, "message", "")) or type(self).__name__


@dataclass(frozen=True)
class ArgumentError(LlmGlobberError):
    """Raised when required configuration is missing or invalid."""

    message: str


@dataclass(frozen=True)
class GitCommandError(LlmGlobberError):
    """Raised when a git command fails."""

    command: str
    returncode: int
    stdout: str
    stderr: str

    @property
    def message(self) -> str:
        detail = self.stderr.strip() or self.stdout.strip()
        return f"`{self.command}` exited with {self.returncode}: {detail}"


@dataclass(frozen=True)
class NotAGitRepositoryError(LlmGlobberError):
    """Raised when the specified directory is not a Git repository."""

    folder: Path
    message: str = "The specified directory is not a Git repository."


@dataclass(frozen=True)
class OutputArtifactError(LlmGlobberError):
    """Raised when the output directory or artifact cannot be created."""

    path: Path
    reason: str

    @property
    def message(self) -> str:
        return f"Cannot create output artifact {self.path}: {self.reason}"


@dataclass(frozen=True)
class FileProcessingError(LlmGlobberError):
    """Raised when a file cannot be serialized and abort-on-error is active."""

    path: str
    reason: str

    @property
    def message(self) -> str:
        return f"Failed to process {self.path}: {self.reason}"


@dataclass(frozen=True)
class NoFilesAdmittedError(LlmGlobberError):
    """Raised when no input file passes the configured filters."""

    message: str = "No files found matching criteria."


@dataclass(frozen=True)
class NoFilesProcessedError(LlmGlobberError):
    """Raised when every admitted file failed to serialize."""

    failed: int
    message: str = "No files were processed."


@dataclass(frozen=True)
class OperationCancelledError(LlmGlobberError):
    """Raised inside a pipeline stage once cancellation has been requested."""

    message: str = "Operation cancelled by user."


@dataclass(frozen=True)
class UnsafeArchivePathError(LlmGlobberError):
    """Raised when an artifact record would be extracted outside its target directory."""

    path: str
    message: str = "Record path escapes the extraction directory."
