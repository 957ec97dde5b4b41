from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import dotenv_values, find_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from llm_globber.config import (
    DEFAULT_MAX_CONSECUTIVE_NEWLINES,
    DEFAULT_MAX_FILE_SIZE_MB,
    DEFAULT_MAX_FILES,
    ExtensionIndex,
    FilterConfig,
)
from llm_globber.exceptions import ArgumentError

ENV_FILE = find_dotenv(usecwd=True)
ENV_PREFIX = "LLM_GLOBBER_"


class Settings(BaseModel):
    """Configuration settings for the llm_globber command."""

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid")

    inputs: list[Path] = Field(default_factory=list, description="Files or directories to process.")
    output_dir: Path = Field(..., description="Output directory path.")
    name: str = Field(default="", description="Output filename (without extension).")
    types: str = Field(default="", description="Comma separated file types, e.g. '.c,.h,.txt'.")
    all_files: bool = Field(default=False, description="Include all files (no filtering by type).")
    recursive: bool = Field(default=False, description="Recursively process directories.")
    pattern: str = Field(default="", description="Filter files by name pattern (glob).")
    include_dot_files: bool = Field(default=False, description="Include dot files (hidden files).")
    max_size_mb: int = Field(
        default=DEFAULT_MAX_FILE_SIZE_MB,
        ge=0,
        description="Maximum file size in MB.",
    )
    git: Path | None = Field(default=None, description="Repository to read tracked files from.")

    verbose: bool = Field(default=False, description="Verbose output.")
    quiet: bool = Field(default=False, description="Quiet mode (suppress all output).")
    progress: bool = Field(default=False, description="Show progress indicators.")
    log_file: str = Field(default="", description="Log file path.")

    abort_on_error: bool = Field(default=False, description="Abort on the first unreadable file.")
    workers: int = Field(default=1, ge=1, description="Threads rendering records (ordered commit).")
    max_files: int = Field(default=DEFAULT_MAX_FILES, ge=1, description="Maximum admitted files.")
    cleanup: bool = Field(default=True, description="Collapse runs of blank lines afterwards.")
    max_newlines: int = Field(
        default=DEFAULT_MAX_CONSECUTIVE_NEWLINES,
        ge=0,
        description="Blank lines kept per run by the cleanup pass.",
    )

    @model_validator(mode="after")
    def _check_required(self) -> Settings:
        if self.git is None:
            if not self.name:
                msg = "Output filename (-n) is required"
                raise ValueError(msg)
            if not self.inputs:
                msg = "No input files or directories specified"
                raise ValueError(msg)
        return self

    @property
    def max_file_size(self) -> int:
        """The size ceiling in bytes."""
        return self.max_size_mb * 1024 * 1024

    def to_filter_config(self) -> FilterConfig:
        """Build the immutable admission criteria for the collector."""
        return FilterConfig(
            extensions=ExtensionIndex.from_string(self.types),
            filter_files=not self.all_files,
            name_pattern=self.pattern,
            include_dot_files=self.include_dot_files,
            max_file_size=self.max_file_size,
            recursive=self.recursive,
        )


def load_env_defaults(env_file: str | None = ENV_FILE) -> dict[str, str]:
    """Collect ``LLM_GLOBBER_*`` values from a ``.env`` file and the environment.

    The process environment wins over the file. ``LLM_GLOBBER_OUTPUT_DIR=out``
    becomes ``{"output_dir": "out"}``; the list-valued ``inputs`` is not read.

    Args:
        env_file (str | None): the ``.env`` file, as located by ``find_dotenv``

    Returns:
        dict[str, str]: setting names mapped to raw string values
    """
    raw: dict[str, str | None] = dict(dotenv_values(env_file)) if env_file else {}
    raw.update(os.environ)
    fields = set(Settings.model_fields) - {"inputs"}
    out: dict[str, str] = {}
    for key, value in raw.items():
        if not key.startswith(ENV_PREFIX) or value is None:
            continue
        name = key.removeprefix(ENV_PREFIX).lower()
        if name in fields:
            out[name] = value
    return out


def load_profile(path: Path) -> dict[str, Any]:
    """Read a YAML profile of setting defaults.

    Keys may use dashes or underscores (``max-size-mb`` or ``max_size_mb``).

    Args:
        path (Path): the YAML file

    Raises:
        ArgumentError: if the file cannot be read or is not a mapping.

    Returns:
        dict[str, Any]: setting names mapped to values
    """
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        msg = f"Cannot read config file {path}: {e}"
        raise ArgumentError(message=msg) from e
    if not isinstance(data, dict):
        msg = f"Config file {path} must contain a mapping"
        raise ArgumentError(message=msg)
    return {str(k).replace("-", "_"): v for k, v in data.items()}


def build_settings(
    cli_values: dict[str, Any],
    *,
    config_file: Path | None = None,
    env_file: str | None = ENV_FILE,
) -> Settings:
    """Merge defaults, ``.env``, a YAML profile and CLI values into :class:`Settings`.

    Later sources win: environment, then profile, then the command line.

    Args:
        cli_values (dict[str, Any]): options given explicitly on the command line
        config_file (Path | None): optional YAML profile
        env_file (str | None): optional ``.env`` file

    Raises:
        ArgumentError: if the merged values do not validate.

    Returns:
        Settings: the validated settings
    """
    merged: dict[str, Any] = {}
    merged.update(load_env_defaults(env_file))
    if config_file is not None:
        merged.update(load_profile(config_file))
    merged.update(cli_values)
    try:
        return Settings(**merged)
    except ValidationError as e:
        messages = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'settings'}: {err['msg']}" for err in e.errors()
        )
        raise ArgumentError(message=messages) from e
