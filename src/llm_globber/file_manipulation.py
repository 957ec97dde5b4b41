from __future__ import annotations

import fnmatch
import os
from datetime import datetime
from pathlib import Path
from typing import BinaryIO

from llm_globber.config import IO_BUFFER_SIZE, SECURE_DIR_MODE, SECURE_FILE_MODE, TIMESTAMP_FORMAT
from llm_globber.logging import logger


def matches_name_pattern(name: str, pattern: str) -> bool:
    """Check a base name against a shell glob.

    An empty pattern matches everything. Matching is case-sensitive on every
    platform so that results do not depend on the host filesystem.

    Args:
        name (str): the base name to test
        pattern (str): a glob such as ``"test*.c"``

    Returns:
        bool: True if ``name`` matches ``pattern``
    """
    if not pattern:
        return True
    return fnmatch.fnmatchcase(name, pattern)


def timestamp(now: datetime | None = None) -> str:
    """Return the local time formatted for artifact names (``YYYYMMDDHHMMSS``)."""
    return (now or datetime.now()).strftime(TIMESTAMP_FORMAT)  # noqa: DTZ005


def ensure_output_dir(path: Path) -> None:
    """Create the output directory with owner-only permissions if it is absent.

    Args:
        path (Path): the directory to create

    Raises:
        NotADirectoryError: if ``path`` exists and is not a directory.
    """
    if path.is_dir():
        return
    if path.exists():
        raise NotADirectoryError(f"Output path is not a directory: {path}")
    path.mkdir(mode=SECURE_DIR_MODE, parents=True, exist_ok=True)
    logger.info("output_dir_created", path=str(path))


def set_secure_permissions(path: Path) -> None:
    """Restrict ``path`` to owner read/write."""
    os.chmod(path, SECURE_FILE_MODE)


def open_secure(path: Path) -> BinaryIO:
    """Open ``path`` for binary writing (truncating) with mode 0600.

    Args:
        path (Path): the file to create or truncate

    Returns:
        BinaryIO: a buffered binary writer
    """
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC | getattr(os, "O_BINARY", 0), SECURE_FILE_MODE)
    try:
        # an existing file keeps its old mode through O_CREAT
        set_secure_permissions(path)
    except OSError:
        os.close(fd)
        raise
    return os.fdopen(fd, "wb", buffering=IO_BUFFER_SIZE)


def remove_if_exists(path: Path) -> None:
    """Delete ``path``, logging instead of raising when that fails."""
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("remove_failed", path=str(path), error=str(e))
