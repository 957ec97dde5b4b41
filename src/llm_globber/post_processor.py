from __future__ import annotations

import os
from typing import TYPE_CHECKING

from llm_globber.cancellation import CancellationToken
from llm_globber.config import DEFAULT_MAX_CONSECUTIVE_NEWLINES, TEMP_SUFFIX
from llm_globber.file_manipulation import open_secure, remove_if_exists
from llm_globber.logging import logger

if TYPE_CHECKING:
    from pathlib import Path

_CANCEL_POLL_LINES = 4096


def is_blank_line(line: bytes) -> bool:
    """Whether ``line`` holds nothing but its line terminator."""
    return not line.rstrip(b"\r\n")


def collapse_blank_lines(
    artifact: Path,
    *,
    max_consecutive_newlines: int = DEFAULT_MAX_CONSECUTIVE_NEWLINES,
    cancel: CancellationToken | None = None,
) -> int:
    """Drop blank lines beyond ``max_consecutive_newlines`` in a row, in place.

    The artifact is streamed line by line into a ``.tmp`` sibling which then
    replaces it with an atomic rename. If anything goes wrong, including
    cancellation, the sibling is deleted and the artifact is left as it was.
    Non-blank lines are copied byte for byte, so an artifact without long runs
    of blank lines comes out identical.

    Args:
        artifact (Path): the file to normalize
        max_consecutive_newlines (int): blank lines kept per run
        cancel (CancellationToken | None): polled every few thousand lines

    Returns:
        int: the number of blank lines removed

    Raises:
        OSError: if the artifact cannot be read or the replacement written.
        OperationCancelledError: if cancellation is requested during the pass.
    """
    cancel = cancel or CancellationToken()
    temp = artifact.with_name(artifact.name + TEMP_SUFFIX)
    dropped = 0
    run = 0
    try:
        with artifact.open("rb") as src, open_secure(temp) as dst:
            for number, line in enumerate(src):
                if number % _CANCEL_POLL_LINES == 0:
                    cancel.raise_if_cancelled()
                if is_blank_line(line):
                    run += 1
                    if run > max_consecutive_newlines:
                        dropped += 1
                        continue
                else:
                    run = 0
                dst.write(line)
        os.replace(temp, artifact)
    except BaseException:
        remove_if_exists(temp)
        raise

    logger.debug("blank_lines_collapsed", path=str(artifact), dropped=dropped)
    return dropped
