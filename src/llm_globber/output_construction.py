from __future__ import annotations

from typing import TYPE_CHECKING, BinaryIO

from llm_globber.cancellation import CancellationToken
from llm_globber.config import (
    BANNER,
    DEFAULT_MAX_CONSECUTIVE_NEWLINES,
    ProcessingStats,
    RunOutcome,
    RunResult,
)
from llm_globber.exceptions import (
    NoFilesAdmittedError,
    NoFilesProcessedError,
    OperationCancelledError,
    OutputArtifactError,
)
from llm_globber.file_manipulation import ensure_output_dir, open_secure, remove_if_exists, timestamp
from llm_globber.logging import logger
from llm_globber.post_processor import collapse_blank_lines
from llm_globber.serializer import Serializer

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime
    from pathlib import Path

    from llm_globber.config import FileDescriptor
    from llm_globber.serializer import ProgressFn


def build_artifact_path(output_dir: Path, base_name: str, *, now: datetime | None = None) -> Path:
    """Return ``<output_dir>/<base_name>_<YYYYMMDDHHMMSS>.txt``.

    Args:
        output_dir (Path): the directory holding the artifact
        base_name (str): the artifact name without timestamp or extension
        now (datetime | None): the time to stamp; defaults to the current local time

    Returns:
        Path: the artifact path
    """
    return output_dir / f"{base_name}_{timestamp(now)}.txt"


def create_artifact(output_dir: Path, artifact: Path) -> BinaryIO:
    """Create the output directory if needed and open the artifact for writing.

    Raises:
        OutputArtifactError: if either cannot be created.
    """
    try:
        ensure_output_dir(output_dir)
        return open_secure(artifact)
    except OSError as e:
        raise OutputArtifactError(path=artifact, reason=str(e)) from e


def build_artifact(
    descriptors: Sequence[FileDescriptor],
    *,
    output_dir: Path,
    base_name: str,
    abort_on_error: bool = False,
    workers: int = 1,
    cleanup: bool = True,
    max_consecutive_newlines: int = DEFAULT_MAX_CONSECUTIVE_NEWLINES,
    cancel: CancellationToken | None = None,
    progress: ProgressFn | None = None,
    now: datetime | None = None,
) -> RunResult:
    """Serialize ``descriptors`` into a fresh artifact and normalize it.

    The artifact starts with a banner line followed by one record per
    descriptor. It is deleted again when the run is cancelled, when nothing
    could be processed, or when serialization aborts.

    Args:
        descriptors (Sequence[FileDescriptor]): admitted files, in output order
        output_dir (Path): directory for the artifact, created with mode 0700
        base_name (str): artifact name prefix
        abort_on_error (bool): fail the run on the first unreadable file
        workers (int): render records with this many threads (ordered commit)
        cleanup (bool): run the blank-line normalization pass
        max_consecutive_newlines (int): blank lines kept per run by the cleanup pass
        cancel (CancellationToken | None): cooperative cancellation
        progress (ProgressFn | None): called every few files with the counters
        now (datetime | None): timestamp override for the artifact name

    Returns:
        RunResult: ``success`` with the artifact path, or ``cancelled``

    Raises:
        NoFilesAdmittedError: if ``descriptors`` is empty.
        NoFilesProcessedError: if every file failed.
        OutputArtifactError: if the artifact cannot be created.
        FileProcessingError: if a file fails and ``abort_on_error`` is set.
    """
    cancel = cancel or CancellationToken()
    if not descriptors:
        raise NoFilesAdmittedError

    artifact = build_artifact_path(output_dir, base_name, now=now)
    stream = create_artifact(output_dir, artifact)
    logger.info("artifact_created", path=str(artifact), files=len(descriptors))

    serializer = Serializer(
        stream,
        abort_on_error=abort_on_error,
        cancel=cancel,
        workers=workers,
        progress=progress,
    )
    try:
        with stream:
            stream.write(BANNER)
            serializer.serialize(descriptors)
    except OperationCancelledError:
        remove_if_exists(artifact)
        logger.warning("run_cancelled", processed=serializer.stats.processed)
        return RunResult(outcome=RunOutcome.CANCELLED, stats=serializer.stats)
    except BaseException:
        remove_if_exists(artifact)
        raise

    stats = serializer.stats
    if stats.processed == 0:
        remove_if_exists(artifact)
        raise NoFilesProcessedError(failed=stats.failed)

    if cleanup:
        try:
            collapse_blank_lines(artifact, max_consecutive_newlines=max_consecutive_newlines, cancel=cancel)
        except OperationCancelledError:
            remove_if_exists(artifact)
            logger.warning("run_cancelled", processed=stats.processed)
            return RunResult(outcome=RunOutcome.CANCELLED, stats=stats)
        except OSError as e:
            # the artifact is complete, only not normalized
            logger.error("cleanup_failed", path=str(artifact), error=str(e))

    log_summary(artifact, stats)
    return RunResult(outcome=RunOutcome.SUCCESS, artifact=artifact, stats=stats)


def log_summary(artifact: Path, stats: ProcessingStats) -> None:
    """Log the end-of-run counters."""
    logger.info(
        "run_complete",
        path=str(artifact),
        processed=stats.processed,
        elapsed_seconds=round(stats.elapsed, 2),
        files_per_second=round(stats.files_per_second, 1),
    )
    if stats.failed:
        logger.warning("files_failed", failed=stats.failed)
