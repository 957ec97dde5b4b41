"""
llm_globber — Collect a set of files into one text artifact for an LLM.

Overview
--------
Files are given explicitly, found by walking directories (``-r``), or taken
from ``git ls-files`` (``--git REPO``). Every admitted file becomes one record
in ``<output>/<name>_<YYYYMMDDHHMMSS>.txt``::

    '''--- src/main.c ---
    int main(void) { return 0; }
    '''

Binary files are replaced by an omission marker and bytes outside printable
ASCII by U+FFFD. A final pass collapses runs of blank lines.

Usage
-----
Run ``llm-globber --help`` for full options. Common examples:
    - Every C source below ``src``:
        llm-globber -o out -n project -t .c,.h -r src

    - A git checkout, named after its repository:
        llm-globber --git . -o out

    - Recreate the text files of an artifact:
        llm-globber unglob out/project_20250101120000.txt -o restored
"""

from __future__ import annotations

import argparse
import signal
import sys
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any

from llm_globber import __version__, unglob
from llm_globber.cancellation import CancellationToken
from llm_globber.collector import PathCollector
from llm_globber.config import ExitCode, ProcessingStats, RunOutcome, RunResult
from llm_globber.exceptions import (
    ArgumentError,
    FileProcessingError,
    GitCommandError,
    LlmGlobberError,
    NotAGitRepositoryError,
    OperationCancelledError,
    OutputArtifactError,
    UnsafeArchivePathError,
)
from llm_globber.git_source import GitCli
from llm_globber.logging import level_for, logger, setup_logging
from llm_globber.output_construction import build_artifact
from llm_globber.settings import build_settings

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from llm_globber.git_source import GitSource
    from llm_globber.serializer import ProgressFn
    from llm_globber.settings import Settings

_IO_ERRORS = (
    OutputArtifactError,
    FileProcessingError,
    GitCommandError,
    NotAGitRepositoryError,
    UnsafeArchivePathError,
    OSError,
)


class SignalCancellation:
    """Route SIGINT and SIGTERM to a cancellation token while a run is active.

    A second signal after cancellation was requested raises
    ``KeyboardInterrupt`` so a stuck run can still be stopped.
    """

    def __init__(self, cancel: CancellationToken) -> None:
        self._cancel = cancel
        self._previous: dict[int, Any] = {}

    def __enter__(self) -> SignalCancellation:
        # signal handlers can only be installed from the main thread
        if threading.current_thread() is threading.main_thread():
            for sig in (signal.SIGINT, signal.SIGTERM):
                self._previous[sig] = signal.signal(sig, self._handle)
        return self

    def __exit__(self, *exc_info: object) -> None:
        for sig, handler in self._previous.items():
            signal.signal(sig, handler)
        self._previous.clear()

    def _handle(self, signum: int, _frame: FrameType | None) -> None:
        if self._cancel.cancelled:
            raise KeyboardInterrupt
        logger.warning("interrupt_received", signal=signal.Signals(signum).name)
        self._cancel.cancel()


def build_parser() -> argparse.ArgumentParser:
    """Build the main command parser.

    Options default to "absent" so that only flags given on the command line
    override the ``.env`` and ``--config`` layers.

    Returns:
        argparse.ArgumentParser: Configured parser.
    """
    p = argparse.ArgumentParser(
        prog="llm-globber",
        description="Collect and format files for LLMs. Use `llm-globber unglob --help` to extract an artifact.",
        argument_default=argparse.SUPPRESS,
    )
    p.add_argument(
        "inputs",
        nargs="*",
        type=Path,
        metavar="FILES/DIRECTORIES",
        help="Files or directories to process.",
    )
    p.add_argument("-o", "--output", dest="output_dir", type=Path, help="Output directory path.")
    p.add_argument("-n", "--name", type=str, help="Output filename (without extension).")
    p.add_argument(
        "-t",
        "--types",
        type=str,
        help="File types to include (comma separated, e.g. '.c,.h,.txt').",
    )
    p.add_argument(
        "-a",
        "--all",
        dest="all_files",
        action="store_true",
        help="Include all files (no filtering by type).",
    )
    p.add_argument("-r", "--recursive", action="store_true", help="Recursively process directories.")
    p.add_argument("--pattern", type=str, help="Filter files by name pattern (glob syntax, e.g. 'test*.c').")
    p.add_argument(
        "-d",
        "--dot",
        dest="include_dot_files",
        action="store_true",
        help="Include dot files (hidden files).",
    )
    p.add_argument("-s", "--size", dest="max_size_mb", type=int, help="Maximum file size in MB (default: 1024).")
    p.add_argument(
        "--git",
        type=Path,
        metavar="REPO",
        help="Process the files tracked by the git repository at REPO instead of explicit paths.",
    )
    p.add_argument("-p", "--progress", action="store_true", help="Show progress indicators.")
    p.add_argument(
        "-e",
        "--abort-on-error",
        action="store_true",
        help="Abort on errors (default is to continue).",
    )
    p.add_argument(
        "-j",
        "--workers",
        type=int,
        help="Threads reading files in parallel; output order is unchanged (default: 1).",
    )
    p.add_argument("--max-files", type=int, help="Maximum number of files to collect (default: 100000).")
    p.add_argument(
        "--no-cleanup",
        dest="cleanup",
        action="store_false",
        help="Keep runs of blank lines in the artifact.",
    )
    p.add_argument(
        "--max-newlines",
        type=int,
        help="Consecutive blank lines kept by the cleanup pass (default: 2).",
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Verbose output.")
    p.add_argument("-q", "--quiet", action="store_true", help="Quiet mode (suppress all output).")
    p.add_argument("--log-file", type=str, help="Log file path.")
    p.add_argument("--config", type=Path, help="YAML file with default settings.")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return p


def parse_args(argv: Sequence[str] | None = None) -> Settings:
    """Parse command line arguments into :class:`Settings`.

    Args:
        argv (Sequence[str] | None): Optional CLI arguments.

    Raises:
        ArgumentError: if required settings are missing or invalid.

    Returns:
        Settings: the merged, validated settings
    """
    args = build_parser().parse_args(argv)
    values = {k: v for k, v in vars(args).items() if v is not argparse.SUPPRESS}
    config_file = values.pop("config", None)
    return build_settings(values, config_file=config_file)


def print_progress(stats: ProcessingStats, total: int) -> None:
    """Write a one-line progress indicator to stderr."""
    sys.stderr.write(
        f"\rProcessed {stats.processed}/{total} files ({stats.files_per_second:.1f} files/sec), "
        f"{stats.failed} failed",
    )
    if stats.processed + stats.failed >= total:
        sys.stderr.write("\n")
    sys.stderr.flush()


def run(
    settings: Settings,
    *,
    cancel: CancellationToken | None = None,
    git_source: GitSource | None = None,
    progress: ProgressFn | None = None,
) -> RunResult:
    """Collect the configured files and build the artifact.

    Args:
        settings (Settings): validated settings
        cancel (CancellationToken | None): cooperative cancellation
        git_source (GitSource | None): repository collaborator; defaults to the git CLI
        progress (ProgressFn | None): progress callback for the serializer

    Returns:
        RunResult: the outcome, artifact path and counters
    """
    cancel = cancel or CancellationToken()
    collector = PathCollector(settings.to_filter_config(), cancel=cancel, max_files=settings.max_files)
    base_name = settings.name
    repository = branch = ""
    try:
        if settings.git is not None:
            if settings.inputs:
                logger.warning("inputs_ignored", reason="repository mode", count=len(settings.inputs))
            git = git_source or GitCli()
            descriptors = collector.collect_repository(settings.git, git)
            repository = git.repository_name(settings.git)
            branch = git.current_branch(settings.git)
            logger.info("repository_mode", repository=repository, branch=branch)
            base_name = base_name or repository
        else:
            descriptors = collector.collect(settings.inputs)
    except OperationCancelledError:
        logger.warning("run_cancelled", stage="collection")
        return RunResult(outcome=RunOutcome.CANCELLED)

    result = build_artifact(
        descriptors,
        output_dir=settings.output_dir,
        base_name=base_name,
        abort_on_error=settings.abort_on_error,
        workers=settings.workers,
        cleanup=settings.cleanup,
        max_consecutive_newlines=settings.max_newlines,
        cancel=cancel,
        progress=progress,
    )
    return result.model_copy(update={"repository": repository, "branch": branch})


def main(argv: Sequence[str] | None = None) -> int:
    """Run the command line and map the outcome to an exit code.

    Args:
        argv (Sequence[str] | None): Optional CLI arguments.

    Returns:
        int: Process exit code (see :class:`ExitCode`).
    """
    args = list(sys.argv[1:] if argv is None else argv)
    try:
        if args and args[0] == "unglob":
            return unglob.main(args[1:])

        settings = parse_args(args)
        setup_logging(
            settings.log_file or None,
            level=level_for(verbose=settings.verbose, quiet=settings.quiet),
            force=True,
        )
        cancel = CancellationToken()
        with SignalCancellation(cancel):
            result = run(
                settings,
                cancel=cancel,
                progress=print_progress if settings.progress and not settings.quiet else None,
            )
    except ArgumentError as e:
        logger.error("invalid_arguments", error=str(e))
        return ExitCode.ARGUMENT_ERROR
    except OperationCancelledError:
        return ExitCode.INTERRUPTED
    except _IO_ERRORS as e:
        logger.error("io_error", error=str(e))
        return ExitCode.IO_ERROR
    except LlmGlobberError as e:
        logger.error("run_failed", error=str(e))
        return ExitCode.RUNTIME_ERROR
    except MemoryError:
        logger.critical("out_of_memory")
        return ExitCode.MEMORY_ERROR
    except KeyboardInterrupt:
        logger.warning("interrupted")
        return ExitCode.INTERRUPTED

    if result.outcome is RunOutcome.CANCELLED:
        return ExitCode.INTERRUPTED
    if not settings.quiet:
        print(f"Wrote {result.artifact} files={result.stats.processed} failed={result.stats.failed}")
    return ExitCode.SUCCESS


if __name__ == "__main__":
    raise SystemExit(main())
