"""Rendering of admitted files into delimited, sanitized records.

A record is::

    '''--- <path> ---
    <sanitized body, or the binary omission marker>
    '''
    <blank line>

Sanitization works on bytes, not characters: printable ASCII plus ``\\t``,
``\\n`` and ``\\r`` are kept and every other byte becomes one U+FFFD. Multi-byte
encodings therefore come out as runs of replacement characters.
"""

from __future__ import annotations

import errno
import mmap
import os
import re
import shutil
import stat
import tempfile
import time
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from typing import TYPE_CHECKING, BinaryIO

from llm_globber.cancellation import CancellationToken
from llm_globber.classifier import is_binary_data
from llm_globber.config import (
    BINARY_OMISSION_MARKER,
    END_MARKER,
    IO_BUFFER_SIZE,
    MMAP_THRESHOLD,
    PROGRESS_EVERY,
    REPLACEMENT_CHARACTER,
    SAMPLE_SIZE,
    SPOOL_MAX_SIZE,
    START_MARKER,
    FileDescriptor,
    ProcessingStats,
)
from llm_globber.exceptions import FileProcessingError
from llm_globber.logging import logger

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Sequence

    ProgressFn = Callable[[ProcessingStats, int], None]

_UNSAFE_BYTES = re.compile(rb"[^\x20-\x7e\t\n\r]")
_RECORD_END = b"\n" + END_MARKER + b"\n\n"


def sanitize(data: bytes) -> bytes:
    """Replace every byte outside printable ASCII, ``\\t``, ``\\n``, ``\\r`` with U+FFFD."""
    return _UNSAFE_BYTES.sub(REPLACEMENT_CHARACTER, data)


def start_marker(path: str) -> bytes:
    """The line that opens the record of ``path``."""
    return START_MARKER.format(path=path).encode("utf-8", errors="surrogateescape")


def _body_from_stream(handle: BinaryIO, chunk_size: int) -> Iterator[bytes]:
    sample = handle.read(SAMPLE_SIZE)
    if is_binary_data(sample):
        yield BINARY_OMISSION_MARKER
        return
    yield sanitize(sample)
    for block in iter(lambda: handle.read(chunk_size), b""):
        yield sanitize(block)


def _body_from_map(view: mmap.mmap, size: int, chunk_size: int) -> Iterator[bytes]:
    if is_binary_data(view[:SAMPLE_SIZE]):
        yield BINARY_OMISSION_MARKER
        return
    for offset in range(0, size, chunk_size):
        yield sanitize(view[offset : offset + chunk_size])


def iter_record(
    path: str,
    *,
    use_mmap: bool | None = None,
    chunk_size: int = IO_BUFFER_SIZE,
) -> Iterator[bytes]:
    """Yield the record of ``path`` piece by piece.

    The file is opened before anything is yielded, so an unreadable file
    produces no output at all. Files of 1 MiB or more are memory-mapped unless
    ``use_mmap`` says otherwise; both read paths yield the same bytes.

    Args:
        path (str): the file to render; it appears verbatim in the start marker
        use_mmap (bool | None): force (True) or forbid (False) the mapped read path
        chunk_size (int): bytes sanitized per step

    Yields:
        bytes: consecutive parts of the record

    Raises:
        OSError: if the file is not a regular file or cannot be read.
    """
    st = os.stat(path)
    if not stat.S_ISREG(st.st_mode):
        raise OSError(errno.EINVAL, "Not a regular file", path)

    with open(path, "rb") as handle:
        size = os.fstat(handle.fileno()).st_size
        mapped = size >= MMAP_THRESHOLD if use_mmap is None else use_mmap
        # an empty file cannot be mapped
        if mapped and size > 0:
            with mmap.mmap(handle.fileno(), 0, access=mmap.ACCESS_READ) as view:
                yield start_marker(path)
                yield from _body_from_map(view, size, chunk_size)
        else:
            yield start_marker(path)
            yield from _body_from_stream(handle, chunk_size)
    yield _RECORD_END


def render_record(path: str, *, use_mmap: bool | None = None) -> bytes:
    """Return the complete record of ``path`` as one bytes object."""
    return b"".join(iter_record(path, use_mmap=use_mmap))


class Serializer:
    """Write the records of admitted files, in order, to one output stream.

    With ``workers > 1`` records are rendered by a thread pool, at most
    ``2 * workers`` at a time, and committed by the calling thread in
    descriptor order. The output stream has a single writer either way.
    """

    def __init__(
        self,
        stream: BinaryIO,
        *,
        abort_on_error: bool = False,
        cancel: CancellationToken | None = None,
        workers: int = 1,
        progress: ProgressFn | None = None,
    ) -> None:
        self._stream = stream
        self._abort_on_error = abort_on_error
        self._cancel = cancel or CancellationToken()
        self._workers = max(1, workers)
        self._progress = progress
        self._started = 0.0
        self.stats = ProcessingStats()

    def serialize(self, descriptors: Sequence[FileDescriptor]) -> ProcessingStats:
        """Write one record per descriptor and return the counters.

        Args:
            descriptors (Sequence[FileDescriptor]): admitted files, in output order

        Returns:
            ProcessingStats: processed and failed counts, elapsed time

        Raises:
            OperationCancelledError: when cancellation is requested between files.
            FileProcessingError: on the first failing file if abort-on-error is set.
        """
        self.stats = ProcessingStats()
        self._started = time.perf_counter()
        try:
            if self._workers > 1:
                self._serialize_parallel(descriptors)
            else:
                self._serialize_sequential(descriptors)
        finally:
            self.stats.elapsed = time.perf_counter() - self._started
        return self.stats

    def _serialize_sequential(self, descriptors: Sequence[FileDescriptor]) -> None:
        total = len(descriptors)
        for descriptor in descriptors:
            self._cancel.raise_if_cancelled()
            logger.debug("processing_file", path=descriptor.path, size=descriptor.size)
            error = self._write_record(descriptor)
            self._account(descriptor, error, total)

    def _write_record(self, descriptor: FileDescriptor) -> OSError | None:
        """Stage the record of one file and append it only once it is complete.

        A file that fails halfway leaves nothing in the artifact. Read errors
        are returned as per-file failures; write errors on the artifact raise.
        """
        with tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_SIZE) as staged:
            try:
                for part in iter_record(descriptor.path):
                    staged.write(part)
            except OSError as e:
                return e
            staged.seek(0)
            shutil.copyfileobj(staged, self._stream, IO_BUFFER_SIZE)
        return None

    def _serialize_parallel(self, descriptors: Sequence[FileDescriptor]) -> None:
        total = len(descriptors)
        window = 2 * self._workers
        pending: deque[tuple[FileDescriptor, Future[bytes]]] = deque()
        with ThreadPoolExecutor(max_workers=self._workers, thread_name_prefix="llm-globber") as pool:
            try:
                for descriptor in descriptors:
                    self._cancel.raise_if_cancelled()
                    pending.append((descriptor, pool.submit(render_record, descriptor.path)))
                    if len(pending) >= window:
                        self._commit(*pending.popleft(), total)
                while pending:
                    self._cancel.raise_if_cancelled()
                    self._commit(*pending.popleft(), total)
            except BaseException:
                for _, future in pending:
                    future.cancel()
                raise

    def _commit(self, descriptor: FileDescriptor, future: Future[bytes], total: int) -> None:
        try:
            record = future.result()
        except OSError as e:
            self._account(descriptor, e, total)
            return
        self._stream.write(record)
        self._account(descriptor, None, total)

    def _account(self, descriptor: FileDescriptor, error: OSError | None, total: int) -> None:
        if error is None:
            self.stats.processed += 1
        else:
            self.stats.failed += 1
            logger.warning("file_failed", path=descriptor.path, error=str(error))
            if self._abort_on_error:
                raise FileProcessingError(path=descriptor.path, reason=str(error)) from error

        done = self.stats.processed + self.stats.failed
        if self._progress is not None and (done % PROGRESS_EVERY == 0 or done == total):
            self.stats.elapsed = time.perf_counter() - self._started
            self._progress(self.stats, total)
