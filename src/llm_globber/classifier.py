"""Binary-versus-text decision from a bounded prefix of a file."""

from __future__ import annotations

from typing import TYPE_CHECKING

from llm_globber.config import BINARY_MIN_COUNT, BINARY_RATIO_PERCENT, SAMPLE_SIZE

if TYPE_CHECKING:
    from pathlib import Path

# control bytes other than \t, \n and \r; NUL is handled on its own
_SUSPICIOUS = bytes(b for b in range(32) if b not in {0x09, 0x0A, 0x0D})
_SCAN_BLOCK = 512


def exceeds_ratio(count: int, sample_len: int) -> bool:
    """Whether ``count`` is strictly more than 10% of ``sample_len``."""
    return count * 100 > sample_len * BINARY_RATIO_PERCENT


def is_binary_data(data: bytes | bytearray | memoryview) -> bool:
    """Classify a byte buffer using at most its first 4096 bytes.

    A NUL byte in the sample is decisive. Otherwise the sample is binary when
    control bytes other than ``\\n``, ``\\r`` and ``\\t`` make up more than 10%
    of it. The scan stops early once more than five such bytes have been seen
    and they already exceed the ratio. An empty sample is text.

    Args:
        data: the buffer to inspect (only the prefix is read)

    Returns:
        bool: True for binary content
    """
    sample = bytes(data[:SAMPLE_SIZE])
    if not sample:
        return False
    if b"\x00" in sample:
        return True

    total = len(sample)
    count = 0
    for start in range(0, total, _SCAN_BLOCK):
        block = sample[start : start + _SCAN_BLOCK]
        count += len(block) - len(block.translate(None, _SUSPICIOUS))
        if count > BINARY_MIN_COUNT and exceeds_ratio(count, total):
            return True
    return exceeds_ratio(count, total)


def is_binary_file(path: Path | str) -> bool:
    """Read the sample of ``path`` and classify it.

    Args:
        path: the file to inspect

    Returns:
        bool: True for binary content

    Raises:
        OSError: if the file cannot be opened or read.
    """
    with open(path, "rb") as f:
        return is_binary_data(f.read(SAMPLE_SIZE))
