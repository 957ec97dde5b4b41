"""Extract the records of an artifact back into files.

This is the inverse of the serializer for text records only, and it is
lossy: bytes replaced by U+FFFD stay replaced, runs of blank lines collapsed
by the cleanup pass stay collapsed, and binary records are skipped.

A text file whose whole content is the omission marker without a trailing
newline is written exactly like a binary record, so it is read back as one
and not extracted.
"""

from __future__ import annotations

import argparse
import re
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from llm_globber.config import BINARY_OMISSION_MARKER, END_MARKER
from llm_globber.exceptions import UnsafeArchivePathError
from llm_globber.logging import logger

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

_START_LINE = re.compile(rb"^'''--- (?P<path>.*) ---\r?\n?$")


class ArtifactRecord(BaseModel):
    """One record read back from an artifact.

    Attributes:
        path: The path written in the start marker.
        content: The record body, or None for a binary record.
    """

    model_config = ConfigDict(frozen=True)

    path: str = Field(..., description="Path from the start marker")
    content: bytes | None = Field(default=None, description="Body bytes; None when binary")

    @property
    def is_binary(self) -> bool:
        """Whether the serializer omitted this file's contents."""
        return self.content is None


def _finish_record(path: str, lines: list[bytes]) -> ArtifactRecord | None:
    end = None
    for idx in range(len(lines) - 1, -1, -1):
        if lines[idx].rstrip(b"\r\n") == END_MARKER:
            end = idx
            break
    if end is None:
        logger.warning("record_unterminated", path=path)
        return None
    body = b"".join(lines[:end])
    if body == BINARY_OMISSION_MARKER + b"\n":
        return ArtifactRecord(path=path, content=None)
    # the serializer puts one newline between the body and the end marker
    return ArtifactRecord(path=path, content=body.removesuffix(b"\n"))


def iter_records(artifact: Path) -> Iterator[ArtifactRecord]:
    """Stream the records of ``artifact`` in file order.

    A record ends at the last ``'''`` line before the next start marker, so
    bodies that contain ``'''`` lines of their own are kept intact.

    Args:
        artifact (Path): an artifact written by the serializer

    Yields:
        ArtifactRecord: one record per start marker
    """
    path: str | None = None
    lines: list[bytes] = []
    with artifact.open("rb") as f:
        for line in f:
            match = _START_LINE.match(line)
            if match:
                if path is not None and (rec := _finish_record(path, lines)):
                    yield rec
                path = match.group("path").decode("utf-8", errors="surrogateescape")
                lines = []
            elif path is not None:
                lines.append(line)
    if path is not None and (rec := _finish_record(path, lines)):
        yield rec


def safe_destination(root: Path, recorded: str) -> Path:
    """Map a recorded path to a location beneath ``root``.

    Absolute paths lose their anchor and ``.`` components are dropped.

    Args:
        root (Path): the extraction directory
        recorded (str): the path from a start marker

    Raises:
        UnsafeArchivePathError: if the path has a ``..`` component or is empty.

    Returns:
        Path: the destination file path
    """
    pure = Path(recorded.replace("\\", "/"))
    parts = [p for p in pure.parts[1:] if p != "."] if pure.anchor else [p for p in pure.parts if p != "."]
    if not parts or ".." in parts:
        raise UnsafeArchivePathError(path=recorded)
    return root.joinpath(*parts)


def extract_artifact(artifact: Path, output_dir: Path) -> list[Path]:
    """Write every text record of ``artifact`` beneath ``output_dir``.

    Args:
        artifact (Path): the artifact to read
        output_dir (Path): where files are recreated

    Raises:
        UnsafeArchivePathError: if a record path would escape ``output_dir``.

    Returns:
        list[Path]: the files written, in artifact order
    """
    written: list[Path] = []
    for rec in iter_records(artifact):
        dest = safe_destination(output_dir, rec.path)
        if rec.content is None:
            logger.info("binary_record_skipped", path=rec.path)
            continue
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(rec.content)
        logger.debug("record_extracted", path=rec.path, destination=str(dest))
        written.append(dest)
    return written


def build_parser() -> argparse.ArgumentParser:
    """Build parser for the ``unglob`` subcommand.

    Returns:
        argparse.ArgumentParser: Configured parser.
    """
    parser = argparse.ArgumentParser(
        prog="llm-globber unglob",
        description="Recreate the text files stored in an llm_globber artifact.",
    )
    parser.add_argument("artifact", type=Path, help="Artifact written by llm-globber.")
    parser.add_argument(
        "-o",
        "--output",
        dest="output_dir",
        type=Path,
        default=Path.cwd(),
        help="Directory to extract into (default: current directory).",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Extract an artifact from the command line.

    Args:
        argv (Sequence[str] | None): Optional CLI arguments.

    Returns:
        int: Process exit code.
    """
    args = build_parser().parse_args(argv)
    written = extract_artifact(args.artifact, args.output_dir)
    print(f"Extracted {len(written)} files into {args.output_dir}")
    return 0
