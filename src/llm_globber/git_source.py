from __future__ import annotations

import subprocess  # noqa: S404
from pathlib import Path
from typing import Protocol, runtime_checkable

from llm_globber.config import UNKNOWN_BRANCH
from llm_globber.exceptions import GitCommandError
from llm_globber.logging import logger


@runtime_checkable
class GitSource(Protocol):
    """What the path collector needs from a version-control checkout."""

    def is_working_tree(self, path: Path) -> bool: ...

    def repository_name(self, path: Path) -> str: ...

    def current_branch(self, path: Path) -> str: ...

    def tracked_files(self, path: Path) -> list[str]: ...


def name_from_remote_url(url: str) -> str:
    """Extract a repository name from a remote URL.

    Handles ``https://host/org/repo.git``, ``git@host:org/repo.git`` and local
    paths.

    Args:
        url (str): the remote URL as printed by ``git remote get-url``

    Returns:
        str: the repository name, or an empty string if none can be derived
    """
    tail = url.strip().rstrip("/").replace("\\", "/")
    tail = tail.rsplit("/", 1)[-1].rsplit(":", 1)[-1]
    return tail.removesuffix(".git")


class GitCli:
    """:class:`GitSource` backed by the ``git`` executable."""

    def __init__(self, git_bin: str = "git") -> None:
        self.git_bin = git_bin

    def _run(self, path: Path, *args: str) -> str:
        command = [self.git_bin, "-C", str(path), *args]
        try:
            out = subprocess.run(  # noqa: S603
                command,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="surrogateescape",
                check=False,
            )
        except OSError as e:
            raise GitCommandError(
                command=" ".join(command),
                returncode=-1,
                stdout="",
                stderr=str(e),
            ) from e
        if out.returncode != 0:
            raise GitCommandError(
                command=" ".join(command),
                returncode=out.returncode,
                stdout=out.stdout,
                stderr=out.stderr,
            )
        return out.stdout

    def is_working_tree(self, path: Path) -> bool:
        """Whether ``path`` lies inside a git working tree."""
        try:
            return self._run(path, "rev-parse", "--is-inside-work-tree").strip() == "true"
        except GitCommandError as e:
            logger.debug("git_not_a_working_tree", path=str(path), error=str(e))
            return False

    def repository_name(self, path: Path) -> str:
        """Name of the repository from its ``origin`` remote, else its directory name."""
        try:
            name = name_from_remote_url(self._run(path, "remote", "get-url", "origin"))
        except GitCommandError:
            name = ""
        if name:
            return name
        try:
            toplevel = Path(self._run(path, "rev-parse", "--show-toplevel").strip())
        except GitCommandError:
            toplevel = path.resolve()
        return toplevel.name or path.resolve().name

    def current_branch(self, path: Path) -> str:
        """Current branch, or ``"unknown"`` for a detached HEAD or an unborn branch."""
        try:
            branch = self._run(path, "rev-parse", "--abbrev-ref", "HEAD").strip()
        except GitCommandError:
            return UNKNOWN_BRANCH
        if not branch or branch == "HEAD":
            return UNKNOWN_BRANCH
        return branch

    def tracked_files(self, path: Path) -> list[str]:
        """Tracked files relative to ``path``, in the order ``git ls-files`` lists them.

        Raises:
            GitCommandError: if ``git ls-files`` fails.
        """
        out = self._run(path, "ls-files", "-z")
        return [line for line in out.split("\0") if line]
