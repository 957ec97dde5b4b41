"""Discovery and admission of the files that make up an artifact.

The collector keeps the order in which paths are given and, inside
directories, the order in which the filesystem reports entries. That order is
not sorted and may differ between platforms.
"""

from __future__ import annotations

import os
import stat
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

from llm_globber.cancellation import CancellationToken
from llm_globber.config import DEFAULT_MAX_FILES, FileDescriptor, FilterConfig
from llm_globber.exceptions import NotAGitRepositoryError
from llm_globber.file_manipulation import matches_name_pattern
from llm_globber.logging import logger

if TYPE_CHECKING:
    from collections.abc import Iterable

    from llm_globber.git_source import GitSource


class PathCollector:
    """Walk roots and directories and build the ordered list of admitted files.

    Problems with individual paths are logged and skipped; only cancellation
    interrupts a collection.
    """

    def __init__(
        self,
        filters: FilterConfig,
        *,
        cancel: CancellationToken | None = None,
        max_files: int = DEFAULT_MAX_FILES,
    ) -> None:
        self.filters = filters
        self.max_files = max_files
        self._cancel = cancel or CancellationToken()
        self._admitted: list[FileDescriptor] = []
        self._ancestors: set[tuple[int, int]] = set()
        self._limit_reached = False

    def collect(self, roots: Iterable[str | Path]) -> list[FileDescriptor]:
        """Admit files from explicit paths, descending into directories when recursive.

        Args:
            roots (Iterable[str | Path]): files and directories, in the order given

        Returns:
            list[FileDescriptor]: the admitted files, in discovery order

        Raises:
            OperationCancelledError: if cancellation is requested mid-walk.
        """
        self._admitted = []
        self._ancestors = set()
        self._limit_reached = False
        for root in roots:
            self._cancel.raise_if_cancelled()
            self.add_root(os.fspath(root))
        logger.info("collection_done", admitted=len(self._admitted))
        return list(self._admitted)

    def collect_repository(self, repo: Path, git: GitSource) -> list[FileDescriptor]:
        """Admit the files tracked by the repository at ``repo``.

        Each tracked file is treated as an explicit root and checked against the
        same filters; recursion is forced on. Unless dot files are included, a
        tracked file below a dot directory (such as ``.github/``) is skipped, as a
        directory walk would prune it.

        Args:
            repo (Path): the working tree to read
            git (GitSource): the version-control collaborator

        Returns:
            list[FileDescriptor]: the admitted files, in ``git ls-files`` order

        Raises:
            NotAGitRepositoryError: if ``repo`` is not a working tree.
        """
        if not git.is_working_tree(repo):
            raise NotAGitRepositoryError(folder=repo)
        self.filters = self.filters.model_copy(update={"recursive": True})
        tracked = git.tracked_files(repo)
        logger.info("repository_tracked_files", repo=str(repo), count=len(tracked))
        if not self.filters.include_dot_files:
            tracked = [rel for rel in tracked if not _under_dot_directory(rel)]
        return self.collect(os.path.join(repo, rel) for rel in tracked)

    def add_root(self, path: str) -> None:
        """Handle one explicit argument: a file, a directory or a broken path."""
        try:
            st = os.stat(path)
        except OSError as e:
            logger.warning("path_inaccessible", path=path, error=str(e))
            return

        if stat.S_ISDIR(st.st_mode):
            if not self.filters.recursive:
                logger.warning("directory_skipped", path=path, hint="use -r to process recursively")
                return
            self._enter((st.st_dev, st.st_ino), path)
        elif stat.S_ISREG(st.st_mode):
            self.consider(path, os.path.basename(path), st.st_size)
        else:
            logger.warning("not_a_regular_file", path=path)

    def walk(self, directory: str) -> None:
        """Depth-first traversal of ``directory`` in filesystem order."""
        try:
            with os.scandir(directory) as entries:
                for entry in entries:
                    self._cancel.raise_if_cancelled()
                    self._visit(entry)
        except OSError as e:
            logger.warning("directory_unreadable", path=directory, error=str(e))

    def _visit(self, entry: os.DirEntry[str]) -> None:
        name = entry.name
        if name in {".", ".."}:
            return
        if not self.filters.include_dot_files and name.startswith("."):
            logger.debug("dot_entry_pruned", path=entry.path)
            return
        try:
            if entry.is_dir():
                if self.filters.recursive:
                    self._descend(entry)
                return
            if not entry.is_file():
                if entry.is_symlink():
                    logger.warning("path_inaccessible", path=entry.path, error="broken symbolic link")
                else:
                    logger.warning("not_a_regular_file", path=entry.path)
                return
            size = entry.stat().st_size
        except OSError as e:
            logger.warning("path_inaccessible", path=entry.path, error=str(e))
            return
        self.consider(entry.path, name, size)

    def _descend(self, entry: os.DirEntry[str]) -> None:
        st = entry.stat()
        key = (st.st_dev, st.st_ino)
        # only a directory that is its own ancestor is a cycle
        if key in self._ancestors:
            logger.warning("directory_cycle_skipped", path=entry.path)
            return
        self._enter(key, entry.path)

    def _enter(self, key: tuple[int, int], directory: str) -> None:
        self._ancestors.add(key)
        try:
            self.walk(directory)
        finally:
            self._ancestors.discard(key)

    def admits(self, path: str, name: str, size: int) -> bool:
        """Apply the filters to one file.

        Args:
            path (str): the path as it will appear in the artifact
            name (str): the base name of ``path``
            size (int): the file size in bytes

        Returns:
            bool: True if the file passes every configured criterion
        """
        filters = self.filters
        if not filters.include_dot_files and name.startswith("."):
            logger.debug("dot_file_skipped", path=path)
            return False
        if not matches_name_pattern(name, filters.name_pattern):
            return False
        if filters.filters_extensions and not filters.extensions.matches(name):
            return False
        if size > filters.max_file_size:
            logger.warning(
                "file_too_large",
                path=path,
                size=size,
                max_file_size=filters.max_file_size,
            )
            return False
        return True

    def consider(self, path: str, name: str, size: int) -> None:
        """Append ``path`` to the work list if it passes the filters and the cap allows."""
        if not self.admits(path, name, size):
            return
        if len(self._admitted) >= self.max_files:
            if not self._limit_reached:
                logger.warning("max_files_reached", max_files=self.max_files)
                self._limit_reached = True
            return
        self._admitted.append(FileDescriptor(path=path, size=size))


def collect_paths(
    roots: Iterable[str | Path],
    filters: FilterConfig,
    *,
    cancel: CancellationToken | None = None,
    max_files: int = DEFAULT_MAX_FILES,
) -> list[FileDescriptor]:
    """Shortcut for ``PathCollector(filters, ...).collect(roots)``."""
    return PathCollector(filters, cancel=cancel, max_files=max_files).collect(roots)


def _under_dot_directory(relative: str) -> bool:
    """Whether a ``/``-separated relative path has a directory starting with ``.``."""
    return any(part.startswith(".") for part in PurePosixPath(relative).parts[:-1])
