from __future__ import annotations

import threading

from llm_globber.exceptions import OperationCancelledError


class CancellationToken:
    """Cooperative cancellation flag handed to every pipeline stage.

    Stages poll the token between units of work (files, directory entries,
    blocks of lines); a blocking read or ``mmap`` in progress is never
    interrupted.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request cancellation. Safe to call from a signal handler or another thread."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        """Whether cancellation has been requested."""
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """Raise :class:`OperationCancelledError` once cancellation was requested.

        Raises:
            OperationCancelledError: if :meth:`cancel` has been called.
        """
        if self._event.is_set():
            raise OperationCancelledError
