from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import pytest

from llm_globber.logging import setup_logging

if TYPE_CHECKING:
    from collections.abc import Iterator


@pytest.fixture(autouse=True)
def reset_logging() -> Iterator[None]:
    """Undo the level set by ``--verbose``/``--quiet`` in a previous test."""
    yield
    setup_logging(level=logging.WARNING, force=True)
