"""Fixtures for libshell tests."""

from __future__ import annotations

import typing as t

import pytest

from tests.helpers import close_pipe, pipe_channel

if t.TYPE_CHECKING:
    from collections.abc import Iterator

    from tests.helpers import PipeChannel


@pytest.fixture
def pipe() -> Iterator[PipeChannel]:
    """Return an :class:`OutputChannel` fed by a pipe, closed after the test."""
    pipe = pipe_channel()
    yield pipe
    close_pipe(pipe)
