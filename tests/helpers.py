"""Helpers for libshell tests."""

from __future__ import annotations

import io
import os
import typing as t

from libshell._internal.channel import OutputChannel

if t.TYPE_CHECKING:
    from collections.abc import Iterator


class PipeChannel(t.NamedTuple):
    """Channel fed through a real OS pipe."""

    channel: OutputChannel
    writer: io.TextIOWrapper

    def send(self, text: str) -> None:
        """Write *text* to the pipe."""
        self.writer.write(text)
        self.writer.flush()


def pipe_channel(name: str = "stdout") -> PipeChannel:
    """Return a started :class:`OutputChannel` reading from a new pipe."""
    read_fd, write_fd = os.pipe()
    reader = open(read_fd, encoding="utf-8")  # noqa: SIM115
    writer = open(write_fd, "w", encoding="utf-8")  # noqa: SIM115
    channel = OutputChannel(reader, name=name)
    channel.start()
    return PipeChannel(channel=channel, writer=writer)


def close_pipe(pipe: PipeChannel) -> None:
    """Close both ends of *pipe* once its pump is done."""
    pipe.writer.close()
    pipe.channel.join(timeout=1)
    t.cast("io.TextIOWrapper", pipe.channel.stream).close()


class BrokenStream:
    """Iterable that fails after yielding *lines*."""

    def __init__(self, lines: list[str], error: Exception) -> None:
        self.lines = lines
        self.error = error

    def __iter__(self) -> Iterator[str]:
        yield from self.lines
        raise self.error
