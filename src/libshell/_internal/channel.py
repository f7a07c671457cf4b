"""Line pump for interpreter output streams.

Note
----
This is an internal API not covered by versioning policy.

A pipe offers no portable "is there data?" query, so every output stream of
the interpreter gets a daemon thread that moves complete lines into a queue.
Readiness then means "the queue is not empty", which works the same on every
platform and lets readers give up a wait without being stuck inside a
blocking ``readline()``.
"""

from __future__ import annotations

import logging
import queue
import threading
import typing as t

if t.TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)


class OutputChannel:
    """Queue of lines read from one interpreter stream.

    Parameters
    ----------
    stream : iterable of str
        Text stream to pump, usually ``Popen.stdout`` or ``Popen.stderr``.
    name : str
        Label used in logs and the thread name.

    Examples
    --------
    >>> import io
    >>> channel = OutputChannel(io.StringIO("one\\r\\ntwo\\n"), name="stdout")
    >>> channel.start()
    >>> channel.join(timeout=1)
    >>> channel.readline(timeout=1), channel.readline(timeout=1)
    ('one', 'two')
    >>> channel.exhausted
    True
    """

    def __init__(self, stream: Iterable[str], name: str) -> None:
        self.stream = stream
        self.name = name
        self._lines: queue.Queue[str] = queue.Queue()
        self._eof = threading.Event()
        self._thread = threading.Thread(
            target=self._pump,
            name=f"libshell-{name}",
            daemon=True,
        )

    def __repr__(self) -> str:
        """Representation of :class:`OutputChannel`."""
        return f"{self.__class__.__name__}({self.name!r})"

    def start(self) -> None:
        """Start pumping lines."""
        self._thread.start()

    def join(self, timeout: float | None = None) -> None:
        """Wait for the pump to reach end of stream."""
        self._thread.join(timeout=timeout)

    @property
    def alive(self) -> bool:
        """Return ``True`` while the pump thread runs."""
        return self._thread.is_alive()

    @property
    def exhausted(self) -> bool:
        """Return ``True`` if the stream ended and every line was consumed."""
        return self._eof.is_set() and self._lines.empty()

    def ready(self) -> bool:
        """Return ``True`` if a line can be read without waiting."""
        return not self._lines.empty()

    def readline(self, timeout: float | None = None) -> str | None:
        """Return the next line, or ``None`` if none arrived within *timeout*.

        A *timeout* of ``0`` never blocks.
        """
        try:
            if timeout == 0:
                return self._lines.get_nowait()
            return self._lines.get(timeout=timeout)
        except queue.Empty:
            return None

    def discard_pending(self) -> list[str]:
        """Remove and return every queued line."""
        discarded: list[str] = []
        while True:
            try:
                discarded.append(self._lines.get_nowait())
            except queue.Empty:
                return discarded

    def _pump(self) -> None:
        try:
            for raw in self.stream:
                self._lines.put(raw.rstrip("\r\n"))
        except (OSError, ValueError):
            # Stream closed underneath us during teardown.
            logger.debug("%r stopped reading", self, exc_info=True)
        finally:
            self._eof.set()
            logger.debug("%r reached end of stream", self)
