"""Per-command stream readers and the completion heuristic.

Note
----
This is an internal API not covered by versioning policy.

Interactive interpreters print no "command finished" marker, so completion is
inferred from timing:

1. **Start**: poll :meth:`OutputChannel.ready` every ``wait_pause`` seconds.
   Nothing within ``max_wait`` means the reader timed out.
2. **Drain**: read a line, then wait ``wait_pause``. If nothing new is ready,
   wait another :data:`~libshell.constants.IDLE_SETTLE_SECONDS`. Still nothing
   means the command is over.
3. **Script drain**: ignore idleness and read until the line equal to the
   sentinel, which is dropped.

A command that goes quiet for longer than ``wait_pause + IDLE_SETTLE_SECONDS``
while still running is reported as finished early. That is the price of not
needing any framing from the interpreter; raise ``wait_pause`` for chatty,
slow commands or use script mode.

Every wait goes through the cancel event, so :meth:`ReaderTask.close` takes
effect at the next step.
"""

from __future__ import annotations

import logging
import threading
import time
import typing as t

from libshell.constants import IDLE_SETTLE_SECONDS

if t.TYPE_CHECKING:
    from libshell._internal.channel import OutputChannel

logger = logging.getLogger(__name__)


class ReaderTask:
    """Drain one :class:`OutputChannel` for a single command.

    Instances are callables meant for an executor and are not reused.

    Parameters
    ----------
    channel : OutputChannel
        Source of lines.
    wait_pause : float
        Poll interval and idle threshold, in seconds.
    max_wait : float
        Seconds to wait for the first line.
    sentinel : str, optional
        Read until this line instead of stopping when idle.
    idle_settle : float
        Extra grace before declaring the stream idle.

    Examples
    --------
    >>> import io
    >>> from libshell._internal.channel import OutputChannel
    >>> channel = OutputChannel(io.StringIO("a\\nb\\nEND\\nlater\\n"), name="stdout")
    >>> channel.start()
    >>> channel.join(timeout=1)
    >>> task = ReaderTask(channel, wait_pause=0.01, max_wait=1, sentinel="END")
    >>> task()
    ['a', 'b']
    >>> task.sentinel_seen, task.timed_out
    (True, False)
    """

    def __init__(
        self,
        channel: OutputChannel,
        *,
        wait_pause: float,
        max_wait: float,
        sentinel: str | None = None,
        idle_settle: float = IDLE_SETTLE_SECONDS,
    ) -> None:
        self.channel = channel
        self.wait_pause = wait_pause
        self.max_wait = max_wait
        self.sentinel = sentinel
        self.idle_settle = idle_settle
        self.lines: list[str] = []
        self.timed_out = False
        self.sentinel_seen = False
        self._cancelled = threading.Event()

    def __repr__(self) -> str:
        """Representation of :class:`ReaderTask`."""
        mode = "script" if self.sentinel is not None else "idle"
        return f"{self.__class__.__name__}({self.channel.name!r}, mode={mode})"

    @property
    def cancelled(self) -> bool:
        """Return ``True`` once :meth:`close` was called."""
        return self._cancelled.is_set()

    def close(self) -> None:
        """Ask the task to stop at its next checkpoint."""
        self._cancelled.set()

    def take_pending(self) -> list[str]:
        """Append lines already queued on the channel, without waiting.

        Call only after the task stopped. A cancelled drain leaves lines the
        pump queued behind; they belong to the same command.

        >>> import io
        >>> from libshell._internal.channel import OutputChannel
        >>> channel = OutputChannel(io.StringIO("e1\\ne2\\ne3\\n"), name="stderr")
        >>> channel.start()
        >>> channel.join(timeout=1)
        >>> task = ReaderTask(channel, wait_pause=0.01, max_wait=1)
        >>> task.lines = [channel.readline(timeout=1)]
        >>> task.take_pending()
        ['e2', 'e3']
        >>> task.lines
        ['e1', 'e2', 'e3']
        """
        pending = [
            line for line in self.channel.discard_pending() if line != self.sentinel
        ]
        self.lines.extend(pending)
        return pending

    def text(self, separator: str = "\n") -> str:
        """Return lines read so far, joined, with trailing whitespace removed.

        >>> task = ReaderTask(None, wait_pause=0.01, max_wait=1)
        >>> task.lines = ["  first  ", "second", "", ""]
        >>> task.text()
        '  first  \\nsecond'
        """
        return separator.join(list(self.lines)).rstrip()

    def __call__(self) -> list[str]:
        """Read until the command looks finished, then return the lines."""
        try:
            if self._wait_until_ready():
                if self.sentinel is None:
                    self._drain_until_idle()
                else:
                    self._drain_until_sentinel()
        except Exception:
            logger.exception("%r failed while reading", self)
            raise
        logger.debug(
            "%r read %d line(s)%s%s",
            self,
            len(self.lines),
            " (timed out)" if self.timed_out else "",
            " (cancelled)" if self.cancelled else "",
        )
        return list(self.lines)

    def _wait_until_ready(self) -> bool:
        deadline = time.monotonic() + self.max_wait
        while not self.channel.ready():
            if self.channel.exhausted:
                return False
            if time.monotonic() >= deadline:
                self.timed_out = True
                return False
            if self._cancelled.wait(self.wait_pause):
                return False
        return True

    def _drain_until_idle(self) -> None:
        while not self.cancelled:
            line = self.channel.readline(timeout=0)
            if line is None:
                return
            self.lines.append(line)
            if not self._continue_reading():
                return

    def _continue_reading(self) -> bool:
        if self._cancelled.wait(self.wait_pause):
            return False
        if self.channel.ready():
            return True
        if self._cancelled.wait(self.idle_settle):
            return False
        return self.channel.ready()

    def _drain_until_sentinel(self) -> None:
        while not self.cancelled:
            line = self.channel.readline(timeout=self.wait_pause)
            if line is None:
                if self.channel.exhausted:
                    logger.warning("%r: stream ended before script sentinel", self)
                    return
                continue
            if line == self.sentinel:
                self.sentinel_seen = True
                return
            self.lines.append(line)
