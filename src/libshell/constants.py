"""Constant variables for libshell."""

from __future__ import annotations

import enum


class SessionState(enum.Enum):
    """Lifecycle of a :class:`~libshell.session.Session`."""

    Open = "OPEN"
    Closing = "CLOSING"
    Closed = "CLOSED"


class StreamName(enum.Enum):
    """Output streams of the interpreter process."""

    Stdout = "stdout"
    Stderr = "stderr"


#: Printed by the last line of every materialized script. Must never appear in
#: regular output.
SCRIPT_SENTINEL = "--LIBSHELL-END-OF-SCRIPT-9c1f7e2a--"

#: Default readiness poll interval, in milliseconds.
DEFAULT_WAIT_PAUSE_MS = 10

#: Default command and close timeout, in milliseconds.
DEFAULT_MAX_WAIT_MS = 10_000

#: Extra pause after an idle poll before a command is considered finished.
IDLE_SETTLE_SECONDS = 0.02

#: How long a freshly spawned interpreter must stay alive to count as launched.
LAUNCH_GRACE_SECONDS = 0.1

#: How long terminated processes get before they are killed.
TERMINATE_GRACE_SECONDS = 1.0

#: Name prefix of materialized script files.
SCRIPT_PREFIX = "libshell_"
