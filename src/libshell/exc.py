"""Provide exceptions used by libshell.

libshell.exc
~~~~~~~~~~~~

Only failures that interrupt control flow are exceptions. Per-command
problems (timeouts, interpreter errors, temp-file trouble) are reported on
:class:`~libshell.result.CommandResult` instead.

Notes
-----
Exceptions in this module inherit from :exc:`LibShellException`.
"""

from __future__ import annotations


class LibShellException(Exception):
    """Base exception for all libshell errors."""


class LaunchFailure(LibShellException):
    """Raised if the interpreter process cannot be started or exits at once."""

    def __init__(
        self,
        executable: str | None = None,
        reason: str | None = None,
        *args: object,
    ) -> None:
        msg = "Cannot launch interpreter"
        if executable is not None:
            msg += f" {executable!r}"
        if reason is not None:
            msg += f": {reason}"
        super().__init__(msg)
        self.executable = executable
        self.reason = reason


class InterpreterNotFound(LaunchFailure):
    """Raised when the interpreter executable cannot be located."""

    def __init__(self, executable: str | None = None, *args: object) -> None:
        super().__init__(
            executable,
            "executable not found, make sure it is installed and on PATH",
        )


class AlreadyClosed(LibShellException):
    """Raised if a command is issued on a session that has been closed."""

    def __init__(self, pid: int | None = None, *args: object) -> None:
        if pid is not None:
            super().__init__(f"Session for process {pid} is already closed")
        else:
            super().__init__("Session is already closed")


class WaitTimeout(LibShellException):
    """Function timed out without meeting condition."""
