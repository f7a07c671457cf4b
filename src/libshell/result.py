"""Command results for libshell."""

from __future__ import annotations

import dataclasses


@dataclasses.dataclass(frozen=True)
class CommandResult:
    """Outcome of a command sent to an interpreter session.

    Attributes
    ----------
    command_output : str
        Output lines joined with the interpreter's line separator, trailing
        whitespace stripped. Holds the error text when ``is_error`` is set.
    is_error : bool
        The interpreter wrote to its error stream, or the command could not be
        delivered.
    is_timeout : bool
        The command did not finish within ``max_wait``; ``command_output`` is
        whatever had been read so far.

    Examples
    --------
    >>> result = CommandResult(command_output="hello")
    >>> result.is_error, result.is_timeout
    (False, False)
    >>> bool(result)
    True
    >>> bool(CommandResult(is_error=True, command_output="boom"))
    False
    """

    command_output: str = ""
    is_error: bool = False
    is_timeout: bool = False

    def __bool__(self) -> bool:
        """Return ``True`` if the command finished in time without error."""
        return not (self.is_error or self.is_timeout)

    @classmethod
    def error(cls, message: str) -> CommandResult:
        """Return an error result carrying *message*."""
        return cls(command_output=message, is_error=True)
