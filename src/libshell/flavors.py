"""Interpreter dialects understood by libshell.

libshell.flavors
~~~~~~~~~~~~~~~~

libshell never parses the command language. A :class:`Flavor` only knows the
few lines libshell itself has to write: how to start the interpreter so it
reads commands from stdin, how to ask it to exit, how to print the script
sentinel and how to run a script file.
"""

from __future__ import annotations

import dataclasses
import pathlib
import shlex
import sys
import typing as t

if t.TYPE_CHECKING:
    from collections.abc import Callable


def quote_powershell(value: str) -> str:
    """Return *value* as a single-quoted PowerShell literal.

    >>> quote_powershell("it's.ps1")
    "'it''s.ps1'"
    """
    return "'" + value.replace("'", "''") + "'"


@dataclasses.dataclass(frozen=True)
class Flavor:
    """Describe how to talk to one kind of interpreter.

    Attributes
    ----------
    name : str
        Human readable name, used in logs.
    args : tuple[str, ...]
        Arguments following the executable.
    windows_args : tuple[str, ...]
        Extra arguments inserted before ``args`` on Windows.
    exit_command : str
        Line that makes the interpreter exit.
    flush_command : str
        Line written after each command in remote mode. Prints an empty line.
    echo_template : str
        Prints ``{text}`` (already quoted) to standard output.
    script_template : str
        Runs ``{path}`` (already quoted) with ``{params}``.
    script_suffix : str
        File suffix of materialized scripts.
    line_separator : str
        Joins output lines in results.
    quote : callable
        Quotes a literal for the interpreter.
    """

    name: str
    args: tuple[str, ...] = ()
    windows_args: tuple[str, ...] = ()
    exit_command: str = "exit"
    flush_command: str = "echo"
    echo_template: str = "echo {text}"
    script_template: str = ". {path} {params}"
    script_suffix: str = ".sh"
    line_separator: str = "\n"
    quote: Callable[[str], str] = shlex.quote

    def launch_args(self, executable: str) -> list[str]:
        """Return the full argv to start *executable*.

        >>> POSIX_SH.launch_args("/bin/sh")
        ['/bin/sh']
        """
        if sys.platform == "win32":
            return [executable, *self.windows_args, *self.args]
        return [executable, *self.args]

    def echo_line(self, text: str) -> str:
        """Return a line printing *text* verbatim.

        >>> POSIX_SH.echo_line("done")
        'echo done'
        >>> POWERSHELL.echo_line("done")
        "Write-Output 'done'"
        """
        return self.echo_template.format(text=self.quote(text))

    def script_line(self, path: str | pathlib.Path, params: str = "") -> str:
        """Return the command running the script at *path*.

        >>> POSIX_SH.script_line("/tmp/a b.sh", "1 2")
        "sh '/tmp/a b.sh' 1 2"
        """
        line = self.script_template.format(path=self.quote(str(path)), params=params)
        return line.rstrip()


POWERSHELL = Flavor(
    name="powershell",
    args=("-NoLogo", "-NoExit", "-NoProfile", "-Command", "-"),
    windows_args=("-ExecutionPolicy", "Bypass"),
    exit_command="exit",
    flush_command='Write-Host ""',
    echo_template="Write-Output {text}",
    script_template="& {path} {params}",
    script_suffix=".ps1",
    line_separator="\r\n",
    quote=quote_powershell,
)

POSIX_SH = Flavor(
    name="sh",
    exit_command="exit",
    flush_command="echo",
    echo_template="echo {text}",
    script_template="sh {path} {params}",
    script_suffix=".sh",
    line_separator="\n",
)

_POWERSHELL_NAMES = {"powershell", "pwsh"}


def default_executable() -> str:
    """Return the interpreter used when none is given.

    Windows PowerShell on Windows, PowerShell 7 (``pwsh``) elsewhere.
    """
    if sys.platform == "win32":
        return "powershell.exe"
    return "pwsh"


def flavor_for(executable: str | pathlib.Path) -> Flavor:
    """Return the flavor matching *executable*'s name.

    >>> flavor_for("C:/Windows/System32/WindowsPowerShell/v1.0/powershell.exe").name
    'powershell'
    >>> flavor_for("/usr/bin/pwsh").name
    'powershell'
    >>> flavor_for("/bin/bash").name
    'sh'
    """
    stem = pathlib.PurePath(str(executable).replace("\\", "/")).stem.lower()
    if stem in _POWERSHELL_NAMES:
        return POWERSHELL
    return POSIX_SH
