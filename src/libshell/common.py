"""Helper methods and mixins for libshell.

libshell.common
~~~~~~~~~~~~~~~

One-shot wrappers that open a session, run a single command or script and
close the session again.
"""

from __future__ import annotations

import logging
import shutil
import typing as t

from libshell.flavors import default_executable
from libshell.session import Session

if t.TYPE_CHECKING:
    import os

    from libshell.config import SessionConfig
    from libshell.result import CommandResult
    from libshell.session import ScriptSource

logger = logging.getLogger(__name__)


def has_interpreter(executable_path: str | os.PathLike[str] | None = None) -> bool:
    """Return ``True`` if *executable_path* can be found.

    >>> has_interpreter("/no/such/interpreter")
    False
    """
    requested = executable_path if executable_path is not None else default_executable()
    return shutil.which(requested) is not None


def execute_single_command(
    command: str,
    executable_path: str | os.PathLike[str] | None = None,
    *,
    config: SessionConfig | None = None,
    **kwargs: t.Any,
) -> CommandResult:
    """Open a session, run *command* and close the session.

    Keyword arguments are passed to :meth:`Session.open`.

    Raises
    ------
    :exc:`exc.LaunchFailure`
        Interpreter cannot be started.

    Examples
    --------
    >>> execute_single_command("echo hello", "sh").command_output
    'hello'
    """
    with Session.open(executable_path, config=config, **kwargs) as session:
        return session.execute_command(command)


def execute_single_script(
    source: ScriptSource,
    params: str = "",
    executable_path: str | os.PathLike[str] | None = None,
    *,
    config: SessionConfig | None = None,
    **kwargs: t.Any,
) -> CommandResult:
    """Open a session, run the script *source* and close the session.

    See :meth:`Session.execute_script` for what *source* may be.

    >>> execute_single_script(['echo "$1"'], "hi", "sh").command_output
    'hi'
    """
    with Session.open(executable_path, config=config, **kwargs) as session:
        return session.execute_script(source, params)
