"""libshell, drive long-lived interactive shells from Python."""

from __future__ import annotations

from .__about__ import (
    __author__,
    __copyright__,
    __description__,
    __email__,
    __license__,
    __package_name__,
    __title__,
    __version__,
)
from .common import execute_single_command, execute_single_script, has_interpreter
from .config import SessionConfig
from .flavors import POSIX_SH, POWERSHELL, Flavor
from .result import CommandResult
from .session import Session

__all__ = (
    "POSIX_SH",
    "POWERSHELL",
    "CommandResult",
    "Flavor",
    "Session",
    "SessionConfig",
    "__author__",
    "__copyright__",
    "__description__",
    "__email__",
    "__license__",
    "__package_name__",
    "__title__",
    "__version__",
    "execute_single_command",
    "execute_single_script",
    "has_interpreter",
)
