"""Session tunables for libshell.

libshell.config
~~~~~~~~~~~~~~~

Overrides arrive as a plain key/value mapping, usually loaded from a
properties or settings file by the caller. Keys follow the historical names
(``waitPause``, ``maxWait``, ``tempFolder``, ``remoteMode``) with timings in
milliseconds; snake_case spellings are accepted as well. Defaults can be
changed through ``LIBSHELL_*`` environment variables.

Bad values never raise. They are logged and the previous value is kept.
"""

from __future__ import annotations

import dataclasses
import logging
import os
import pathlib
import typing as t

from .constants import DEFAULT_MAX_WAIT_MS, DEFAULT_WAIT_PAUSE_MS

if t.TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)

#: Environment variables consulted by :meth:`SessionConfig.from_env`.
ENV_KEYS: dict[str, str] = {
    "LIBSHELL_WAIT_PAUSE": "waitPause",
    "LIBSHELL_MAX_WAIT": "maxWait",
    "LIBSHELL_TEMP_FOLDER": "tempFolder",
    "LIBSHELL_REMOTE_MODE": "remoteMode",
}

_KEY_ALIASES: dict[str, str] = {
    "waitPause": "wait_pause",
    "wait_pause": "wait_pause",
    "maxWait": "max_wait",
    "max_wait": "max_wait",
    "tempFolder": "temp_folder",
    "temp_folder": "temp_folder",
    "remoteMode": "remote_mode",
    "remote_mode": "remote_mode",
}

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"", "0", "false", "no", "off"}


def _parse_millis(value: t.Any) -> float:
    """Return *value* (milliseconds) as seconds.

    >>> _parse_millis("250")
    0.25
    >>> _parse_millis(5)
    0.005
    >>> _parse_millis("abc")
    Traceback (most recent call last):
    ...
    ValueError: not a number: 'abc'
    """
    if isinstance(value, bool):
        msg = f"not a number: {value!r}"
        raise ValueError(msg)
    try:
        millis = float(value)
    except (TypeError, ValueError):
        msg = f"not a number: {value!r}"
        raise ValueError(msg) from None
    if millis <= 0:
        msg = f"must be positive: {value!r}"
        raise ValueError(msg)
    return millis / 1000


def _parse_flag(value: t.Any) -> bool:
    """Return *value* as a boolean.

    >>> _parse_flag("TRUE"), _parse_flag("0"), _parse_flag(True)
    (True, False, True)
    """
    if isinstance(value, bool):
        return value
    normalized = str(value).strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    msg = f"not a boolean: {value!r}"
    raise ValueError(msg)


def _parse_folder(value: t.Any) -> pathlib.Path | None:
    if value is None or str(value).strip() == "":
        return None
    folder = pathlib.Path(str(value)).expanduser()
    if not folder.is_dir():
        msg = f"not a directory: {value!r}"
        raise ValueError(msg)
    return folder


_PARSERS: dict[str, t.Callable[[t.Any], t.Any]] = {
    "wait_pause": _parse_millis,
    "max_wait": _parse_millis,
    "temp_folder": _parse_folder,
    "remote_mode": _parse_flag,
}


@dataclasses.dataclass(frozen=True)
class SessionConfig:
    """Tunables of a :class:`~libshell.session.Session`.

    Attributes
    ----------
    wait_pause : float
        Readiness poll interval in seconds. Also the idle threshold of the
        completion heuristic, see :mod:`libshell._internal.reader`.
    max_wait : float
        Seconds to wait for a command, and separately for the close sequence.
    temp_folder : pathlib.Path, optional
        Where script files are materialized. Platform default when ``None``.
    remote_mode : bool
        Send a flush marker after every command, for remote contexts that
        hold back output.

    Examples
    --------
    >>> config = SessionConfig()
    >>> config.max_wait
    10.0
    >>> config.updated({"maxWait": "1500", "remoteMode": "true"})
    SessionConfig(wait_pause=0.01, max_wait=1.5, temp_folder=None, remote_mode=True)

    Invalid values keep the previous setting:

    >>> config.updated({"waitPause": "soon"}).wait_pause
    0.01
    """

    wait_pause: float = DEFAULT_WAIT_PAUSE_MS / 1000
    max_wait: float = DEFAULT_MAX_WAIT_MS / 1000
    temp_folder: pathlib.Path | None = None
    remote_mode: bool = False

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> SessionConfig:
        """Return defaults overridden by ``LIBSHELL_*`` environment variables."""
        environ = os.environ if environ is None else environ
        overrides = {
            key: environ[env_name]
            for env_name, key in ENV_KEYS.items()
            if env_name in environ
        }
        return cls().updated(overrides)

    def updated(self, overrides: Mapping[str, t.Any]) -> SessionConfig:
        """Return a copy with valid *overrides* applied.

        Unknown keys and invalid values are logged and skipped.
        """
        changes: dict[str, t.Any] = {}
        for key, raw in overrides.items():
            field = _KEY_ALIASES.get(key)
            if field is None:
                logger.warning("Ignoring unknown configuration key %r", key)
                continue
            try:
                changes[field] = _PARSERS[field](raw)
            except ValueError as e:
                logger.warning(
                    "Ignoring configuration %s=%r (%s), keeping %r",
                    key,
                    raw,
                    e,
                    getattr(self, field),
                )
        if not changes:
            return self
        return dataclasses.replace(self, **changes)
