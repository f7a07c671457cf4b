"""Materialize script bodies as temporary files.

Note
----
This is an internal API not covered by versioning policy.
"""

from __future__ import annotations

import logging
import pathlib
import tempfile
import typing as t

from libshell.constants import SCRIPT_PREFIX, SCRIPT_SENTINEL

if t.TYPE_CHECKING:
    from collections.abc import Iterable

    from libshell.flavors import Flavor

logger = logging.getLogger(__name__)


def materialize(
    lines: Iterable[str],
    flavor: Flavor,
    temp_folder: str | pathlib.Path | None = None,
    sentinel: str = SCRIPT_SENTINEL,
) -> pathlib.Path | None:
    """Write *lines* into a new script file ending in a sentinel echo.

    Parameters
    ----------
    lines : iterable of str
        Script body. Trailing newlines are normalized.
    flavor : :class:`~libshell.flavors.Flavor`
        Decides the suffix and how the sentinel is printed.
    temp_folder : str or pathlib.Path, optional
        Directory for the file. Platform default when ``None``.
    sentinel : str
        Text printed by the last line.

    Returns
    -------
    pathlib.Path or None
        Path of the new file, ``None`` if it could not be written.

    Examples
    --------
    >>> from libshell.flavors import POSIX_SH
    >>> path = materialize(["echo hi"], POSIX_SH, temp_folder=tmp_path)
    >>> path.read_text().splitlines()
    ['echo hi', 'echo --LIBSHELL-END-OF-SCRIPT-9c1f7e2a--']
    >>> discard(path)
    True
    """
    try:
        with tempfile.NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            prefix=SCRIPT_PREFIX,
            suffix=flavor.script_suffix,
            dir=temp_folder,
            delete=False,
        ) as handle:
            for line in lines:
                handle.write(line.rstrip("\r\n"))
                handle.write("\n")
            handle.write(flavor.echo_line(sentinel))
            handle.write("\n")
    except OSError:
        logger.exception("Cannot create script file in %s", temp_folder or "temp dir")
        return None

    path = pathlib.Path(handle.name)
    logger.debug("Materialized script %s", path)
    return path


def discard(path: pathlib.Path | None) -> bool:
    """Delete a materialized script. Failures are logged, not raised."""
    if path is None:
        return False
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    except OSError:
        logger.warning("Cannot delete script file %s", path, exc_info=True)
        return False
    logger.debug("Deleted script %s", path)
    return True
