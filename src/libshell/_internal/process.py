"""Forced termination of interpreter process trees.

Note
----
This is an internal API not covered by versioning policy.
"""

from __future__ import annotations

import logging
import subprocess

import psutil

from libshell.constants import TERMINATE_GRACE_SECONDS

logger = logging.getLogger(__name__)


def terminate_tree(
    process: subprocess.Popen[str],
    grace: float = TERMINATE_GRACE_SECONDS,
) -> None:
    """Terminate *process* and all of its descendants.

    Descendants are collected before the parent is signalled, since they are
    reparented once it dies. Everything still alive after *grace* seconds is
    killed.
    """
    try:
        children = psutil.Process(process.pid).children(recursive=True)
    except psutil.NoSuchProcess:
        children = []
    except psutil.Error:
        logger.warning("Cannot list children of %s", process.pid, exc_info=True)
        children = []

    for child in children:
        try:
            child.terminate()
        except psutil.NoSuchProcess:
            continue
        except psutil.Error:
            logger.warning("Cannot terminate %s", child.pid, exc_info=True)

    if process.poll() is None:
        process.terminate()

    _, alive = psutil.wait_procs(children, timeout=grace)
    for child in alive:
        logger.warning("Killing process %s", child.pid)
        try:
            child.kill()
        except psutil.NoSuchProcess:
            continue
        except psutil.Error:
            logger.warning("Cannot kill %s", child.pid, exc_info=True)

    try:
        process.wait(timeout=grace)
    except subprocess.TimeoutExpired:
        logger.warning("Killing interpreter process %s", process.pid)
        process.kill()
        process.wait(timeout=grace)
