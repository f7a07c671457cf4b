"""Conftest.py (root-level).

We keep this in root pytest fixtures in pytest's doctest plugin to be available, as well
as avoiding conftest.py from being included in the wheel, in addition to pytest_plugin
for pytester only being available via the root directory.

See "pytest_plugins in non-top-level conftest files" in
https://docs.pytest.org/en/stable/deprecations.html
"""

from __future__ import annotations

import shutil
import typing as t

import pytest
from _pytest.doctest import DoctestItem

from libshell.config import SessionConfig
from libshell.result import CommandResult
from libshell.session import Session
from libshell.test.constants import TEST_EXECUTABLE

pytest_plugins = ["pytester"]


@pytest.fixture(autouse=True)
def add_doctest_fixtures(
    request: pytest.FixtureRequest,
    doctest_namespace: dict[str, t.Any],
) -> None:
    """Configure doctest fixtures for pytest-doctest."""
    if not isinstance(request._pyfuncitem, DoctestItem):
        return
    doctest_namespace["tmp_path"] = request.getfixturevalue("tmp_path")
    doctest_namespace["CommandResult"] = CommandResult
    doctest_namespace["SessionConfig"] = SessionConfig
    doctest_namespace["request"] = request
    if shutil.which(TEST_EXECUTABLE):
        doctest_namespace["Session"] = Session
        doctest_namespace["session"] = request.getfixturevalue("session")
        doctest_namespace["TestSession"] = request.getfixturevalue("TestSession")


@pytest.fixture(autouse=True)
def clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Drop ``LIBSHELL_*`` settings of the developer's environment."""
    for name in (
        "LIBSHELL_WAIT_PAUSE",
        "LIBSHELL_MAX_WAIT",
        "LIBSHELL_TEMP_FOLDER",
        "LIBSHELL_REMOTE_MODE",
    ):
        monkeypatch.delenv(name, raising=False)
