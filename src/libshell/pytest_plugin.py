"""libshell pytest plugin."""

from __future__ import annotations

import logging
import shutil
import typing as t

import pytest

from libshell.config import SessionConfig
from libshell.session import Session
from libshell.test.constants import TEST_CONFIG_OVERRIDES, TEST_EXECUTABLE

logger = logging.getLogger(__name__)


@pytest.fixture(scope="session")
def shell_executable() -> str:
    """Return the interpreter used by libshell fixtures.

    Taken from :envvar:`LIBSHELL_TEST_EXECUTABLE`, ``sh`` by default. Tests
    are skipped when it is not installed.
    """
    executable = shutil.which(TEST_EXECUTABLE)
    if executable is None:
        pytest.skip(f"{TEST_EXECUTABLE} not found")
    return executable


@pytest.fixture
def shell_config(tmp_path_factory: pytest.TempPathFactory) -> SessionConfig:
    """Return fast :class:`libshell.SessionConfig` with its own temp folder."""
    return SessionConfig().updated(
        {
            **TEST_CONFIG_OVERRIDES,
            "tempFolder": str(tmp_path_factory.mktemp("scripts")),
        },
    )


@pytest.fixture
def session_params() -> dict[str, t.Any]:
    """Return keyword arguments for :meth:`libshell.Session.open`.

    Override in your own ``conftest.py`` to customize the :func:`session`
    fixture:

    >>> import pytest

    >>> @pytest.fixture
    ... def session_params(session_params):
    ...     return {"merge_streams": True}
    """
    return {}


@pytest.fixture
def session(
    request: pytest.FixtureRequest,
    shell_executable: str,
    shell_config: SessionConfig,
    session_params: dict[str, t.Any],
) -> Session:
    """Return new, temporary :class:`libshell.Session`.

    >>> from libshell.session import Session

    >>> def test_example(session: "Session") -> None:
    ...     assert isinstance(session, Session)
    ...     result = session.execute_command('echo hello')
    ...     assert result.command_output == 'hello'

    .. ::
        >>> locals().keys()
        dict_keys(...)

        >>> source = ''.join([e.source for e in request._pyfuncitem.dtest.examples][:2])
        >>> pytester = request.getfixturevalue('pytester')

        >>> pytester.makepyfile(**{'whatever.py': source})
        PosixPath(...)

        >>> result = pytester.runpytest('whatever.py', '--disable-warnings')
        ===...

        >>> result.assert_outcomes(passed=1)
    """
    params = {"config": shell_config, **session_params}
    session = Session.open(shell_executable, **params)

    def fin() -> None:
        session.close()

    request.addfinalizer(fin)

    return session


@pytest.fixture
def TestSession(
    request: pytest.FixtureRequest,
    shell_executable: str,
    shell_config: SessionConfig,
) -> t.Callable[..., Session]:
    """Open temporary sessions that are closed when the test completes.

    Returns
    -------
    callable
        Takes the keyword arguments of :meth:`Session.open`.

    Examples
    --------
    >>> first = TestSession()
    >>> second = TestSession(merge_streams=True)
    >>> first.pid != second.pid
    True
    """
    created: list[Session] = []

    def open_session(**kwargs: t.Any) -> Session:
        kwargs.setdefault("config", shell_config)
        session = Session.open(shell_executable, **kwargs)
        created.append(session)
        return session

    def fin() -> None:
        """Close every session opened through the factory."""
        for session in created:
            session.close()

    request.addfinalizer(fin)

    return open_session
