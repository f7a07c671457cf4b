"""Test for libshell Session object."""

from __future__ import annotations

import dataclasses
import io
import logging
import shutil
import time
import typing as t

import psutil
import pytest

from libshell import exc
from libshell.constants import SessionState
from libshell.flavors import POSIX_SH
from libshell.result import CommandResult
from libshell.session import Session

if t.TYPE_CHECKING:
    import pathlib

    from libshell.config import SessionConfig

logger = logging.getLogger(__name__)


def test_execute_command(session: Session) -> None:
    """Output of a command is returned without trailing newline."""
    result = session.execute_command("echo hello")

    assert result == CommandResult(command_output="hello")
    assert session.state is SessionState.Open
    assert not session.closed


def test_multiline_output(session: Session) -> None:
    """Lines are joined with the flavor separator."""
    result = session.execute_command("printf 'a\\nb\\nc\\n'")

    assert result.command_output == "a\nb\nc"


class ErrorFixture(t.NamedTuple):
    """Test fixture for test_error_output()."""

    test_id: str
    command: str
    expected_output: str


ERROR_FIXTURES: list[ErrorFixture] = [
    ErrorFixture(
        test_id="stderr_only",
        command="echo broken 1>&2",
        expected_output="broken",
    ),
    ErrorFixture(
        test_id="stdout_then_stderr",
        command="echo fine; echo broken 1>&2",
        expected_output="broken",
    ),
    ErrorFixture(
        test_id="stdout_then_many_stderr_lines",
        command="echo fine; for i in 1 2 3 4 5 6 7 8 9 10; do echo e$i 1>&2; done",
        expected_output="\n".join(f"e{i}" for i in range(1, 11)),
    ),
]


@pytest.mark.parametrize(
    list(ErrorFixture._fields),
    ERROR_FIXTURES,
    ids=[test.test_id for test in ERROR_FIXTURES],
)
def test_error_output(
    test_id: str,
    command: str,
    expected_output: str,
    session: Session,
) -> None:
    """Anything on stderr makes the result an error carrying that text."""
    ini = time.monotonic()
    result = session.execute_command(command)

    assert result.is_error
    assert not result.is_timeout
    assert result.command_output == expected_output
    assert time.monotonic() - ini < session.config.max_wait


def test_unknown_command_is_error(session: Session) -> None:
    """Interpreter complaints are reported, not raised."""
    result = session.execute_command("no_such_command_libshell")

    assert result.is_error
    assert result.command_output


def test_sequential_commands_are_independent(session: Session) -> None:
    """Each result holds only its own output."""
    assert session.execute_command("echo one").command_output == "one"
    assert session.execute_command("echo broken 1>&2").is_error

    result = session.execute_command("echo two")

    assert result == CommandResult(command_output="two")


def test_state_persists_between_commands(session: Session) -> None:
    """Commands run in the same interpreter."""
    session.execute_command("cd / && echo moved")
    session.execute_command("LIBSHELL_VALUE=kept; echo set")

    assert session.execute_command("pwd").command_output == "/"
    assert session.execute_command("echo $LIBSHELL_VALUE").command_output == "kept"


def test_silent_command_times_out(session: Session) -> None:
    """A command with no output waits ``max_wait`` and reports a timeout."""
    session.configuration({"maxWait": "300"})

    ini = time.monotonic()
    result = session.execute_command("true")
    elapsed = time.monotonic() - ini

    assert result.is_timeout
    assert not result.is_error
    assert result.command_output == ""
    assert 0.3 <= elapsed < 0.3 + 0.2


def test_timeout_then_recover(session: Session) -> None:
    """Late output of a timed out command does not leak into the next one."""
    session.configuration({"maxWait": "100"})
    result = session.execute_command("sleep 0.3; echo late")
    assert result.is_timeout

    time.sleep(0.5)
    session.configuration({"maxWait": "5000"})

    assert session.execute_command("echo next").command_output == "next"


def test_response_handler(session: Session) -> None:
    """The handler receives the result before the call returns."""
    received: list[CommandResult] = []

    result = session.execute_command("echo handled", received.append)

    assert received == [result]


def test_failing_response_handler(
    session: Session,
    caplog: pytest.LogCaptureFixture,
) -> None:
    """Exceptions from handlers are logged and swallowed."""
    caplog.set_level(logging.ERROR, logger="libshell.session")

    def handler(result: CommandResult) -> None:
        raise RuntimeError(result.command_output)

    result = session.execute_command("echo survived", handler)

    assert result.command_output == "survived"
    assert "Response handler" in caplog.text
    assert "RuntimeError: survived" in caplog.text


def test_execute_command_and_chain(session: Session) -> None:
    """Chained calls return the session and run in order."""
    received: list[str] = []

    def collect(result: CommandResult) -> None:
        received.append(result.command_output)

    chained = session.execute_command_and_chain(
        "echo one",
        collect,
    ).execute_command_and_chain("echo two", collect)

    assert chained is session
    assert received == ["one", "two"]


def test_configuration(
    session: Session,
    caplog: pytest.LogCaptureFixture,
) -> None:
    """Configuration returns the session and ignores invalid values."""
    caplog.set_level(logging.WARNING, logger="libshell.config")
    wait_pause = session.config.wait_pause

    assert session.configuration({"maxWait": "1234", "waitPause": "nope"}) is session
    assert session.config.max_wait == pytest.approx(1.234)
    assert session.config.wait_pause == wait_pause
    assert "waitPause='nope'" in caplog.text


def test_remote_mode(session: Session) -> None:
    """The flush line adds no visible output."""
    session.configuration({"remoteMode": "true"})

    assert session.execute_command("echo remote") == CommandResult(
        command_output="remote",
    )


def test_merge_streams(TestSession: t.Callable[..., Session]) -> None:
    """With merged streams, stderr text is regular output."""
    session = TestSession(merge_streams=True)

    result = session.execute_command("echo merged 1>&2")

    assert result == CommandResult(command_output="merged")


def test_cwd_and_env(
    TestSession: t.Callable[..., Session],
    tmp_path: pathlib.Path,
) -> None:
    """Working directory and environment reach the interpreter."""
    session = TestSession(
        cwd=tmp_path,
        env={"PATH": "/usr/bin:/bin", "LIBSHELL_GREETING": "howdy"},
    )

    assert session.execute_command("pwd").command_output == str(tmp_path.resolve())
    assert session.execute_command("echo $LIBSHELL_GREETING").command_output == "howdy"


def test_interpreter_exit_is_error(session: Session) -> None:
    """A command ending the interpreter reports its exit code."""
    result = session.execute_command("exit 3")

    assert result == CommandResult.error("Interpreter process exited with code 3")

    after = session.execute_command("echo anyone")
    assert after.is_error

    session.close()
    assert session.state is SessionState.Closed


# Scripts


def test_execute_script_lines(session: Session, shell_config: SessionConfig) -> None:
    """Pauses inside a script do not end it early."""
    result = session.execute_script(["echo one", "sleep 0.2", "echo two"])

    assert result == CommandResult(command_output="one\ntwo")
    assert not session.script_mode
    assert shell_config.temp_folder is not None
    assert list(shell_config.temp_folder.iterdir()) == []


def test_execute_script_stream(session: Session) -> None:
    """Scripts can be read from text streams."""
    result = session.execute_script(io.StringIO("echo from\necho stream\n"))

    assert result.command_output == "from\nstream"


def test_execute_script_path(session: Session, tmp_path: pathlib.Path) -> None:
    """Scripts can be read from files and receive parameters."""
    script = tmp_path / "greet.sh"
    script.write_text('echo "$1-$2"\n', encoding="utf-8")

    result = session.execute_script(script, "hello world")

    assert result.command_output == "hello-world"
    assert script.exists()


def test_execute_script_timeout(session: Session) -> None:
    """A script outliving ``max_wait`` reports a timeout with partial output."""
    session.configuration({"maxWait": "300"})

    ini = time.monotonic()
    result = session.execute_script(["echo start", "sleep 1", "echo end"])
    elapsed = time.monotonic() - ini

    assert result == CommandResult(command_output="start", is_timeout=True)
    assert 0.3 <= elapsed < 0.5
    assert not session.script_mode

    # Let the script finish so its tail is stale by the next command.
    time.sleep(1.2)
    session.configuration({"maxWait": "5000"})

    assert session.execute_command("echo next") == CommandResult(
        command_output="next",
    )


def test_execute_script_wrong_path(session: Session) -> None:
    """A missing script file is an error result."""
    result = session.execute_script("/no/such/libshell/script.sh")

    assert result == CommandResult.error(
        "Wrong script path: /no/such/libshell/script.sh",
    )


def test_execute_script_error(session: Session) -> None:
    """stderr output of a script makes the result an error."""
    received: list[CommandResult] = []

    result = session.execute_script(
        ["echo fine", "echo broken 1>&2"],
        response_handler=received.append,
    )

    assert result.is_error
    assert result.command_output == "broken"
    assert received == [result]


def test_execute_script_without_temp_folder(
    session: Session,
    tmp_path: pathlib.Path,
) -> None:
    """Failing to write the script file is reported on the result."""
    folder = tmp_path / "gone"
    folder.mkdir()
    session.configuration({"tempFolder": str(folder)})
    folder.rmdir()

    result = session.execute_script(["echo never"])

    assert result.is_error
    assert result.command_output.startswith("Cannot create temporary script file")


# Lifecycle


def test_open_missing_interpreter() -> None:
    """A missing executable raises InterpreterNotFound."""
    with pytest.raises(exc.InterpreterNotFound) as exc_info:
        Session.open("/no/such/libshell/interpreter")

    assert exc_info.value.executable == "/no/such/libshell/interpreter"


@pytest.mark.skipif(shutil.which("false") is None, reason="false not installed")
def test_open_exiting_interpreter() -> None:
    """An interpreter that exits at once raises LaunchFailure."""
    with pytest.raises(exc.LaunchFailure, match="exited immediately with code 1"):
        Session.open("false", flavor=POSIX_SH)


def test_context_manager(shell_executable: str, shell_config: SessionConfig) -> None:
    """Leaving the block closes the session and reaps the process."""
    with Session.open(shell_executable, config=shell_config) as session:
        pid = session.pid
        assert psutil.pid_exists(pid)
        assert session.execute_command("echo inside").command_output == "inside"

    assert session.closed
    assert session.state is SessionState.Closed
    assert session.process is None
    assert session.pid == pid
    with pytest.raises(psutil.NoSuchProcess):
        psutil.Process(pid).status()


def test_close_is_idempotent(TestSession: t.Callable[..., Session]) -> None:
    """Closing twice is harmless."""
    session = TestSession()
    session.close()
    session.close()

    assert session.state is SessionState.Closed


def test_commands_after_close(TestSession: t.Callable[..., Session]) -> None:
    """Closed sessions refuse new work."""
    session = TestSession()
    session.close()

    with pytest.raises(exc.AlreadyClosed):
        session.execute_command("echo late")
    with pytest.raises(exc.AlreadyClosed):
        session.execute_script(["echo late"])
    with pytest.raises(exc.AlreadyClosed):
        session.execute_command_and_chain("echo late")


def test_close_blocked_interpreter(
    TestSession: t.Callable[..., Session],
    caplog: pytest.LogCaptureFixture,
) -> None:
    """An interpreter ignoring the exit command is terminated with its children."""
    caplog.set_level(logging.WARNING, logger="libshell.session")
    stubborn = dataclasses.replace(POSIX_SH, exit_command=":")
    session = TestSession(flavor=stubborn)
    session.configuration({"maxWait": "300"})

    # Background job without output; reports a timeout.
    assert session.execute_command("sleep 30 &").is_timeout
    parent = psutil.Process(session.pid)
    children = parent.children(recursive=True)
    assert children

    ini = time.monotonic()
    session.close()
    elapsed = time.monotonic() - ini

    assert session.state is SessionState.Closed
    assert 0.3 <= elapsed < 5
    assert "session was blocked" in caplog.text
    _, alive = psutil.wait_procs([parent, *children], timeout=2)
    assert alive == []


def test_close_exited_interpreter(session: Session) -> None:
    """Closing after the interpreter died needs no exit command."""
    session.execute_command("exit 0")

    ini = time.monotonic()
    session.close()

    assert time.monotonic() - ini < 2
    assert session.state is SessionState.Closed


def test_repr(session: Session) -> None:
    """Test Session repr."""
    assert repr(session) == f"Session(pid={session.pid}, flavor='sh', state=OPEN)"
