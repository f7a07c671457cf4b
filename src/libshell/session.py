"""Interactive interpreter sessions.

libshell.session
~~~~~~~~~~~~~~~~

A :class:`Session` keeps one interpreter process running and exchanges
commands with it over its standard streams. Each command is written as a
line on stdin, its output is gathered by :class:`~libshell._internal.reader.
ReaderTask` workers, and the call returns a :class:`~libshell.result.
CommandResult` once the output goes idle or ``max_wait`` expires.

Always scope a session with ``with`` (or call :meth:`Session.close`) so the
interpreter process is reaped on every exit path.
"""

from __future__ import annotations

import concurrent.futures
import contextlib
import io
import logging
import os
import pathlib
import shutil
import subprocess
import threading
import time
import typing as t

from libshell import exc
from libshell._internal import trace
from libshell._internal.channel import OutputChannel
from libshell._internal.process import terminate_tree
from libshell._internal.reader import ReaderTask
from libshell._internal.script import discard, materialize
from libshell.config import SessionConfig
from libshell.constants import (
    IDLE_SETTLE_SECONDS,
    LAUNCH_GRACE_SECONDS,
    SCRIPT_SENTINEL,
    TERMINATE_GRACE_SECONDS,
    SessionState,
    StreamName,
)
from libshell.flavors import default_executable, flavor_for
from libshell.result import CommandResult

if t.TYPE_CHECKING:
    import sys
    import types
    from collections.abc import Callable, Iterable, Mapping

    from libshell.flavors import Flavor

    if sys.version_info >= (3, 11):
        from typing import Self
    else:
        from typing_extensions import Self

    ResponseHandler = Callable[[CommandResult], t.Any]
    ScriptSource = t.Union[str, os.PathLike[str], t.TextIO, Iterable[str]]

logger = logging.getLogger(__name__)


class Session:
    """A running interpreter process and its command protocol.

    Use :meth:`Session.open` rather than instantiating directly.

    Parameters
    ----------
    process : subprocess.Popen
        Interpreter started with piped stdin, stdout and (unless merged)
        stderr, in text mode.
    flavor : :class:`~libshell.flavors.Flavor`
        Dialect of the interpreter.
    config : :class:`~libshell.config.SessionConfig`, optional
        Tunables, defaults from the environment.
    executable : str, optional
        Path the process was started from, for logs.

    Examples
    --------
    >>> with Session.open("sh") as session:  # doctest: +SKIP
    ...     session.execute_command("echo hello").command_output
    'hello'

    Output and errors are reported on the result, never raised:

    >>> result = session.execute_command("no-such-command")  # doctest: +SKIP
    >>> result.is_error  # doctest: +SKIP
    True
    """

    def __init__(
        self,
        process: subprocess.Popen[str],
        flavor: Flavor,
        config: SessionConfig | None = None,
        executable: str | None = None,
    ) -> None:
        self.process: subprocess.Popen[str] | None = process
        self.pid: int = process.pid
        self.flavor = flavor
        self.config = config if config is not None else SessionConfig.from_env()
        self.executable = executable
        self._state = SessionState.Open
        self._script_mode = False
        self._lock = threading.Lock()
        self._state_lock = threading.Lock()

        self._channels: dict[StreamName, OutputChannel] = {}
        assert process.stdout is not None
        self._channels[StreamName.Stdout] = OutputChannel(
            process.stdout,
            name=f"{StreamName.Stdout.value}-{self.pid}",
        )
        if process.stderr is not None:
            self._channels[StreamName.Stderr] = OutputChannel(
                process.stderr,
                name=f"{StreamName.Stderr.value}-{self.pid}",
            )
        for channel in self._channels.values():
            channel.start()

        # One worker per read stream, plus one for the close sequence.
        self._pool = concurrent.futures.ThreadPoolExecutor(
            max_workers=len(self._channels) + 1,
            thread_name_prefix=f"libshell-{self.pid}",
        )

    def __repr__(self) -> str:
        """Representation of :class:`Session`."""
        return (
            f"{self.__class__.__name__}(pid={self.pid}, "
            f"flavor={self.flavor.name!r}, state={self._state.value})"
        )

    def __enter__(self) -> Self:
        """Enter the context, returning self."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        """Exit the context, closing the session."""
        self.close()

    # Lifecycle ---------------------------------------------------------
    @classmethod
    def open(
        cls,
        executable_path: str | os.PathLike[str] | None = None,
        *,
        flavor: Flavor | None = None,
        config: SessionConfig | None = None,
        merge_streams: bool = False,
        encoding: str | None = None,
        cwd: str | os.PathLike[str] | None = None,
        env: Mapping[str, str] | None = None,
    ) -> Session:
        """Start an interpreter and return a session attached to it.

        Parameters
        ----------
        executable_path : str or os.PathLike, optional
            Interpreter to run. Looked up on ``PATH`` when not absolute.
            Defaults to :func:`~libshell.flavors.default_executable`.
        flavor : :class:`~libshell.flavors.Flavor`, optional
            Dialect, guessed from the executable name when omitted.
        config : :class:`~libshell.config.SessionConfig`, optional
            Tunables, defaults from ``LIBSHELL_*`` environment variables.
        merge_streams : bool
            Send stderr into stdout. Errors are then indistinguishable from
            output and only one reader runs per command.
        encoding : str, optional
            Encoding of the interpreter's streams, locale default if unset.
        cwd : str or os.PathLike, optional
            Working directory of the interpreter.
        env : mapping, optional
            Environment of the interpreter.

        Raises
        ------
        :exc:`exc.InterpreterNotFound`
            Executable cannot be located.
        :exc:`exc.LaunchFailure`
            Process cannot be started or exits during the launch grace period.
        """
        requested = (
            os.fspath(executable_path)
            if executable_path is not None
            else default_executable()
        )
        executable = shutil.which(requested)
        if executable is None:
            raise exc.InterpreterNotFound(requested)

        flavor = flavor if flavor is not None else flavor_for(executable)
        argv = flavor.launch_args(executable)

        logger.debug("Starting %s interpreter: %s", flavor.name, argv)
        try:
            process = subprocess.Popen(
                argv,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT if merge_streams else subprocess.PIPE,
                text=True,
                bufsize=1,
                encoding=encoding,
                errors="backslashreplace",
                cwd=cwd,
                env=env,
            )
        except OSError as e:
            raise exc.LaunchFailure(executable, str(e)) from e

        try:
            returncode = process.wait(timeout=LAUNCH_GRACE_SECONDS)
        except subprocess.TimeoutExpired:
            return cls(process, flavor=flavor, config=config, executable=executable)

        reason = f"exited immediately with code {returncode}"
        try:
            stdout, stderr = process.communicate(timeout=TERMINATE_GRACE_SECONDS)
        except (subprocess.TimeoutExpired, OSError, ValueError):
            stdout, stderr = "", ""
        details = (stderr or stdout or "").strip()
        if details:
            reason += f": {details.splitlines()[0]}"
        raise exc.LaunchFailure(executable, reason)

    @property
    def state(self) -> SessionState:
        """Return the lifecycle state."""
        return self._state

    @property
    def closed(self) -> bool:
        """Return ``True`` once :meth:`close` started."""
        return self._state is not SessionState.Open

    @property
    def script_mode(self) -> bool:
        """Return ``True`` while a script runs and output ends at the sentinel."""
        return self._script_mode

    def configuration(self, overrides: Mapping[str, t.Any]) -> Self:
        """Apply ``waitPause``, ``maxWait``, ``tempFolder``, ``remoteMode``.

        Timings are milliseconds. Invalid values are logged and ignored.

        >>> session.configuration({"maxWait": "1000"}).config.max_wait
        1.0
        """
        self.config = self.config.updated(overrides)
        return self

    def close(self) -> None:
        """Exit the interpreter and release every resource.

        Sends the flavor's exit command and waits up to ``max_wait``. If the
        interpreter does not exit, its process tree is terminated. Safe to
        call more than once; never raises.
        """
        with self._state_lock:
            if self._state is not SessionState.Open:
                return
            self._state = SessionState.Closing

        process = self.process
        assert process is not None
        with trace.span("session.close", pid=self.pid) as extra:
            try:
                graceful = self._request_exit(process)
                extra["graceful"] = graceful
                if not graceful:
                    logger.warning(
                        "Interpreter %s did not exit within %.3fs, session was "
                        "blocked; terminating it",
                        self.pid,
                        self.config.max_wait,
                    )
                    self._force_stop(process)
            except Exception:
                logger.exception(
                    "Unexpected error when closing interpreter %s",
                    self.pid,
                )
                if process.poll() is None:
                    self._force_stop(process)
            finally:
                self._release(process)
                self.process = None
                self._state = SessionState.Closed
        logger.debug("Closed %r", self)

    def _request_exit(self, process: subprocess.Popen[str]) -> bool:
        if process.poll() is not None:
            return True
        future = self._pool.submit(self._send_exit, process)
        try:
            future.result(timeout=self.config.max_wait)
        except (concurrent.futures.TimeoutError, subprocess.TimeoutExpired):
            return False
        return True

    def _send_exit(self, process: subprocess.Popen[str]) -> None:
        try:
            self._write_line(self.flavor.exit_command, process=process)
        except (OSError, ValueError):
            logger.debug("Interpreter %s stdin already closed", self.pid)
        process.wait(timeout=self.config.max_wait)

    def _force_stop(self, process: subprocess.Popen[str]) -> None:
        try:
            terminate_tree(process)
        except Exception:
            logger.exception("Cannot terminate interpreter %s", self.pid)
            with contextlib.suppress(OSError):
                process.kill()

    def _release(self, process: subprocess.Popen[str]) -> None:
        self._pool.shutdown(wait=False, cancel_futures=True)
        if process.stdin is not None:
            try:
                process.stdin.close()
            except (OSError, ValueError):
                logger.debug("Error closing stdin of %s", self.pid, exc_info=True)
        for channel in self._channels.values():
            channel.join(timeout=TERMINATE_GRACE_SECONDS)
            if channel.alive:
                # A descendant still holds the pipe; closing would block.
                logger.warning("%r still attached, leaving stream open", channel)
                continue
            stream = t.cast("io.TextIOBase", channel.stream)
            try:
                stream.close()
            except (OSError, ValueError):
                logger.debug("Error closing %r", channel, exc_info=True)

    # Commands ----------------------------------------------------------
    def execute_command(
        self,
        command: str,
        response_handler: ResponseHandler | None = None,
    ) -> CommandResult:
        """Send *command* and return its outcome.

        Parameters
        ----------
        command : str
            One line of input for the interpreter.
        response_handler : callable, optional
            Called with the result before returning. Exceptions it raises are
            logged and swallowed.

        Raises
        ------
        :exc:`exc.AlreadyClosed`
            The session was closed.
        """
        self._check_open()
        with self._lock:
            self._check_open()
            result = self._execute(command)
        if response_handler is not None:
            self._dispatch(response_handler, result)
        return result

    def execute_command_and_chain(
        self,
        command: str,
        response_handler: ResponseHandler | None = None,
    ) -> Self:
        """Like :meth:`execute_command`, but return the session for chaining.

        >>> session.execute_command_and_chain(
        ...     "echo one", print
        ... ).execute_command_and_chain("echo two", print)  # doctest: +SKIP
        CommandResult(command_output='one', is_error=False, is_timeout=False)
        CommandResult(command_output='two', is_error=False, is_timeout=False)
        Session(...)
        """
        self.execute_command(command, response_handler)
        return self

    def execute_script(
        self,
        source: ScriptSource,
        params: str = "",
        response_handler: ResponseHandler | None = None,
    ) -> CommandResult:
        """Run a script and return everything it printed.

        The script is copied into a temporary file whose last line prints
        :data:`~libshell.constants.SCRIPT_SENTINEL`. Output is read until
        that line, so pauses inside the script do not end the command early.

        Parameters
        ----------
        source : str, os.PathLike, text stream or iterable of str
            Path of a script file, an open text stream, or the script's lines.
        params : str
            Appended to the invocation line verbatim.
        response_handler : callable, optional
            See :meth:`execute_command`.

        Raises
        ------
        :exc:`exc.AlreadyClosed`
            The session was closed.
        """
        self._check_open()
        lines = _read_script_source(source)
        if lines is None:
            result = CommandResult.error(f"Wrong script path: {source}")
        else:
            result = self._execute_script_lines(lines, params)
        if response_handler is not None:
            self._dispatch(response_handler, result)
        return result

    def _execute_script_lines(self, lines: list[str], params: str) -> CommandResult:
        path = materialize(lines, self.flavor, self.config.temp_folder)
        if path is None:
            return CommandResult.error(
                "Cannot create temporary script file in "
                f"{self.config.temp_folder or 'the default temp folder'}",
            )
        try:
            with self._lock:
                self._check_open()
                with trace.span("session.execute_script", pid=self.pid, path=path):
                    self._script_mode = True
                    try:
                        return self._execute(self.flavor.script_line(path, params))
                    finally:
                        self._script_mode = False
        finally:
            discard(path)

    def _check_open(self) -> None:
        if self._state is not SessionState.Open:
            raise exc.AlreadyClosed(self.pid)

    def _dispatch(self, handler: ResponseHandler, result: CommandResult) -> None:
        try:
            handler(result)
        except Exception:
            logger.exception("Response handler %r failed", handler)

    def _execute(self, command: str) -> CommandResult:
        with trace.span(
            "session.execute_command",
            pid=self.pid,
            script_mode=self._script_mode,
        ) as extra:
            result = self._run(command)
            extra["is_error"] = result.is_error
            extra["is_timeout"] = result.is_timeout
        return result

    def _run(self, command: str) -> CommandResult:
        self._discard_stale_output()
        tasks = self._create_tasks()
        futures = {name: self._pool.submit(task) for name, task in tasks.items()}
        try:
            try:
                self._write_line(command)
                if self.config.remote_mode:
                    self._write_line(self.flavor.flush_command)
            except (OSError, ValueError) as e:
                logger.error("Cannot send command to interpreter %s: %s", self.pid, e)
                return CommandResult.error(f"Interpreter process is not available: {e}")
            return self._collect(tasks, futures)
        finally:
            for task in tasks.values():
                task.close()

    def _create_tasks(self) -> dict[StreamName, ReaderTask]:
        tasks: dict[StreamName, ReaderTask] = {}
        for name, channel in self._channels.items():
            sentinel = (
                SCRIPT_SENTINEL
                if self._script_mode and name is StreamName.Stdout
                else None
            )
            tasks[name] = ReaderTask(
                channel,
                wait_pause=self.config.wait_pause,
                max_wait=self.config.max_wait,
                sentinel=sentinel,
            )
        return tasks

    def _collect(
        self,
        tasks: dict[StreamName, ReaderTask],
        futures: dict[StreamName, concurrent.futures.Future[list[str]]],
    ) -> CommandResult:
        out_task = tasks[StreamName.Stdout]
        out_future = futures[StreamName.Stdout]
        err_task = tasks.get(StreamName.Stderr)
        err_future = futures.get(StreamName.Stderr)

        # In script mode only the sentinel ends the command.
        pending: set[concurrent.futures.Future[list[str]]] = {out_future}
        if err_future is not None and not self._script_mode:
            pending.add(err_future)

        deadline = time.monotonic() + self.config.max_wait
        while pending:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            done, pending = concurrent.futures.wait(
                pending,
                timeout=remaining,
                return_when=concurrent.futures.FIRST_COMPLETED,
            )
            if out_future in done:
                break
            if err_future in done and err_task is not None and err_task.lines:
                break

        separator = self.flavor.line_separator
        if out_future.done() and not out_task.timed_out:
            failure = out_future.exception()
            if failure is not None:
                return CommandResult.error(f"Cannot read interpreter output: {failure}")
            error_text = self._settle(err_task, err_future)
            if error_text:
                return CommandResult.error(error_text)
            return self._finished(out_task)

        if (
            err_future is not None
            and err_future.done()
            and err_task is not None
            and err_task.lines
        ):
            err_task.take_pending()
            return CommandResult.error(err_task.text(separator))

        return self._timed_out(tasks, futures)

    def _settle(
        self,
        task: ReaderTask | None,
        future: concurrent.futures.Future[list[str]] | None,
    ) -> str:
        """Stop *task* and return what it collected."""
        if task is None or future is None:
            return ""
        task.close()
        concurrent.futures.wait(
            [future],
            timeout=self.config.wait_pause + IDLE_SETTLE_SECONDS,
        )
        if future.done():
            task.take_pending()
        return task.text(self.flavor.line_separator)

    def _finished(self, task: ReaderTask) -> CommandResult:
        output = task.text(self.flavor.line_separator)
        process = self.process
        if not output and process is not None and task.channel.exhausted:
            try:
                returncode: int | None = process.wait(timeout=TERMINATE_GRACE_SECONDS)
            except subprocess.TimeoutExpired:
                returncode = None
            if returncode is not None:
                logger.warning(
                    "Interpreter %s exited with code %s",
                    self.pid,
                    returncode,
                )
                return CommandResult.error(
                    f"Interpreter process exited with code {returncode}",
                )
        return CommandResult(command_output=output)

    def _timed_out(
        self,
        tasks: dict[StreamName, ReaderTask],
        futures: dict[StreamName, concurrent.futures.Future[list[str]]],
    ) -> CommandResult:
        for task in tasks.values():
            task.close()
        concurrent.futures.wait(
            list(futures.values()),
            timeout=self.config.wait_pause + IDLE_SETTLE_SECONDS,
        )
        for name, task in tasks.items():
            if futures[name].done():
                task.take_pending()
        logger.warning(
            "Command timed out after %.3fs on interpreter %s",
            self.config.max_wait,
            self.pid,
        )

        separator = self.flavor.line_separator
        output = tasks[StreamName.Stdout].text(separator)
        err_task = tasks.get(StreamName.Stderr)
        if not output and err_task is not None and err_task.lines:
            return CommandResult(
                command_output=err_task.text(separator),
                is_error=True,
                is_timeout=True,
            )
        return CommandResult(command_output=output, is_timeout=True)

    def _discard_stale_output(self) -> None:
        for channel in self._channels.values():
            stale = channel.discard_pending()
            if stale:
                logger.debug(
                    "Discarded %d stale line(s) from %r",
                    len(stale),
                    channel,
                )
                trace.point(
                    "session.discard_stale",
                    pid=self.pid,
                    stream=channel.name,
                    lines=len(stale),
                )

    def _write_line(
        self,
        line: str,
        *,
        process: subprocess.Popen[str] | None = None,
    ) -> None:
        process = process if process is not None else self.process
        assert process is not None
        assert process.stdin is not None
        process.stdin.write(line + "\n")
        process.stdin.flush()


def _read_script_source(source: ScriptSource) -> list[str] | None:
    """Return the lines of *source*, ``None`` if a path cannot be read.

    >>> import io
    >>> _read_script_source(io.StringIO("a\\nb\\n"))
    ['a', 'b']
    >>> _read_script_source(["x", "y"])
    ['x', 'y']
    >>> _read_script_source("/no/such/script.sh") is None
    True
    """
    if isinstance(source, (str, os.PathLike)):
        path = pathlib.Path(source)
        try:
            return path.read_text(encoding="utf-8").splitlines()
        except OSError:
            logger.error("Cannot read script %s", path, exc_info=True)
            return None
    if isinstance(source, io.TextIOBase) or hasattr(source, "read"):
        return t.cast("t.TextIO", source).read().splitlines()
    return [str(line) for line in source]
