"""Opt-in timing trace for libshell sessions.

Set ``LIBSHELL_TRACE=1`` to append one JSON object per span to
``LIBSHELL_TRACE_PATH`` (default ``/tmp/libshell-trace.jsonl``). Disabled
tracing costs one flag check per span.
"""

from __future__ import annotations

import contextlib
import contextvars
import itertools
import json
import os
import pathlib
import threading
import time
import typing as t

TRACE_PATH = os.getenv("LIBSHELL_TRACE_PATH", "/tmp/libshell-trace.jsonl")


def _env_flag(name: str) -> bool:
    value = os.getenv(name)
    if value is None:
        return False
    return value not in {"", "0", "false", "False", "no", "NO"}


TRACE_ENABLED = _env_flag("LIBSHELL_TRACE")

_TRACE_STACK: contextvars.ContextVar[tuple[int, ...]] = contextvars.ContextVar(
    "libshell_trace_stack", default=()
)
_TRACE_COUNTER = itertools.count(1)
_WRITE_LOCK = threading.Lock()


def _write_event(event: dict[str, t.Any]) -> None:
    event["process"] = os.getpid()
    event["thread"] = threading.get_ident()
    with _WRITE_LOCK, pathlib.Path(TRACE_PATH).open("a", encoding="utf-8") as handle:
        handle.write(json.dumps(event, sort_keys=False, default=str))
        handle.write("\n")


@contextlib.contextmanager
def span(name: str, **fields: t.Any) -> t.Iterator[dict[str, t.Any]]:
    """Time the enclosed block.

    The yielded dict is merged into the event, so outcomes known only at the
    end can be recorded:

    >>> with span("session.execute_command", command="dir") as extra:
    ...     extra["timeout"] = False
    """
    extra: dict[str, t.Any] = {}
    if not TRACE_ENABLED:
        yield extra
        return
    span_id = next(_TRACE_COUNTER)
    stack = _TRACE_STACK.get()
    parent_id = stack[-1] if stack else None
    token = _TRACE_STACK.set((*stack, span_id))
    start_ns = time.perf_counter_ns()
    try:
        yield extra
    finally:
        duration_ns = time.perf_counter_ns() - start_ns
        _TRACE_STACK.reset(token)
        event = {
            "event": name,
            "span_id": span_id,
            "parent_id": parent_id,
            "depth": len(stack),
            "start_ns": start_ns,
            "duration_ns": duration_ns,
        }
        event.update(fields)
        event.update(extra)
        _write_event(event)


def point(name: str, **fields: t.Any) -> None:
    """Record an instantaneous event."""
    if not TRACE_ENABLED:
        return
    event = {"event": name, "point": True, "ts_ns": time.perf_counter_ns()}
    event.update(fields)
    _write_event(event)
