"""Runtime probes: the source of cumulative per-line hit counts.

``TraceProbe`` installs a line tracer through ``sys.settrace`` and
``threading.settrace`` and reshapes its ``(file, line) -> count`` map into one
array per file, with ``None`` on lines that hold no code.
"""

from __future__ import annotations

import dis
import os
import sys
import sysconfig
import threading
import types
from typing import Any, Callable, Dict, Iterable, Optional, Protocol, Set, Tuple, runtime_checkable

from .logging_config import get_logger
from .models import LineCoverage, Snapshot

logger = get_logger(__name__)

# This package's own directory; its frames are never counted
PACKAGE_DIR = os.path.dirname(os.path.abspath(__file__))


@runtime_checkable
class RuntimeProbe(Protocol):
    """What the collector needs from a line-execution counter."""

    def start(self) -> None: ...

    def stop(self) -> None: ...

    def running(self) -> bool: ...

    def snapshot(self) -> Snapshot: ...


def _code_objects(code: types.CodeType) -> Iterable[types.CodeType]:
    yield code
    for const in code.co_consts:
        if isinstance(const, types.CodeType):
            yield from _code_objects(const)


def executable_lines(path: str) -> Set[int]:
    """Line numbers that start bytecode in ``path``. Empty if it cannot be compiled."""
    try:
        with open(path, "rb") as f:
            source = f.read()
        code = compile(source, path, "exec", dont_inherit=True)
    except (OSError, SyntaxError, ValueError):
        return set()

    lines: Set[int] = set()
    for obj in _code_objects(code):
        for _, lineno in dis.findlinestarts(obj):
            if lineno:
                lines.add(lineno)
    return lines


def default_ignore_dirs() -> Set[str]:
    """Standard library and this package. Installed packages stay visible."""
    paths = sysconfig.get_paths()
    dirs = {p for p in (paths.get("stdlib"), paths.get("platstdlib")) if p}
    dirs.add(PACKAGE_DIR)
    return dirs


class TraceProbe:
    """Counts line executions across all threads.

    Whether a code object is traced is decided once per ``co_filename`` and
    cached under that full name. Snapshots are cumulative since ``start()``.
    Reads do not stop counting; a concurrent increment may land just before
    or after a read.
    """

    def __init__(self, ignore_dirs: Optional[Iterable[str]] = None) -> None:
        if ignore_dirs is None:
            ignore_dirs = default_ignore_dirs()
        self._ignore_prefixes: Tuple[str, ...] = tuple(
            os.path.join(os.path.abspath(d), "") for d in ignore_dirs
        )
        self._counts: Dict[Tuple[str, int], int] = {}
        self._traced: Dict[str, bool] = {}
        self._running = False
        self._lock = threading.Lock()
        self._line_tables: Dict[str, Tuple[int, int, Set[int]]] = {}
        self._previous_trace: Optional[Callable[..., Any]] = None

    # ── tracing ──────────────────────────────────────────────────

    def should_trace(self, filename: str) -> bool:
        decision = self._traced.get(filename)
        if decision is None:
            if not filename or filename.startswith("<"):
                decision = False
            else:
                decision = not os.path.abspath(filename).startswith(self._ignore_prefixes)
            self._traced[filename] = decision
        return decision

    def _global_trace(self, frame: types.FrameType, event: str, arg: Any):
        if event == "call" and self.should_trace(frame.f_code.co_filename):
            return self._local_trace
        return None

    def _local_trace(self, frame: types.FrameType, event: str, arg: Any):
        if event == "line":
            key = (frame.f_code.co_filename, frame.f_lineno)
            counts = self._counts
            counts[key] = counts.get(key, 0) + 1
        return self._local_trace

    def start(self) -> None:
        with self._lock:
            if self._running:
                return
            self._previous_trace = sys.gettrace()
            threading.settrace(self._global_trace)
            sys.settrace(self._global_trace)
            self._running = True
        logger.debug("Trace probe started")

    def stop(self) -> None:
        with self._lock:
            if not self._running:
                return
            sys.settrace(self._previous_trace)
            threading.settrace(self._previous_trace)  # type: ignore[arg-type]
            self._running = False
        logger.debug("Trace probe stopped")

    def running(self) -> bool:
        return self._running

    # ── snapshots ────────────────────────────────────────────────

    def snapshot(self) -> Snapshot:
        # list() over a dict view runs without releasing the GIL
        counts = list(self._counts.items())

        per_file: Dict[str, Dict[int, int]] = {}
        for (filename, lineno), count in counts:
            path = os.path.abspath(filename)
            per_file.setdefault(path, {})[lineno] = count

        snapshot: Snapshot = {}
        for path, hits in per_file.items():
            snapshot[path] = self._to_array(path, hits)
        return snapshot

    def _code_lines(self, path: str) -> Set[int]:
        """Executable lines, re-read when the file's mtime or size changes."""
        try:
            stat = os.stat(path)
        except OSError:
            return set()
        cached = self._line_tables.get(path)
        if cached is not None and cached[0] == stat.st_mtime_ns and cached[1] == stat.st_size:
            return cached[2]
        lines = executable_lines(path)
        self._line_tables[path] = (stat.st_mtime_ns, stat.st_size, lines)
        return lines

    def _to_array(self, path: str, hits: Dict[int, int]) -> LineCoverage:
        code_lines = self._code_lines(path)
        size = max(max(code_lines, default=0), max(hits, default=0))
        array: LineCoverage = [None] * size
        for lineno in code_lines:
            array[lineno - 1] = 0
        for lineno, count in hits.items():
            if lineno > 0:
                array[lineno - 1] = count
        return array
