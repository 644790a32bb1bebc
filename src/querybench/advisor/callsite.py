"""
Call-site attribution for collected queries.

A query is attributed to the nearest frame of application code: the first
frame (innermost first) that is not library code, not the standard
library, not a dunder/accessor method, and not in a skipped namespace.
If none qualifies, the first frame under one of the application's source
roots is used. If still none, the query has no origin ("Unknown location").

Backtraces can be captured from the live interpreter stack with
capture_backtrace(), or supplied explicitly by an instrumentation hook.
"""

from __future__ import annotations

import inspect
import os
import sysconfig
from dataclasses import dataclass
from types import FrameType
from typing import Sequence

# Namespaces whose frames are never the interesting caller
DEFAULT_SKIP_MODULES: tuple[str, ...] = (
    "sqlalchemy",
    "querybench",
    "pydantic",
)

# Accessor and protocol methods: the caller one frame out is more useful
SKIP_FUNCTIONS = frozenset({
    "__getattr__", "__getattribute__", "__setattr__", "__delattr__",
    "__get__", "__set__", "__delete__",
    "__getitem__", "__setitem__", "__delitem__", "__contains__",
    "__init__", "__new__", "__del__", "__call__",
    "__iter__", "__next__", "__len__", "__bool__",
    "__enter__", "__exit__", "__repr__", "__str__",
    "<genexpr>", "<listcomp>", "<dictcomp>", "<setcomp>", "<lambda>",
})

_LIBRARY_MARKERS = (
    f"{os.sep}site-packages{os.sep}",
    f"{os.sep}dist-packages{os.sep}",
)


def _stdlib_paths() -> tuple[str, ...]:
    paths = sysconfig.get_paths()
    return tuple(
        os.path.normcase(os.path.abspath(paths[key]))
        for key in ("stdlib", "platstdlib")
        if paths.get(key)
    )


_STDLIB_PATHS = _stdlib_paths()


@dataclass(frozen=True)
class StackFrame:
    """
    One frame of a backtrace, innermost first.

    Every field is optional: instrumentation hooks may only know some of
    them.
    """

    file: str | None = None
    line: int | None = None
    class_name: str | None = None
    function: str | None = None
    module: str | None = None


def capture_backtrace(skip: int = 1, limit: int = 50) -> tuple[StackFrame, ...]:
    """
    Capture the current interpreter stack as StackFrames.

    Args:
        skip: Number of innermost frames to drop (1 drops this function)
        limit: Maximum number of frames to capture
    """
    frames: list[StackFrame] = []
    frame = inspect.currentframe()
    try:
        for _ in range(skip):
            if frame is None:
                break
            frame = frame.f_back

        while frame is not None and len(frames) < limit:
            frames.append(_frame_to_stack_frame(frame))
            frame = frame.f_back
    finally:
        del frame

    return tuple(frames)


def _frame_to_stack_frame(frame: FrameType) -> StackFrame:
    code = frame.f_code
    f_locals = frame.f_locals

    class_name: str | None = None
    owner = f_locals.get("self")
    if owner is not None:
        class_name = type(owner).__qualname__
    else:
        owner_cls = f_locals.get("cls")
        if isinstance(owner_cls, type):
            class_name = owner_cls.__qualname__

    return StackFrame(
        file=code.co_filename,
        line=frame.f_lineno,
        class_name=class_name,
        function=code.co_name,
        module=frame.f_globals.get("__name__"),
    )


def _in_namespace(name: str | None, namespaces: Sequence[str]) -> bool:
    if not name:
        return False
    return any(name == ns or name.startswith(ns + ".") for ns in namespaces)


def _is_library_file(path: str) -> bool:
    if path.startswith("<"):
        return True
    if any(marker in path for marker in _LIBRARY_MARKERS):
        return True
    normalized = os.path.normcase(os.path.abspath(path))
    return any(normalized.startswith(root + os.sep) for root in _STDLIB_PATHS)


def _under_roots(path: str, roots: Sequence[str]) -> bool:
    normalized = os.path.normcase(os.path.abspath(path))
    for root in roots:
        root = os.path.normcase(os.path.abspath(root))
        if normalized == root or normalized.startswith(root + os.sep):
            return True
    return False


def extract_origin(
    frames: Sequence[StackFrame],
    skip_modules: Sequence[str] | None = None,
    app_paths: Sequence[str] | None = None,
) -> StackFrame | None:
    """
    Find the application frame a query should be attributed to.

    Args:
        frames: Backtrace, innermost frame first
        skip_modules: Namespaces to skip (default: DEFAULT_SKIP_MODULES)
        app_paths: Source roots for the fallback pass (default: cwd)

    Returns:
        The attributed frame, or None when nothing qualifies
    """
    namespaces = DEFAULT_SKIP_MODULES if skip_modules is None else tuple(skip_modules)

    for frame in frames:
        if frame.file is None:
            continue
        if _is_library_file(frame.file):
            continue
        if frame.function in SKIP_FUNCTIONS:
            continue
        if _in_namespace(frame.module, namespaces) or _in_namespace(frame.class_name, namespaces):
            continue
        return frame

    roots = list(app_paths) if app_paths is not None else [os.getcwd()]
    for frame in frames:
        if frame.file is None or _is_library_file(frame.file):
            continue
        if _under_roots(frame.file, roots):
            return frame

    return None
