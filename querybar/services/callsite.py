"""
Finds the line of application code that issued a query.

The resolver walks the stack innermost first and keeps the first frame that
is outside every library path and does not look like a proxy call or a
framework base class. This is a heuristic; a ``None`` result is normal.
"""
import inspect
import os
import site
import sysconfig
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Optional, Sequence

import sqlalchemy

from querybar.core.config import settings
from querybar.schemas.log_entry import SourceLocation

_PACKAGE_DIR = Path(__file__).resolve().parent.parent


@dataclass(frozen=True)
class StackFrame:
    file: str
    line: int
    function: str = ""
    class_name: Optional[str] = None


def _owner_class_name(frame) -> Optional[str]:
    f_locals = frame.f_locals
    if "self" in f_locals:
        return type(f_locals["self"]).__name__
    cls = f_locals.get("cls")
    if isinstance(cls, type):
        return cls.__name__
    return None


def capture_stack(skip: int = 0) -> list[StackFrame]:
    """Current call stack, innermost first, without this function's own frame."""
    frames: list[StackFrame] = []
    frame = inspect.currentframe()
    try:
        frame = frame.f_back if frame is not None else None
        for _ in range(skip):
            if frame is None:
                break
            frame = frame.f_back
        while frame is not None:
            frames.append(
                StackFrame(
                    file=frame.f_code.co_filename,
                    line=frame.f_lineno,
                    function=frame.f_code.co_name,
                    class_name=_owner_class_name(frame),
                )
            )
            frame = frame.f_back
    finally:
        # Break the reference cycle through the frame objects
        del frame
    return frames


def default_library_paths() -> list[str]:
    """Interpreter, site-packages and script dirs, plus this package's internals."""
    paths: list[str] = []
    for key in ("stdlib", "platstdlib", "purelib", "platlib", "scripts"):
        p = sysconfig.get_paths().get(key)
        if p:
            paths.append(p)
    paths.extend(site.getsitepackages())
    if site.ENABLE_USER_SITE:
        paths.append(site.getusersitepackages())
    paths.append(str(Path(sqlalchemy.__file__).resolve().parent))
    paths.append(str(_PACKAGE_DIR / "services"))
    paths.append(str(_PACKAGE_DIR / "db"))
    return paths


def normalize_paths(paths: Iterable[str] | str) -> tuple[str, ...]:
    if isinstance(paths, (str, os.PathLike)):
        paths = [paths]
    normalized: list[str] = []
    for p in paths:
        real = os.path.realpath(p).rstrip(os.sep)
        if real and real not in normalized:
            normalized.append(real)
    return tuple(normalized)


class CallSiteResolver:
    def __init__(
        self,
        library_paths: Iterable[str] | str = (),
        proxy_function_prefixes: Sequence[str] | None = None,
        base_class_prefixes: Sequence[str] | None = None,
        skip_frame: Callable[[StackFrame], bool] | None = None,
        include_default_library_paths: bool | None = None,
    ):
        if include_default_library_paths is None:
            include_default_library_paths = settings.INCLUDE_DEFAULT_LIBRARY_PATHS

        paths = list(normalize_paths(library_paths))
        paths.extend(normalize_paths(settings.LIBRARY_PATHS))
        if include_default_library_paths:
            paths.extend(normalize_paths(default_library_paths()))
        self.library_paths = tuple(dict.fromkeys(paths))

        self.proxy_function_prefixes = tuple(
            settings.PROXY_FUNCTION_PREFIXES if proxy_function_prefixes is None else proxy_function_prefixes
        )
        self.base_class_prefixes = tuple(
            settings.BASE_CLASS_PREFIXES if base_class_prefixes is None else base_class_prefixes
        )
        self.skip_frame = skip_frame

    def is_library_file(self, file: str) -> bool:
        real = os.path.realpath(file)
        return any(real.startswith(lib + os.sep) for lib in self.library_paths)

    def _is_candidate(self, frame: StackFrame) -> bool:
        if not frame.file or not os.path.isfile(frame.file):
            return False
        if self.is_library_file(frame.file):
            return False
        if frame.function and frame.function.startswith(self.proxy_function_prefixes):
            return False
        if frame.class_name and frame.class_name.startswith(self.base_class_prefixes):
            return False
        if self.skip_frame is not None and self.skip_frame(frame):
            return False
        return True

    def resolve(self, frames: Iterable[StackFrame]) -> Optional[SourceLocation]:
        for frame in frames:
            if self._is_candidate(frame):
                return SourceLocation(file=frame.file, line=int(frame.line))
        return None
