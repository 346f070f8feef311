"""Captured failure records and the severity vocabulary shared by every component."""

from __future__ import annotations

import enum
import inspect
import traceback
from dataclasses import dataclass, field
from types import FrameType, MappingProxyType
from typing import Any, Iterator, Mapping

from .errors import ErrorException, FailureContextError


class ErrorLevel(enum.IntFlag):
    """Runtime error severities; combined as a bitmask by every filter."""

    ERROR = 1
    WARNING = 2
    PARSE = 4
    NOTICE = 8
    CORE_ERROR = 16
    CORE_WARNING = 32
    COMPILE_ERROR = 64
    COMPILE_WARNING = 128
    USER_ERROR = 256
    USER_WARNING = 512
    USER_NOTICE = 1024
    STRICT = 2048
    RECOVERABLE_ERROR = 4096
    DEPRECATED = 8192
    USER_DEPRECATED = 16384
    ALL = 32767


FATAL_LEVELS = (
    ErrorLevel.ERROR
    | ErrorLevel.CORE_ERROR
    | ErrorLevel.COMPILE_ERROR
    | ErrorLevel.PARSE
    | ErrorLevel.RECOVERABLE_ERROR
    | ErrorLevel.USER_ERROR
)

_LEVEL_NAMES = {
    ErrorLevel.ERROR: "Fatal Error",
    ErrorLevel.WARNING: "Warning",
    ErrorLevel.PARSE: "Parse Error",
    ErrorLevel.NOTICE: "Notice",
    ErrorLevel.CORE_ERROR: "Core Error",
    ErrorLevel.CORE_WARNING: "Core Warning",
    ErrorLevel.COMPILE_ERROR: "Compile Error",
    ErrorLevel.COMPILE_WARNING: "Compile Warning",
    ErrorLevel.USER_ERROR: "User Error",
    ErrorLevel.USER_WARNING: "User Warning",
    ErrorLevel.USER_NOTICE: "User Notice",
    ErrorLevel.STRICT: "Strict standards",
    ErrorLevel.RECOVERABLE_ERROR: "Recoverable Error",
    ErrorLevel.DEPRECATED: "Deprecated",
    ErrorLevel.USER_DEPRECATED: "User Deprecated",
}

STRING_CONVERSION_FUNCTIONS = frozenset({"__str__", "__repr__", "__format__"})


class Priority(str, enum.Enum):
    """Log priorities; the value doubles as the log file name."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    EXCEPTION = "exception"
    CRITICAL = "critical"


class RecoverableErrorWarning(Warning):
    """Warning category for errors the caller is expected to handle."""


class UserErrorWarning(Warning):
    """Warning category for application-raised fatal errors."""


def is_fatal(severity: int | None) -> bool:
    if not severity:
        return False
    return (int(severity) & FATAL_LEVELS) == int(severity)


def error_type_to_string(severity: int) -> str:
    try:
        return _LEVEL_NAMES[ErrorLevel(severity)]
    except (KeyError, ValueError):
        return "Unknown error"


def level_for_category(category: type[Warning]) -> ErrorLevel:
    """Map a Python warning category onto a runtime error level."""
    if issubclass(category, UserErrorWarning):
        return ErrorLevel.USER_ERROR
    if issubclass(category, RecoverableErrorWarning):
        return ErrorLevel.RECOVERABLE_ERROR
    if issubclass(category, (DeprecationWarning, PendingDeprecationWarning)):
        return ErrorLevel.DEPRECATED
    if issubclass(category, FutureWarning):
        return ErrorLevel.USER_DEPRECATED
    if issubclass(category, SyntaxWarning):
        return ErrorLevel.COMPILE_WARNING
    if issubclass(category, ResourceWarning):
        return ErrorLevel.NOTICE
    if issubclass(category, UserWarning):
        return ErrorLevel.USER_WARNING
    return ErrorLevel.WARNING


def in_string_conversion(frame: FrameType | None = None) -> bool:
    """Return True when any caller frame is a ``__str__``-style conversion."""
    current = frame if frame is not None else inspect.currentframe()
    try:
        while current is not None:
            if current.f_code.co_name in STRING_CONVERSION_FUNCTIONS:
                return True
            current = current.f_back
        return False
    finally:
        del current


@dataclass(frozen=True)
class Frame:
    function: str
    file: str
    line: int
    arguments: str = ""

    def __str__(self) -> str:
        return f"{self.file}({self.line}): {self.function}({self.arguments})"


def _argument_summary(frame: FrameType, limit: int = 60) -> str:
    try:
        info = inspect.getargvalues(frame)
    except Exception:
        return ""
    parts = []
    for name in info.args:
        try:
            value = repr(info.locals.get(name))
        except Exception:
            value = "?"
        if len(value) > limit:
            value = value[: limit - 3] + "..."
        parts.append(f"{name}={value}")
    return ", ".join(parts)


def _frames_from(exc: BaseException) -> tuple[Frame, ...]:
    frames = []
    for tb_frame, lineno in traceback.walk_tb(exc.__traceback__):
        frames.append(
            Frame(
                function=tb_frame.f_code.co_name,
                file=tb_frame.f_code.co_filename,
                line=lineno,
                arguments=_argument_summary(tb_frame),
            )
        )
    # innermost call first, like a stack trace
    frames.reverse()
    return tuple(frames)


def _previous_of(exc: BaseException) -> BaseException | None:
    if exc.__cause__ is not None:
        return exc.__cause__
    if exc.__context__ is not None and not exc.__suppress_context__:
        return exc.__context__
    return None


def _chain(exc: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = _previous_of(current)


@dataclass(frozen=True)
class CapturedFailure:
    """Normalized, immutable record of an intercepted error or exception."""

    kind: str
    priority: Priority
    type_name: str
    message: str
    file: str | None = None
    line: int | None = None
    frames: tuple[Frame, ...] = ()
    previous: CapturedFailure | None = None
    severity: ErrorLevel | None = None
    skippable: bool = False
    exception: BaseException | None = field(default=None, compare=False, repr=False)
    _context: Mapping[str, Any] | None = field(default=None, compare=False, repr=False)

    @classmethod
    def from_exception(cls, exc: BaseException) -> CapturedFailure:
        # build the chain from the oldest failure upward so it cannot loop
        built: CapturedFailure | None = None
        for item in reversed(list(_chain(exc))):
            built = cls._single(item, built)
        assert built is not None
        return built

    @classmethod
    def _single(cls, exc: BaseException, previous: CapturedFailure | None) -> CapturedFailure:
        frames = _frames_from(exc)
        severity = None
        file = line = None
        skippable = False
        if isinstance(exc, ErrorException):
            severity = ErrorLevel(exc.severity) if exc.severity else None
            file, line = exc.file, exc.line
            skippable = exc.skippable
        if file is None and frames:
            file, line = frames[0].file, frames[0].line
        if isinstance(exc, ErrorException) and not is_fatal(severity):
            kind = "warning"
        elif isinstance(exc, ErrorException):
            kind = "fatal"
        else:
            kind = "exception"
        return cls(
            kind=kind,
            priority=Priority.EXCEPTION,
            type_name=type(exc).__name__,
            message=str(exc),
            file=file,
            line=line,
            frames=frames,
            previous=previous,
            severity=severity,
            skippable=skippable,
            exception=exc,
        )

    @property
    def context(self) -> Mapping[str, Any]:
        return self._context if self._context is not None else MappingProxyType({})

    def attach_context(self, context: Mapping[str, Any]) -> None:
        if self._context is not None:
            raise FailureContextError("Request context is already attached to this failure.")
        object.__setattr__(self, "_context", MappingProxyType(dict(context)))

    def chain(self) -> Iterator[CapturedFailure]:
        current: CapturedFailure | None = self
        while current is not None:
            yield current
            current = current.previous

    def headline(self) -> str:
        text = self.type_name
        if self.message:
            text += f": {self.message}"
        return text

    def location(self) -> str:
        if self.file is None:
            return "unknown location"
        return f"{self.file}:{self.line}"

    def trace_text(self) -> str:
        lines = [f"#{i} {frame}" for i, frame in enumerate(self.frames)]
        lines.append(f"#{len(self.frames)} {{main}}")
        return "\n".join(lines)

    def summary(self) -> str:
        return f"{self.headline()} in {self.location()}\nStack trace:\n{self.trace_text()}"
