"""Exception types raised and routed by the debugger."""

from __future__ import annotations

from typing import Any, Mapping


class FaultlineError(Exception):
    """Base class for errors raised by faultline itself."""


class LogicError(FaultlineError):
    """The debugger was used in an order it cannot honour."""


class LoggerError(FaultlineError):
    """A log sink could not persist an entry."""


class FailureContextError(FaultlineError):
    """Request context was attached to a captured failure more than once."""


class ErrorException(Exception):
    """A runtime error or warning promoted to an exception.

    ``severity`` is an :class:`~faultline.services.failures.ErrorLevel` value.
    ``skippable`` marks exceptions produced by strict mode, which a developer
    may choose to skip from the diagnostic screen.
    """

    def __init__(
        self,
        message: str,
        severity: int,
        file: str | None = None,
        line: int | None = None,
        *,
        context: Mapping[str, Any] | None = None,
        previous: BaseException | None = None,
        skippable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.severity = severity
        self.file = file
        self.line = line
        self.context = dict(context or {})
        self.skippable = skippable
        if previous is not None:
            self.__cause__ = previous

    def __str__(self) -> str:
        return self.message
