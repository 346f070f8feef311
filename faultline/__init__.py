"""faultline: captures, renders and logs the errors of a Python web application."""

from __future__ import annotations

from typing import Any, Iterable

from .debugger import VERSION, Debugger, DebuggerConfig
from .extensions import FaultlineExtension, FlaskHost, init_extensions
from .services.errors import ErrorException, FaultlineError, LoggerError, LogicError
from .services.failures import (
    CapturedFailure,
    ErrorLevel,
    Priority,
    RecoverableErrorWarning,
    UserErrorWarning,
)
from .services.hooks import Outcome, ProcessHost
from .services.mode import Mode

DEVELOPMENT = False
PRODUCTION = True
DETECT = None


def create_debugger(
    mode: bool | str | Iterable[str] | None = DETECT,
    log_directory: str | None = None,
    email: str | list[str] | None = None,
    *,
    host: Any = None,
    **config: Any,
) -> Debugger:
    """Build a debugger for this process and enable it.

    Extra keyword arguments set :class:`DebuggerConfig` fields.
    """

    debugger = Debugger.create(host=host, config=DebuggerConfig(**config))
    debugger.enable(mode, log_directory, email)
    return debugger


__all__ = [
    "VERSION",
    "DEVELOPMENT",
    "PRODUCTION",
    "DETECT",
    "CapturedFailure",
    "Debugger",
    "DebuggerConfig",
    "ErrorException",
    "ErrorLevel",
    "FaultlineError",
    "FaultlineExtension",
    "FlaskHost",
    "LoggerError",
    "LogicError",
    "Mode",
    "Outcome",
    "Priority",
    "ProcessHost",
    "RecoverableErrorWarning",
    "UserErrorWarning",
    "create_debugger",
    "init_extensions",
]
