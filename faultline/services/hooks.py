"""Runtime seams and the one-time installation of the global hooks."""

from __future__ import annotations

import atexit
import contextlib
import enum
import logging
import os
import shlex
import socket
import subprocess
import sys
import warnings
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Iterator, Mapping

from .buffers import BufferGuardian, OutputBuffers
from .failures import ErrorLevel, level_for_category

if TYPE_CHECKING:
    from faultline.debugger import Debugger

log = logging.getLogger(__name__)


class Outcome(enum.Enum):
    """What the error hook tells the runtime after handling a warning."""

    DEFAULT = "default"  # let the runtime's own handler run too
    HANDLED = "handled"


ErrorHook = Callable[[int, str, str, int, Mapping[str, Any]], Outcome]


class ProcessHost:
    """Binds the debugger to a plain Python process.

    Shutdown goes through ``atexit``, uncaught exceptions through
    ``sys.excepthook`` and warnings through ``warnings.showwarning``. Output
    is written to stdout through an :class:`OutputBuffers` stack.
    """

    def __init__(self) -> None:
        self.reporting = int(ErrorLevel.ALL)
        self.display_errors = True
        self._buffers = OutputBuffers(lambda text: sys.stdout.write(text))
        self._guardian = BufferGuardian(self._buffers)
        self._last_error: dict[str, Any] | None = None
        self._original_showwarning = warnings.showwarning
        self._original_excepthook = sys.excepthook
        self._warning_state: warnings.catch_warnings | None = None

    @property
    def buffers(self) -> OutputBuffers:
        return self._buffers

    @property
    def guardian(self) -> BufferGuardian:
        return self._guardian

    # --- hook registration -------------------------------------------------
    def register_shutdown(self, handler: Callable[[], object]) -> None:
        atexit.register(handler)

    def set_exception_hook(self, handler: Callable[[BaseException], object]) -> None:
        def _excepthook(exc_type, exc, tb) -> None:
            if exc is None:
                exc = exc_type()
            if exc.__traceback__ is None and tb is not None:
                exc = exc.with_traceback(tb)
            handler(exc)

        sys.excepthook = _excepthook

    def set_error_hook(self, handler: ErrorHook) -> None:
        def _showwarning(message, category, filename, lineno, file=None, line=None) -> None:
            severity = level_for_category(category)
            context = {"category": category}
            if isinstance(message, BaseException):
                context["e"] = message
            outcome = handler(int(severity), str(message), filename, lineno, context)
            if outcome is Outcome.DEFAULT:
                self.default_error(int(severity), str(message), filename, lineno, category=category)

        warnings.showwarning = _showwarning

    def restore(self, shutdown_handler: Callable[[], object] | None = None) -> None:
        if shutdown_handler is not None:
            atexit.unregister(shutdown_handler)
        sys.excepthook = self._original_excepthook
        if self._warning_state is not None:
            self._warning_state.__exit__(None, None, None)
            self._warning_state = None
        warnings.showwarning = self._original_showwarning

    # --- runtime configuration ---------------------------------------------
    def set_reporting(self, mask: int) -> None:
        self.reporting = int(mask)
        if self.reporting == int(ErrorLevel.ALL):
            if self._warning_state is None:
                # filters go back to their previous state on restore()
                self._warning_state = warnings.catch_warnings()
                self._warning_state.__enter__()
            warnings.simplefilter("always")

    def configure_display(self, display: bool) -> None:
        self.display_errors = display

    def disable_runtime_logging(self) -> None:
        logging.captureWarnings(False)

    @contextlib.contextmanager
    def quiet(self, mask: int = 0) -> Iterator[None]:
        """Lower the reporting mask for a block of code; scream mode overrides it."""
        previous = self.reporting
        self.reporting = int(mask)
        try:
            yield
        finally:
            self.reporting = previous

    def default_error(self, severity: int, message: str, file: str, line: int, category=None) -> None:
        self._last_error = {"type": severity, "message": message, "file": file, "line": line}
        if self.display_errors and (int(severity) & self.reporting) == int(severity):
            self._original_showwarning(message, category or UserWarning, file, line)

    def record_error(self, severity: int, message: str, file: str | None = None, line: int | None = None) -> None:
        self._last_error = {"type": int(severity), "message": message, "file": file, "line": line}

    def last_error(self) -> dict[str, Any] | None:
        return self._last_error

    # --- request and output ------------------------------------------------
    def environ(self) -> Mapping[str, Any]:
        return {}

    def hostname(self) -> str:
        return socket.gethostname()

    def request_context(self) -> dict[str, Any]:
        return {"argv": " ".join(sys.argv), "pid": os.getpid()}

    def headers_sent(self) -> bool:
        return True

    def set_status(self, code: int) -> None:
        pass

    def set_header(self, name: str, value: str) -> None:
        pass

    def user_agent(self) -> str | None:
        return None

    def query(self, name: str) -> str | None:
        return None

    def is_html_mode(self) -> bool:
        return False

    def is_ajax(self) -> bool:
        return False

    def is_cli(self) -> bool:
        return True

    def connection_aborted(self) -> bool:
        return False

    def write(self, text: str) -> None:
        self.buffers.write(text)

    def write_error(self, text: str) -> None:
        sys.stderr.write(text)

    def run(self, command: str, argument: str) -> None:
        subprocess.Popen(shlex.split(command) + [argument])

    def exit(self, status: int) -> None:
        for stream in (sys.stdout, sys.stderr):
            try:
                stream.flush()
            except Exception:
                pass
        os._exit(status)


class HookInstaller:
    """Installs the debugger into its host; the hooks are registered once."""

    def __init__(self, host: Any) -> None:
        self.host = host
        self.installed = False

    def install(self, debugger: Debugger) -> None:
        debugger.resolve_mode()
        debugger.guardian.mark()
        self._check_log_directory(debugger)
        debugger.reserved.acquire()

        self.host.configure_display(not debugger.production_mode)
        self.host.disable_runtime_logging()
        self.host.set_reporting(ErrorLevel.ALL)

        if self.installed:
            return
        self.host.register_shutdown(debugger.shutdown_handler)
        self.host.set_exception_hook(debugger.exception_handler)
        self.host.set_error_hook(debugger.error_handler)
        self.installed = True
        log.debug("faultline hooks installed (%s mode)", debugger.mode.value)

    def _check_log_directory(self, debugger: Debugger) -> None:
        directory = debugger.log_directory
        if not directory:
            return
        path = Path(directory)
        if not path.is_absolute():
            debugger.log_directory = None
            debugger.exception_handler(RuntimeError("Logging directory must be absolute path."), False)
        elif not path.is_dir():
            debugger.log_directory = None
            debugger.exception_handler(RuntimeError(f"Logging directory '{directory}' is not found."), False)
