"""The debugger: decides what happens to every captured error, warning and exception."""

from __future__ import annotations

import json
import logging
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping

from .services.bar import Bar, DefaultBarPanel
from .services.bluescreen import SKIP_PARAM, BlueScreen
from .services.buffers import BufferGuardian
from .services.callbacks import FatalCallbackRegistry
from .services.console import ConsoleForwarder
from .services.dedup import DedupCounter
from .services.dumper import DEPTH, LOCATION, TRUNCATE, Dumper
from .services.errors import ErrorException, LogicError
from .services.failures import (
    CapturedFailure,
    ErrorLevel,
    Priority,
    error_type_to_string,
    in_string_conversion,
    is_fatal,
)
from .services.hooks import HookInstaller, Outcome, ProcessHost
from .services.logger import Logger, LogSink
from .services.mode import Mode, resolve
from .services.reserve import ReservedMemory
from .services.ui import render_failure_page

VERSION = "1.0.0"
LOG_HEADER = "X-Faultline-Error-Log"
EXIT_STATUS = 255
ERRORS_PANEL = "faultline:errors"
DUMPS_PANEL = "faultline:dumps"

log = logging.getLogger(__name__)


@dataclass
class DebuggerConfig:
    # True turns every warning into a hard stop in development; an ErrorLevel
    # mask limits that to the matching severities
    strict_mode: bool | int = False
    scream: bool = False
    max_depth: int = 3
    max_length: int = 150
    show_location: bool = False
    log_severity: int = 0
    show_bar: bool = True
    on_fatal_error: FatalCallbackRegistry = field(default_factory=FatalCallbackRegistry)
    browser: str | None = None
    error_template: str | None = None
    editor: str | None = "editor://open/?file=%file&line=%line"
    custom_css_files: list[str] = field(default_factory=list)
    custom_js_files: list[str] = field(default_factory=list)
    context_provider: Callable[[CapturedFailure], Mapping[str, Any]] | None = None

    def strict_for(self, severity: int) -> bool:
        if isinstance(self.strict_mode, bool):
            return self.strict_mode
        return (int(self.strict_mode) & severity) == severity


class Debugger:
    """Process-scoped error capture.

    Create one per process (or per test) and call :meth:`enable`; call
    :meth:`teardown` to give the hooks back to the runtime.
    """

    def __init__(self, host: Any = None, config: DebuggerConfig | None = None) -> None:
        self.host = host if host is not None else ProcessHost()
        self.config = config or DebuggerConfig()
        self.mode: Mode | None = None
        self.whitelist: str | Iterable[str] | None = None
        self.email: str | list[str] | None = None
        self.time = time.time()
        self.reserved = ReservedMemory()
        self.installer = HookInstaller(self.host)
        self.enabled = False
        self._explicit: bool | str | Iterable[str] | None = None
        self._log_directory: str | None = None
        self._logger: LogSink | None = None
        self._bar: Bar | None = None
        self._blue_screen: BlueScreen | None = None
        self._console: ConsoleForwarder | None = None
        self._timers: dict[str | None, float] = {}

    @classmethod
    def create(cls, host: Any = None, config: DebuggerConfig | None = None) -> Debugger:
        return cls(host=host, config=config)

    # --- lifecycle ----------------------------------------------------------
    def enable(
        self,
        mode: bool | str | Iterable[str] | None = None,
        log_directory: str | None = None,
        email: str | list[str] | None = None,
    ) -> None:
        """Enable displaying or logging of errors and exceptions.

        ``mode`` is True for production, False for development, None to
        autodetect, or a whitelist of addresses that count as developers.
        """

        if mode is not None:
            self._explicit = mode
        if email is not None:
            self.email = email
        if log_directory is not None:
            self.log_directory = log_directory

        first = not self.installer.installed
        self.installer.install(self)
        if first:
            self.dispatch()
        self.enabled = True

    def teardown(self) -> None:
        if self.installer.installed:
            self.host.restore(self.shutdown_handler)
        self.installer.installed = False
        self.reserved.release()
        self.enabled = False

    def is_enabled(self) -> bool:
        return self.enabled

    def resolve_mode(self) -> Mode:
        if self.mode is None:
            self.mode = resolve(
                self._explicit,
                self.whitelist,
                environ=self.host.environ(),
                hostname=self.host.hostname(),
            )
        elif isinstance(self._explicit, bool) and Mode.from_flag(self._explicit) is not self.mode:
            log.debug("operating mode already resolved as %s; keeping it", self.mode.value)
        return self.mode

    @property
    def production_mode(self) -> bool:
        return self.resolve_mode().is_production

    @property
    def guardian(self) -> BufferGuardian:
        return self.host.guardian

    @property
    def log_directory(self) -> str | None:
        return self._log_directory

    @log_directory.setter
    def log_directory(self, value: str | None) -> None:
        self._log_directory = value
        if isinstance(self._logger, Logger):
            self._logger.directory = Path(value) if value else None

    @property
    def on_fatal_error(self) -> FatalCallbackRegistry:
        return self.config.on_fatal_error

    @property
    def dedup(self) -> DedupCounter:
        return DedupCounter(self.get_bar().get_panel(ERRORS_PANEL).data)

    def dispatch(self, query: Mapping[str, str] | None = None) -> tuple[str, str] | None:
        """Serve a debug bar asset when the request asks for one."""
        if self.production_mode or self.host.is_cli():
            return None
        if self.host.headers_sent() or self.host.buffers.length():
            raise LogicError("dispatch() called after some output has been sent.")
        return self.get_bar().dispatch_assets(query or {})

    def render_loader(self) -> str:
        if self.production_mode:
            return ""
        return self.get_bar().render_loader()

    # --- hooks --------------------------------------------------------------
    def shutdown_handler(self) -> None:
        """Catch fatal errors left behind at shutdown and render the bar."""
        if not self.reserved.release():
            return

        error = self.host.last_error()
        if error and is_fatal(error.get("type")):
            exc = ErrorException(error["message"], error["type"], error.get("file"), error.get("line"))
            self.exception_handler(exc, False)
        elif (
            self.config.show_bar
            and not self.production_mode
            and (self.host.is_html_mode() or self.host.is_ajax())
        ):
            self.guardian.unwind(error_occurred=False)
            self.host.write(self.get_bar().render())

    def exception_handler(self, exception: BaseException | CapturedFailure, exit: bool = True) -> None:
        """Handle an uncaught exception; ends the process when ``exit`` is set."""
        if not self.reserved.held and exit:
            return
        self.reserved.release()
        host = self.host

        if not host.headers_sent():
            agent = host.user_agent() or ""
            host.set_status(503 if "MSIE " in agent else 500)
            if host.is_html_mode():
                host.set_header("Content-Type", "text/html; charset=UTF-8")

        failure = self.capture(exception)
        self.guardian.unwind(error_occurred=True)

        if self.production_mode:
            _, log_error = self._try_log(failure, Priority.EXCEPTION)
            logged = log_error is None
            if host.is_html_mode():
                host.write(self._failure_page(logged))
            elif host.is_cli():
                host.write_error(
                    "ERROR: application encountered an error and can not continue. "
                    + ("Error was logged.\n" if logged else "Unable to log error.\n")
                )
            else:
                if not host.headers_sent():
                    host.set_header("Content-Type", "application/json")
                host.write(json.dumps({"error": "Server Error", "logged": logged}) + "\n")

        elif not host.connection_aborted() and (host.is_html_mode() or host.is_ajax()):
            host.write(self.get_blue_screen().render(failure))
            if self.config.show_bar:
                host.write(self.get_bar().render())

        else:
            self.console_log(failure)
            summary = failure.summary()
            try:
                reference = self.log(failure, Priority.EXCEPTION)
                if reference and not host.headers_sent():
                    host.set_header(LOG_HEADER, reference)
                host.write(f"{summary}\n" + (f"(stored in {reference})\n" if reference else ""))
                if reference and self.config.browser:
                    host.run(self.config.browser, reference)
            except Exception as exc:
                host.write(f"{summary}\nUnable to log error: {exc}\n")

        for error in self.on_fatal_error.run(failure):
            self._try_log(error, Priority.EXCEPTION)

        if exit:
            host.exit(EXIT_STATUS)

    def error_handler(
        self,
        severity: int,
        message: str,
        file: str | None,
        line: int | None,
        context: Mapping[str, Any] | None = None,
    ) -> Outcome:
        """Handle a warning or error raised by the runtime.

        Raises :class:`ErrorException` for recoverable and user errors.
        """

        host = self.host
        if self.config.scream:
            host.set_reporting(ErrorLevel.ALL)

        severity = int(severity)
        context = dict(context or {})
        if severity in (ErrorLevel.RECOVERABLE_ERROR, ErrorLevel.USER_ERROR):
            if in_string_conversion():
                previous = context.get("e")
                exc = ErrorException(
                    message,
                    severity,
                    file,
                    line,
                    context=context,
                    previous=previous if isinstance(previous, BaseException) else None,
                )
                self.exception_handler(exc)
            raise ErrorException(message, severity, file, line, context=context)

        if (severity & host.reporting) != severity:
            return Outcome.DEFAULT

        if self.production_mode and (severity & self.config.log_severity) == severity:
            exc = ErrorException(message, severity, file, line, context=context)
            self._try_log(exc, Priority.ERROR)
            return Outcome.HANDLED

        if not self.production_mode and not host.query(SKIP_PARAM) and self.config.strict_for(severity):
            exc = ErrorException(message, severity, file, line, context=context, skippable=True)
            self.exception_handler(exc)

        message = f"Python {error_type_to_string(severity)}: {message}"
        if not self.dedup.should_act((file, line, message)):
            return Outcome.HANDLED

        if self.production_mode:
            self._try_log(f"{message} in {file}:{line}", Priority.ERROR)
            return Outcome.HANDLED

        self.console_log(ErrorException(message, severity, file, line))
        return Outcome.HANDLED if host.is_html_mode() or host.is_ajax() else Outcome.DEFAULT

    # --- helpers ------------------------------------------------------------
    def capture(self, exception: BaseException | CapturedFailure) -> CapturedFailure:
        """Normalize ``exception`` and attach the caller's context to it."""
        if isinstance(exception, CapturedFailure):
            failure = exception
        else:
            failure = CapturedFailure.from_exception(exception)
        if failure._context is None:
            context = dict(self.host.request_context())
            if self.config.context_provider is not None:
                try:
                    context.update(self.config.context_provider(failure))
                except Exception:
                    log.debug("context provider failed", exc_info=True)
            failure.attach_context(context)
        return failure

    def _try_log(self, message: Any, priority: Priority) -> tuple[str | None, Exception | None]:
        try:
            return self.log(message, priority), None
        except Exception as exc:
            return None, exc

    def _failure_page(self, logged: bool) -> str:
        if self.config.error_template:
            try:
                return render_failure_page(logged, self.config.error_template)
            except Exception:
                log.debug("custom error template failed", exc_info=True)
        return render_failure_page(logged)

    def trigger_error(self, message: str, level: int = ErrorLevel.USER_NOTICE) -> Outcome:
        """Raise a runtime-style error from the caller's location."""
        caller = sys._getframe(1)
        file, line = caller.f_code.co_filename, caller.f_lineno
        del caller
        if not self.enabled:
            self.host.record_error(level, message, file, line)
            return Outcome.DEFAULT
        outcome = self.error_handler(level, message, file, line, {})
        if outcome is Outcome.DEFAULT:
            self.host.record_error(level, message, file, line)
        return outcome

    # --- services -----------------------------------------------------------
    def get_blue_screen(self) -> BlueScreen:
        if self._blue_screen is None:
            screen = BlueScreen()
            screen.info.append(f"faultline {VERSION}")
            screen.editor = self.config.editor
            screen.custom_css_files = self.config.custom_css_files
            screen.custom_js_files = self.config.custom_js_files
            self._blue_screen = screen
        return self._blue_screen

    def get_bar(self) -> Bar:
        if self._bar is None:
            bar = Bar()
            info = DefaultBarPanel("info")
            info.started = self.time
            bar.add_panel(info, "faultline:info")
            bar.add_panel(DefaultBarPanel("errors"), ERRORS_PANEL)
            bar.custom_css_files = self.config.custom_css_files
            bar.custom_js_files = self.config.custom_js_files
            self._bar = bar
        return self._bar

    def set_logger(self, logger: LogSink) -> None:
        self._logger = logger

    def get_logger(self) -> LogSink:
        if self._logger is None:
            self._logger = Logger(self.log_directory, self.email, self.get_blue_screen())
        return self._logger

    def get_console(self) -> ConsoleForwarder:
        if self._console is None:
            self._console = ConsoleForwarder()
        return self._console

    # --- tools --------------------------------------------------------------
    def _dump_options(self, **extra: Any) -> dict[str, Any]:
        options = {DEPTH: self.config.max_depth, TRUNCATE: self.config.max_length}
        options.update(extra)
        return options

    def dump(self, value: Any, return_: bool = False) -> Any:
        """Print a readable dump of ``value`` (development only) and return it.

        With ``return_`` the dump text is returned instead, in any mode.
        """

        if return_:
            return Dumper.to_text(value, self._dump_options())
        if not self.production_mode:
            options = self._dump_options(**{LOCATION: self.config.show_location})
            if self.host.is_html_mode():
                self.host.write(str(Dumper.to_html(value, options)))
            else:
                self.host.write(Dumper.to_text(value, options))
        return value

    def bar_dump(self, value: Any, title: str | None = None, options: Mapping[str, Any] | None = None) -> Any:
        if not self.production_mode:
            bar = self.get_bar()
            panel = bar.get_panel(DUMPS_PANEL)
            if panel is None:
                panel = DefaultBarPanel("dumps")
                bar.add_panel(panel, DUMPS_PANEL)
            merged = self._dump_options(**{LOCATION: True})
            merged.update(options or {})
            panel.data.append({"title": title, "dump": Dumper.to_html(value, merged)})
        return value

    def timer(self, name: str | None = None) -> float:
        """Start or lap a stopwatch; return seconds since the previous call."""
        now = time.perf_counter()
        delta = now - self._timers[name] if name in self._timers else 0.0
        self._timers[name] = now
        return delta

    def log(self, message: Any, priority: Priority = Priority.INFO) -> str | None:
        return self.get_logger().log(message, priority)

    def console_log(self, message: Any) -> bool | None:
        if not self.production_mode:
            return self.get_console().send(message)
        return None
