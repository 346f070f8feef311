"""Flask integration: request-aware host and the ``init_app`` extension."""

from __future__ import annotations

import os
from typing import Any, Mapping

from flask import Flask, Response, g, has_request_context, request
from werkzeug.exceptions import HTTPException

from .cli import register_cli
from .debugger import Debugger, DebuggerConfig
from .services.buffers import BufferGuardian, OutputBuffers
from .services.hooks import ProcessHost

STATE_KEY = "_faultline_state"
AJAX_HEADER = "X-Faultline-Ajax"
BAR_MARKER = "data-faultline-bar"


class RequestHalted(Exception):
    """Raised in place of a process exit while a request is being served."""

    def __init__(self, status: int) -> None:
        super().__init__(f"request halted with status {status}")
        self.status = status


class RequestState:
    """Status, headers and body the debugger produces for one request."""

    def __init__(self) -> None:
        self.status: int | None = None
        self.headers: dict[str, str] = {}
        self.body: list[str] = []
        self.buffers = OutputBuffers(self.body.append)
        self.guardian = BufferGuardian(self.buffers)
        self.guardian.mark()
        self.committed = False

    def response(self) -> Response:
        headers = dict(self.headers)
        mimetype = None if "Content-Type" in headers else "text/html"
        return Response("".join(self.body), status=self.status or 500, headers=headers, mimetype=mimetype)


class FlaskHost(ProcessHost):
    """Process hooks plus request state taken from ``flask.request``."""

    def state(self) -> RequestState | None:
        if not has_request_context():
            return None
        return g.get(STATE_KEY)

    def begin_request(self) -> RequestState:
        state = RequestState()
        setattr(g, STATE_KEY, state)
        return state

    @property
    def buffers(self) -> OutputBuffers:
        state = self.state()
        return state.buffers if state is not None else self._buffers

    @property
    def guardian(self) -> BufferGuardian:
        state = self.state()
        return state.guardian if state is not None else self._guardian

    def environ(self) -> Mapping[str, Any]:
        return request.environ if has_request_context() else {}

    def request_context(self) -> dict[str, Any]:
        if not has_request_context():
            return super().request_context()
        return {
            "method": request.method,
            "url": request.url,
            "endpoint": request.endpoint,
            "remote_addr": request.remote_addr,
            "user_agent": request.headers.get("User-Agent", ""),
        }

    def headers_sent(self) -> bool:
        state = self.state()
        return state is None or state.committed

    def set_status(self, code: int) -> None:
        state = self.state()
        if state is not None:
            state.status = code

    def set_header(self, name: str, value: str) -> None:
        state = self.state()
        if state is not None:
            state.headers[name] = value

    def user_agent(self) -> str | None:
        return request.headers.get("User-Agent") if has_request_context() else None

    def query(self, name: str) -> str | None:
        return request.args.get(name) if has_request_context() else None

    def is_ajax(self) -> bool:
        return has_request_context() and bool(request.headers.get(AJAX_HEADER))

    def is_html_mode(self) -> bool:
        if not has_request_context() or self.is_ajax():
            return False
        if request.headers.get("X-Requested-With"):
            return False
        state = self.state()
        content_type = state.headers.get("Content-Type", "") if state is not None else ""
        if content_type and not content_type.startswith("text/html"):
            return False
        return request.accept_mimetypes.best != "application/json"

    def is_cli(self) -> bool:
        return not has_request_context()

    def exit(self, status: int) -> None:
        if has_request_context():
            raise RequestHalted(status)
        super().exit(status)


def _flag(value: Any) -> bool:
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _setting(app: Flask, name: str, default: Any = None) -> Any:
    value = app.config.get(name)
    if value is None:
        value = os.getenv(name, default)
    return value


def mode_setting(value: Any) -> bool | str | None:
    """``production``/``development`` force the mode; other text is a whitelist."""
    if value is None or isinstance(value, bool):
        return value
    text = str(value).strip()
    lowered = text.lower()
    if lowered in {"", "detect", "auto"}:
        return None
    if lowered in {"production", "prod", "1", "true"}:
        return True
    if lowered in {"development", "dev", "0", "false"}:
        return False
    return text


def strict_setting(value: Any) -> bool | int:
    if isinstance(value, (bool, int)):
        return value
    text = str(value or "").strip()
    if text.lower() in {"", "0", "1", "true", "false", "yes", "no", "on", "off"}:
        return _flag(text)
    if text.isdigit():
        return int(text)
    return _flag(text)


class FaultlineExtension:
    """Wires a :class:`Debugger` into a Flask application."""

    def __init__(self, app: Flask | None = None, debugger: Debugger | None = None) -> None:
        self.debugger = debugger
        self._given = debugger
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        if self.debugger is not None and self.debugger is not self._given:
            self.debugger.teardown()
        if self._given is not None:
            self.debugger = self._given
        else:
            config = DebuggerConfig(
                strict_mode=strict_setting(_setting(app, "FAULTLINE_STRICT_MODE", "0")),
                show_bar=_flag(_setting(app, "FAULTLINE_SHOW_BAR", "1")),
                error_template=_setting(app, "FAULTLINE_ERROR_TEMPLATE"),
            )
            self.debugger = Debugger(FlaskHost(), config)
        self.debugger.enable(
            mode_setting(_setting(app, "FAULTLINE_MODE")),
            _setting(app, "FAULTLINE_LOG_DIRECTORY"),
            _setting(app, "FAULTLINE_EMAIL"),
        )

        app.extensions["faultline"] = self
        app.before_request(self._before_request)
        app.after_request(self._after_request)
        app.register_error_handler(Exception, self._handle_exception)

        register_cli(app)

    @property
    def host(self) -> FlaskHost:
        return self.debugger.host

    def _before_request(self) -> Response | None:
        self.host.begin_request()
        if not self.debugger.reserved.held:
            self.debugger.reserved.acquire()
        self.debugger.dedup.reset()
        asset = self.debugger.dispatch(request.args)
        if asset is not None:
            body, mimetype = asset
            return Response(body, mimetype=mimetype)
        return None

    def _after_request(self, response: Response) -> Response:
        state = self.host.state()
        if state is not None:
            state.committed = True
        debugger = self.debugger
        if debugger.production_mode or not debugger.config.show_bar:
            return response
        if response.mimetype != "text/html" or response.direct_passthrough or response.is_streamed:
            return response
        body = response.get_data(as_text=True)
        if BAR_MARKER in body:
            return response
        bar = debugger.get_bar().render()
        index = body.lower().rfind("</body>")
        body = body[:index] + bar + body[index:] if index != -1 else body + bar
        response.set_data(body)
        return response

    def _handle_exception(self, exc: Exception):
        if isinstance(exc, HTTPException) and (exc.code or 500) < 500:
            return exc
        state = self.host.state() or self.host.begin_request()
        if not isinstance(exc, RequestHalted):
            self.debugger.exception_handler(exc, exit=False)
        return state.response()


faultline = FaultlineExtension()


def init_extensions(app: Flask) -> None:
    faultline.init_app(app)
