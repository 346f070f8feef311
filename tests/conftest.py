import pathlib
import sys
import warnings

import pytest
from flask import Flask

root = pathlib.Path(__file__).resolve().parents[1]
if str(root) not in sys.path:
    sys.path.insert(0, str(root))

from faultline import Debugger, DebuggerConfig, FaultlineExtension
from faultline.services.buffers import BufferGuardian, OutputBuffers
from faultline.services.hooks import ProcessHost


class FakeHost(ProcessHost):
    """Host that records everything instead of touching the interpreter."""

    def __init__(self, html=False, ajax=False, cli=True, user_agent=None, environ=None, hostname="build-box"):
        super().__init__()
        self.html = html
        self.ajax = ajax
        self.cli = cli
        self.agent = user_agent
        self.env = environ or {}
        self.host_name = hostname
        self.sent = False
        self.args = {}
        self.output = []
        self.errors = []
        self.status = None
        self.headers = {}
        self.exits = []
        self.commands = []
        self.shutdown_hooks = []
        self.exception_hooks = []
        self.error_hooks = []
        self.runtime_logging = True
        self._buffers = OutputBuffers(self.output.append)
        self._guardian = BufferGuardian(self._buffers)

    @property
    def text(self):
        return "".join(self.output)

    @property
    def exit_status(self):
        return self.exits[-1] if self.exits else None

    def register_shutdown(self, handler):
        self.shutdown_hooks.append(handler)

    def set_exception_hook(self, handler):
        self.exception_hooks.append(handler)

    def set_error_hook(self, handler):
        self.error_hooks.append(handler)

    def restore(self, shutdown_handler=None):
        self.shutdown_hooks.clear()
        self.exception_hooks.clear()
        self.error_hooks.clear()

    def set_reporting(self, mask):
        self.reporting = int(mask)

    def disable_runtime_logging(self):
        self.runtime_logging = False

    def default_error(self, severity, message, file, line, category=None):
        self.record_error(severity, message, file, line)

    def environ(self):
        return self.env

    def hostname(self):
        return self.host_name

    def request_context(self):
        return {"url": "http://example.test/orders"}

    def headers_sent(self):
        return self.sent

    def set_status(self, code):
        self.status = code

    def set_header(self, name, value):
        self.headers[name] = value

    def user_agent(self):
        return self.agent

    def query(self, name):
        return self.args.get(name)

    def is_html_mode(self):
        return self.html

    def is_ajax(self):
        return self.ajax

    def is_cli(self):
        return self.cli

    def write_error(self, text):
        self.errors.append(text)

    def run(self, command, argument):
        self.commands.append((command, argument))

    def exit(self, status):
        self.exits.append(status)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (
        "FAULTLINE_MODE",
        "FAULTLINE_LOG_DIRECTORY",
        "FAULTLINE_EMAIL",
        "FAULTLINE_STRICT_MODE",
        "FAULTLINE_SHOW_BAR",
        "FAULTLINE_ERROR_TEMPLATE",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def host():
    return FakeHost()


@pytest.fixture
def log_dir(tmp_path):
    path = tmp_path / "log"
    path.mkdir()
    return path


@pytest.fixture
def make_debugger(host):
    created = []

    def _make(mode=None, log_directory=None, email=None, **config):
        debugger = Debugger(host, DebuggerConfig(**config))
        debugger.enable(mode, log_directory, email)
        created.append(debugger)
        return debugger

    yield _make
    for debugger in created:
        debugger.teardown()


def _build_app(config):
    app = Flask(__name__)
    app.config.update(TESTING=True, **config)

    @app.route("/")
    def index():
        return "<html><body><h1>Orders</h1></body></html>"

    @app.route("/boom")
    def boom():
        raise RuntimeError("db timeout")

    @app.route("/warn")
    def warn():
        warnings.warn("Undefined variable $x", RuntimeWarning)
        return "<html><body>ok</body></html>"

    @app.route("/missing")
    def missing():
        from flask import abort

        abort(404)

    return app


@pytest.fixture
def make_app(log_dir):
    extensions = []

    def _make(**config):
        config.setdefault("FAULTLINE_LOG_DIRECTORY", str(log_dir))
        app = _build_app(config)
        extensions.append(FaultlineExtension(app))
        return app

    yield _make
    for extension in extensions:
        extension.debugger.teardown()


@pytest.fixture
def app(make_app):
    return make_app(FAULTLINE_MODE="development")


@pytest.fixture
def client(app):
    return app.test_client()
