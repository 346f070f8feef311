import sys
import warnings

from faultline import Debugger, DebuggerConfig
from faultline.services.failures import ErrorLevel
from faultline.services.hooks import Outcome, ProcessHost


def test_hooks_are_installed_once(make_debugger, host):
    debugger = make_debugger(mode=False)
    debugger.enable()

    assert len(host.shutdown_hooks) == 1
    assert len(host.exception_hooks) == 1
    assert len(host.error_hooks) == 1
    assert debugger.is_enabled()


def test_enable_configures_runtime(make_debugger, host):
    make_debugger(mode=True)

    assert host.display_errors is False
    assert host.runtime_logging is False
    assert host.reporting == ErrorLevel.ALL


def test_development_displays_errors(make_debugger, host):
    make_debugger(mode=False)
    assert host.display_errors is True


def test_relative_log_directory_is_rejected(make_debugger, host):
    debugger = make_debugger(mode=False, log_directory="var/log")

    assert debugger.log_directory is None
    assert "RuntimeError: Logging directory must be absolute path." in host.text
    assert host.exits == []
    assert len(host.error_hooks) == 1

    assert debugger.reserved.held
    debugger.exception_handler(RuntimeError("db timeout"))
    assert "RuntimeError: db timeout" in host.text
    assert host.exits == [255]


def test_missing_log_directory_is_rejected(make_debugger, host, tmp_path):
    missing = tmp_path / "nowhere"
    debugger = make_debugger(mode=False, log_directory=str(missing))

    assert debugger.log_directory is None
    assert f"Logging directory '{missing}' is not found." in host.text


def test_mode_is_resolved_once(make_debugger, host):
    debugger = make_debugger(mode=True)
    debugger.enable(False)
    assert debugger.production_mode is True


def test_teardown_releases_hooks(make_debugger, host):
    debugger = make_debugger(mode=False)
    debugger.teardown()

    assert host.shutdown_hooks == []
    assert not debugger.is_enabled()
    assert not debugger.reserved.held


def test_trigger_error_reports_caller_location(make_debugger, host, monkeypatch):
    debugger = make_debugger(mode=False)
    seen = []
    monkeypatch.setattr(debugger.get_console(), "send", lambda message, *args: seen.append(message) or True)

    outcome = debugger.trigger_error("Deprecated call")

    assert outcome is Outcome.DEFAULT
    assert seen[0].file == __file__
    assert host.last_error()["message"] == "Deprecated call"


def test_process_host_installs_and_restores(monkeypatch):
    shown = []

    def original_excepthook(*args):
        pass

    monkeypatch.setattr(sys, "excepthook", original_excepthook)
    monkeypatch.setattr(warnings, "showwarning", lambda *args, **kwargs: shown.append(args))
    original_showwarning = warnings.showwarning

    host = ProcessHost()
    debugger = Debugger(host, DebuggerConfig())
    debugger.enable(False)
    try:
        assert sys.excepthook is not original_excepthook
        assert warnings.showwarning is not original_showwarning

        warnings.showwarning("Undefined variable $x", RuntimeWarning, "app/views.py", 12)

        assert len(shown) == 1
        assert host.last_error()["file"] == "app/views.py"
    finally:
        debugger.teardown()

    assert sys.excepthook is original_excepthook
    assert warnings.showwarning is original_showwarning


def test_quiet_restores_reporting():
    host = ProcessHost()
    host.reporting = int(ErrorLevel.ALL)
    with host.quiet(int(ErrorLevel.ERROR)):
        assert host.reporting == ErrorLevel.ERROR
    assert host.reporting == ErrorLevel.ALL


def test_default_error_stays_silent_without_display(monkeypatch):
    shown = []
    monkeypatch.setattr(warnings, "showwarning", lambda *args, **kwargs: shown.append(args))
    host = ProcessHost()
    host.configure_display(False)

    host.default_error(ErrorLevel.NOTICE, "Undefined index", "a.py", 3)

    assert shown == []
    assert host.last_error() == {"type": ErrorLevel.NOTICE, "message": "Undefined index", "file": "a.py", "line": 3}


def test_quiet_block_is_not_displayed(monkeypatch):
    shown = []
    monkeypatch.setattr(warnings, "showwarning", lambda *args, **kwargs: shown.append(args))
    host = ProcessHost()
    debugger = Debugger(host, DebuggerConfig())
    debugger.enable(False)
    try:
        with host.quiet(0):
            warnings.showwarning("silenced notice", RuntimeWarning, "app/views.py", 20)
        assert shown == []
        assert host.last_error()["message"] == "silenced notice"

        warnings.showwarning("loud notice", RuntimeWarning, "app/views.py", 21)
        assert [args[0] for args in shown] == ["loud notice"]
    finally:
        debugger.teardown()


def test_teardown_restores_warning_filters():
    before = list(warnings.filters)
    debugger = Debugger(ProcessHost(), DebuggerConfig())
    debugger.enable(False)
    try:
        assert warnings.filters[0][0] == "always"
    finally:
        debugger.teardown()
    assert list(warnings.filters) == before
