import pytest

from faultline.services.bar import Bar, DefaultBarPanel
from faultline.services.bluescreen import BlueScreen
from faultline.services.callbacks import FatalCallbackRegistry
from faultline.services.dumper import DEPTH, TRUNCATE, Dumper
from faultline.services.failures import CapturedFailure
from faultline.services.reserve import ReservedMemory
from faultline.services.ui import render_failure_page


class Order:
    def __init__(self):
        self.id = 7
        self.lines = [{"sku": "A-1", "qty": 2}]


def test_dumper_limits_depth():
    text = Dumper.to_text({"a": {"b": {"c": {"d": 1}}}}, {DEPTH: 2})
    assert "dict (1) ..." in text
    assert "'d'" not in text


def test_dumper_truncates_strings():
    text = Dumper.to_text("x" * 20, {TRUNCATE: 5})
    assert text == "'xxxxx ...' (20)\n"


def test_dumper_detects_recursion():
    data = []
    data.append(data)
    assert "*RECURSION*" in Dumper.to_text(data)


def test_dumper_renders_objects():
    text = Dumper.to_text(Order())
    assert "Order" in text
    assert "id => 7" in text


def test_dumper_html_escapes():
    html = str(Dumper.to_html("<script>"))
    assert html.startswith('<pre class="faultline-dump">')
    assert "&lt;script&gt;" in html


def test_dump_writes_in_development(make_debugger, host):
    debugger = make_debugger(mode=False)
    order = Order()
    assert debugger.dump(order) is order
    assert "id => 7" in host.text


def test_dump_is_silent_in_production(make_debugger, host):
    debugger = make_debugger(mode=True)
    debugger.dump({"a": 1})
    assert host.text == ""
    assert debugger.dump({"a": 1}, return_=True) == "dict (1)\n   'a' => 1\n"


def test_bar_dump_adds_panel(make_debugger, host):
    debugger = make_debugger(mode=False)
    debugger.bar_dump({"sku": "A-1"}, "cart")
    panel = debugger.get_bar().get_panel("faultline:dumps")
    assert panel.data[0]["title"] == "cart"
    assert "cart" in debugger.get_bar().render()


def test_timer_laps(make_debugger, monkeypatch):
    debugger = make_debugger(mode=False)
    ticks = iter([10.0, 12.5, 13.0])
    monkeypatch.setattr("faultline.debugger.time.perf_counter", lambda: next(ticks))

    assert debugger.timer("import") == 0.0
    assert debugger.timer("import") == 2.5
    assert debugger.timer("import") == 0.5


def test_bar_rejects_duplicate_panel():
    bar = Bar()
    bar.add_panel(DefaultBarPanel("errors"), "errors")
    with pytest.raises(ValueError):
        bar.add_panel(DefaultBarPanel("errors"), "errors")


def test_bar_isolates_broken_panel():
    class Broken:
        def get_tab(self):
            raise RuntimeError("no data")

        def get_panel(self):
            return ""

    bar = Bar()
    bar.add_panel(Broken(), "broken")
    html = bar.render()
    assert "error in broken" in html
    assert "RuntimeError: no data" in html


def test_bar_assets():
    bar = Bar()
    assert bar.dispatch_assets({"_faultline_bar": "css"})[1] == "text/css"
    assert bar.dispatch_assets({}) is None


def test_bluescreen_shows_chain_and_panels():
    try:
        try:
            raise KeyError("currency")
        except KeyError as exc:
            raise ValueError("cannot price order") from exc
    except ValueError as exc:
        failure = CapturedFailure.from_exception(exc)

    screen = BlueScreen(info=["shop 2.1"])
    screen.add_panel(lambda failure: {"tenant": "acme"})
    failure.attach_context({"url": "http://example.test/cart"})
    html = screen.render(failure)

    assert "cannot price order" in html
    assert "Caused by KeyError" in html
    assert "acme" in html
    assert "http://example.test/cart" in html
    assert "shop 2.1" in html
    assert "skip error" not in html


def test_editor_url():
    screen = BlueScreen()
    assert screen.editor_url("/srv/app.py", 12) == "editor://open/?file=/srv/app.py&line=12"
    screen.editor = None
    assert screen.editor_url("/srv/app.py", 12) == "#"


def test_failure_page_custom_template(tmp_path):
    template = tmp_path / "500.html"
    template.write_text("<h1>Oops</h1>{% if not logged %}untracked{% endif %}", encoding="utf-8")

    assert render_failure_page(False, str(template)) == "<h1>Oops</h1>untracked"
    assert "Tracking is unavailable." in render_failure_page(False)


def test_production_uses_custom_template(make_debugger, host, tmp_path, log_dir):
    template = tmp_path / "500.html"
    template.write_text("<h1>Oops</h1>", encoding="utf-8")
    host.html = True
    debugger = make_debugger(mode=True, log_directory=str(log_dir), error_template=str(template))

    debugger.exception_handler(RuntimeError("x"), exit=False)

    assert host.text == "<h1>Oops</h1>"


def test_reserved_memory_releases_once():
    reserve = ReservedMemory()
    reserve.acquire()
    assert reserve.held
    assert reserve.release() is True
    assert reserve.release() is False


def test_callback_registry_collects_errors():
    registry = FatalCallbackRegistry()
    calls = []

    @registry.register
    def broken(failure):
        raise RuntimeError("broken")

    registry.register(calls.append)
    errors = registry.run("failure")

    assert [str(error) for error in errors] == ["broken"]
    assert calls == ["failure"]
    assert len(registry) == 2


def test_render_loader_only_in_development(make_debugger):
    assert make_debugger(mode=False).render_loader() == '<script src="?_faultline_bar=js" async></script>'


def test_custom_logger_receives_entries(make_debugger):
    class Memory:
        def __init__(self):
            self.entries = []

        def log(self, message, priority="info"):
            self.entries.append((message, priority))
            return None

    debugger = make_debugger(mode=True)
    sink = Memory()
    debugger.set_logger(sink)
    debugger.log("cache warmed")

    assert debugger.get_logger() is sink
    assert sink.entries[0][0] == "cache warmed"


def test_create_debugger_enables(host):
    from faultline import PRODUCTION, create_debugger

    debugger = create_debugger(PRODUCTION, host=host, max_depth=5)
    try:
        assert debugger.is_enabled()
        assert debugger.config.max_depth == 5
        assert len(host.exception_hooks) == 1
    finally:
        debugger.teardown()
