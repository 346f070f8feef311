"""Template and asset helpers shared by the renderers."""

from __future__ import annotations

import linecache
from functools import lru_cache
from pathlib import Path

from jinja2 import Environment, PackageLoader, select_autoescape
from markupsafe import Markup, escape

STATIC_ROOT = Path(__file__).resolve().parents[1] / "static" / "faultline"


@lru_cache(maxsize=1)
def jinja_env() -> Environment:
    env = Environment(
        loader=PackageLoader("faultline", "templates"),
        autoescape=select_autoescape(["html"]),
    )
    return env


def render(template_name: str, **ctx) -> str:
    return jinja_env().get_template(template_name).render(**ctx)


def static_asset(name: str) -> str:
    return (STATIC_ROOT / name).read_text(encoding="utf-8")


def read_assets(paths) -> list[Markup]:
    """Load custom CSS/JS files; unreadable files are skipped."""
    assets = []
    for path in paths or ():
        try:
            assets.append(Markup(Path(path).read_text(encoding="utf-8")))
        except OSError:
            continue
    return assets


def highlight_source(file: str | None, line: int | None, lines: int = 8) -> Markup:
    """Return the source around ``line`` as a ``<pre>`` block, the line marked."""
    if not file or not line:
        return Markup("")
    start = max(1, line - lines)
    rows = []
    for number in range(start, line + lines + 1):
        text = linecache.getline(file, number)
        if not text and number > line:
            break
        row = escape(f"{number:>4}: {text.rstrip()}")
        if number == line:
            row = Markup('<span class="faultline-highlight">{}</span>').format(row)
            rows.append(row)
        else:
            rows.append(row + Markup("\n"))
    if not rows:
        return Markup("")
    return Markup("<pre class=\"faultline-source\">{}</pre>").format(Markup("").join(rows))


def render_failure_page(logged: bool, template: str | None = None) -> str:
    """Generic production error page; ``template`` overrides the built-in one."""
    if template:
        source = Path(template).read_text(encoding="utf-8")
        return jinja_env().from_string(source).render(logged=logged)
    return render("faultline/error500.html", logged=logged)
