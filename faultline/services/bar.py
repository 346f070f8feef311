"""Debug bar shown at the bottom of HTML pages in development mode."""

from __future__ import annotations

import platform
import time
from typing import Any, Mapping, Protocol

from markupsafe import Markup, escape

from .ui import read_assets, render, static_asset

ASSET_PARAM = "_faultline_bar"


class BarPanel(Protocol):
    def get_tab(self) -> str | Markup:
        ...

    def get_panel(self) -> str | Markup:
        ...


class DefaultBarPanel:
    """Built-in panels: ``info``, ``errors`` and ``dumps``."""

    def __init__(self, id: str) -> None:
        self.id = id
        self.data: Any = [] if id == "dumps" else {}
        self.started = time.time()

    def get_tab(self) -> Markup:
        if self.id == "errors":
            total = sum(self.data.values())
            if not total:
                return Markup("")
            label = "error" if total == 1 else "errors"
            return Markup("{} {}").format(total, label)
        if self.id == "dumps":
            return Markup("dumps ({})").format(len(self.data)) if self.data else Markup("")
        elapsed = (time.time() - self.started) * 1000
        return Markup("{:.1f} ms").format(elapsed)

    def get_panel(self) -> Markup:
        if self.id == "errors":
            rows = [
                Markup("<tr><td>{}&times;</td><td>{}</td></tr>").format(count, _key_text(key))
                for key, count in self.data.items()
            ]
            return Markup("<h1>Errors</h1><table>{}</table>").format(Markup("").join(rows))
        if self.id == "dumps":
            items = [
                Markup("<h2>{}</h2>{}").format(item.get("title") or "", item["dump"])
                for item in self.data
            ]
            return Markup("<h1>Dumps</h1>{}").format(Markup("").join(items))
        info = {"Python": platform.python_version(), **(self.data or {})}
        rows = [Markup("<tr><th>{}</th><td>{}</td></tr>").format(k, v) for k, v in info.items()]
        return Markup("<h1>System info</h1><table>{}</table>").format(Markup("").join(rows))


def _key_text(key: Any) -> str:
    if isinstance(key, tuple) and len(key) == 3:
        file, line, message = key
        return f"{message} in {file}:{line}"
    return str(key)


class Bar:
    def __init__(self) -> None:
        self.panels: dict[str, BarPanel] = {}
        self.custom_css_files: list[str] = []
        self.custom_js_files: list[str] = []

    def add_panel(self, panel: BarPanel, id: str | None = None) -> Bar:
        if id is None:
            id = f"{type(panel).__name__}-{len(self.panels)}"
        if id in self.panels:
            raise ValueError(f"Panel '{id}' is already registered.")
        self.panels[id] = panel
        return self

    def get_panel(self, id: str) -> BarPanel | None:
        return self.panels.get(id)

    def _panel_views(self) -> list[dict[str, Any]]:
        views = []
        for id, panel in self.panels.items():
            try:
                tab = panel.get_tab()
                body = panel.get_panel() if tab else ""
            except Exception as exc:
                tab = Markup("error in {}").format(id)
                body = escape(f"{type(exc).__name__}: {exc}")
            if not tab:
                continue
            views.append({"id": id.replace(":", "-"), "tab": tab, "body": body})
        return views

    def render(self) -> str:
        return render(
            "faultline/bar.html",
            panels=self._panel_views(),
            css=Markup(static_asset("faultline.css")),
            js=Markup(static_asset("faultline.js")),
            custom_css=read_assets(self.custom_css_files),
            custom_js=read_assets(self.custom_js_files),
        )

    def render_loader(self) -> str:
        return f'<script src="?{ASSET_PARAM}=js" async></script>'

    def dispatch_assets(self, query: Mapping[str, str]) -> tuple[str, str] | None:
        """Return ``(body, mimetype)`` when the query asks for a bar asset."""
        asset = query.get(ASSET_PARAM)
        if asset == "css":
            return static_asset("faultline.css"), "text/css"
        if asset == "js":
            return static_asset("faultline.js"), "application/javascript"
        return None

