"""Diagnostic screen rendered for failures in development mode."""

from __future__ import annotations

import platform
from typing import Any, Callable, Mapping

from markupsafe import Markup

from .failures import CapturedFailure, Frame, error_type_to_string
from .ui import highlight_source, read_assets, render, static_asset

SKIP_PARAM = "_faultline_skip_error"


class BlueScreen:
    def __init__(self, info: list[str | None] | None = None) -> None:
        self.info: list[str | None] = info if info is not None else [f"Python {platform.python_version()}"]
        self.editor: str | None = "editor://open/?file=%file&line=%line"
        self.custom_css_files: list[str] = []
        self.custom_js_files: list[str] = []
        self.panels: list[Callable[[CapturedFailure], Mapping[str, Any] | None]] = []

    def add_panel(self, panel: Callable[[CapturedFailure], Mapping[str, Any] | None]) -> BlueScreen:
        self.panels.append(panel)
        return self

    def editor_url(self, file: str | None, line: int | None) -> str:
        if not self.editor or not file:
            return "#"
        return self.editor.replace("%file", file).replace("%line", str(line or 0))

    def _frame_view(self, frame: Frame, with_source: bool) -> dict[str, Any]:
        return {
            "function": frame.function,
            "arguments": frame.arguments,
            "file": frame.file,
            "line": frame.line,
            "source": highlight_source(frame.file, frame.line, 3) if with_source else Markup(""),
        }

    def _failure_view(self, failure: CapturedFailure) -> dict[str, Any]:
        return {
            "type_name": failure.type_name,
            "message": failure.message,
            "severity": failure.severity,
            "severity_name": error_type_to_string(failure.severity) if failure.severity else "",
            "skippable": failure.skippable,
            "file": failure.file,
            "line": failure.line,
            "editor_url": self.editor_url(failure.file, failure.line),
            "source": highlight_source(failure.file, failure.line),
            "frames": [self._frame_view(frame, i < 5) for i, frame in enumerate(failure.frames)],
        }

    def render(self, failure: CapturedFailure) -> str:
        context = dict(failure.context)
        for panel in self.panels:
            try:
                extra = panel(failure)
            except Exception:
                continue
            if extra:
                context.update(extra)
        return render(
            "faultline/bluescreen.html",
            failure=failure,
            failures=[self._failure_view(item) for item in failure.chain()],
            context=context,
            info=self.info,
            css=Markup(static_asset("faultline.css")),
            custom_css=read_assets(self.custom_css_files),
            custom_js=read_assets(self.custom_js_files),
            skip_url=f"?{SKIP_PARAM}=1",
        )
