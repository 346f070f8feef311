"""Bounded pretty-printing of arbitrary values."""

from __future__ import annotations

import inspect
from pathlib import Path
from typing import Any, Mapping

from markupsafe import Markup, escape

DEPTH = "depth"
TRUNCATE = "truncate"
LOCATION = "location"

DEFAULTS = {DEPTH: 3, TRUNCATE: 150, LOCATION: False}

_PACKAGE_ROOT = str(Path(__file__).resolve().parents[1])


def _options(options: Mapping[str, Any] | None) -> dict[str, Any]:
    merged = dict(DEFAULTS)
    merged.update(options or {})
    return merged


def _caller_location() -> str | None:
    for frame_info in inspect.stack(0)[1:]:
        if not str(Path(frame_info.filename).resolve()).startswith(_PACKAGE_ROOT):
            return f"{frame_info.filename}:{frame_info.lineno}"
    return None


def _render(value: Any, depth: int, max_depth: int, truncate: int, seen: set[int]) -> str:
    indent = "   " * depth
    if isinstance(value, str):
        text = value if len(value) <= truncate else value[:truncate] + " ..."
        return f"{text!r} ({len(value)})"
    if value is None or isinstance(value, (bool, int, float, complex, bytes)):
        return repr(value)

    if id(value) in seen:
        return f"{type(value).__name__} *RECURSION*"

    if isinstance(value, Mapping):
        items = [(repr(k), v) for k, v in value.items()]
        opener = f"dict ({len(items)})"
    elif isinstance(value, (list, tuple, set, frozenset)):
        items = [(str(i), v) for i, v in enumerate(value)]
        opener = f"{type(value).__name__} ({len(items)})"
    elif hasattr(value, "__dict__"):
        items = [(k, v) for k, v in vars(value).items()]
        opener = f"{type(value).__module__}.{type(value).__qualname__}"
    else:
        return repr(value)

    if not items:
        return opener
    if depth >= max_depth:
        return f"{opener} ..."

    seen.add(id(value))
    try:
        lines = [opener]
        for key, item in items:
            rendered = _render(item, depth + 1, max_depth, truncate, seen)
            lines.append(f"{indent}   {key} => {rendered}")
        return "\n".join(lines)
    finally:
        seen.discard(id(value))


class Dumper:
    @staticmethod
    def to_text(value: Any, options: Mapping[str, Any] | None = None) -> str:
        opts = _options(options)
        text = _render(value, 0, int(opts[DEPTH]), int(opts[TRUNCATE]), set())
        if opts[LOCATION]:
            location = _caller_location()
            if location:
                text += f"\nin {location}"
        return text + "\n"

    @staticmethod
    def to_html(value: Any, options: Mapping[str, Any] | None = None) -> Markup:
        opts = _options(options)
        body = escape(_render(value, 0, int(opts[DEPTH]), int(opts[TRUNCATE]), set()))
        title = ""
        if opts[LOCATION]:
            location = _caller_location()
            if location:
                title = Markup(' title="{}"').format(location)
        return Markup('<pre class="faultline-dump"{}>{}</pre>\n').format(title, body)
