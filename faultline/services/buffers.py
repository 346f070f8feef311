"""Nested output buffering and the guardian that unwinds it on failure."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

log = logging.getLogger(__name__)

PROTECTED_LEVELS = frozenset({"gzip", "zlib output compression"})


@dataclass
class BufferLevel:
    name: str = "default output handler"
    chunk_size: int = 0
    parts: list[str] = field(default_factory=list)


class OutputBuffers:
    """A stack of output buffers on top of a base sink.

    Writes go to the innermost open level, or straight to ``sink`` when no
    level is open. Closing a level either flushes its content one level down
    or discards it.
    """

    def __init__(self, sink: Callable[[str], object]) -> None:
        self._sink = sink
        self._levels: list[BufferLevel] = []

    def start(self, name: str = "default output handler", chunk_size: int = 0) -> BufferLevel:
        level = BufferLevel(name=name, chunk_size=chunk_size)
        self._levels.append(level)
        return level

    def write(self, text: str) -> None:
        if self._levels:
            self._levels[-1].parts.append(text)
        else:
            self._sink(text)

    def depth(self) -> int:
        return len(self._levels)

    def length(self) -> int:
        return len(self.contents()) if self._levels else 0

    def contents(self) -> str:
        if not self._levels:
            return ""
        return "".join(self._levels[-1].parts)

    def top_is_protected(self) -> bool:
        return bool(self._levels) and self._levels[-1].name in PROTECTED_LEVELS

    def top_chunk_size(self) -> int:
        return self._levels[-1].chunk_size if self._levels else 0

    def close_top(self, flush: bool) -> str:
        if not self._levels:
            raise IndexError("no output buffer to close")
        level = self._levels.pop()
        text = "".join(level.parts)
        if flush and text:
            self.write(text)
        return text

    def end_flush(self) -> str:
        return self.close_top(True)

    def end_clean(self) -> str:
        return self.close_top(False)

    def get_clean(self) -> str:
        return self.end_clean()


class BufferGuardian:
    """Remembers the buffer depth at install time and unwinds above it."""

    def __init__(self, buffers: OutputBuffers) -> None:
        self.buffers = buffers
        self._mark: int | None = None

    def mark(self) -> int:
        if self._mark is None:
            self._mark = self.buffers.depth()
        return self._mark

    @property
    def marked(self) -> int:
        return self._mark if self._mark is not None else 0

    def unwind(self, error_occurred: bool) -> int:
        """Close every level above the mark; return how many were closed.

        A level is flushed when no error occurred or when it has a chunk size
        (it cannot be discarded); otherwise its content is dropped.
        """

        closed = 0
        while self.buffers.depth() > self.marked:
            if self.buffers.top_is_protected():
                break
            flush = bool(self.buffers.top_chunk_size()) or not error_occurred
            try:
                self.buffers.close_top(flush)
            except Exception:
                log.debug("output buffer could not be closed", exc_info=True)
                break
            closed += 1
        return closed
