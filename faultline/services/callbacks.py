"""Callbacks run after an unrecoverable failure has been dispatched."""

from __future__ import annotations

from typing import Callable, Iterator

from .failures import CapturedFailure

FatalCallback = Callable[[CapturedFailure], object]


class FatalCallbackRegistry:
    def __init__(self) -> None:
        self._callbacks: list[FatalCallback] = []

    def register(self, callback: FatalCallback) -> FatalCallback:
        """Append ``callback``; usable as a decorator."""
        self._callbacks.append(callback)
        return callback

    def __iter__(self) -> Iterator[FatalCallback]:
        return iter(list(self._callbacks))

    def __len__(self) -> int:
        return len(self._callbacks)

    def run(self, failure: CapturedFailure) -> list[BaseException]:
        """Invoke every callback in order; return the failures they raised."""
        errors: list[BaseException] = []
        for callback in self:
            try:
                callback(failure)
            except Exception as exc:
                errors.append(exc)
        return errors
