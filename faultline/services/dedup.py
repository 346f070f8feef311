"""Counter that lets only the first occurrence of a warning through."""

from __future__ import annotations

from typing import Hashable, MutableMapping

DedupKey = tuple[str | None, int | None, str]


class DedupCounter:
    """Counts occurrences per key in a mapping it may share with a bar panel."""

    def __init__(self, store: MutableMapping[Hashable, int] | None = None) -> None:
        self.store: MutableMapping[Hashable, int] = store if store is not None else {}

    def should_act(self, key: Hashable) -> bool:
        count = self.store.get(key, 0)
        self.store[key] = count + 1
        return count == 0

    def count(self, key: Hashable) -> int:
        return self.store.get(key, 0)

    def reset(self) -> None:
        self.store.clear()

    def __len__(self) -> int:
        return len(self.store)
