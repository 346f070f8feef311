"""Memory held back so the failure path has room to run after an out-of-memory error."""

from __future__ import annotations

RESERVED_BYTES = 30000


class ReservedMemory:
    def __init__(self, size: int = RESERVED_BYTES) -> None:
        self.size = size
        self._block: bytearray | None = None

    def acquire(self) -> None:
        self._block = bytearray(b"t" * self.size)

    @property
    def held(self) -> bool:
        return self._block is not None

    def release(self) -> bool:
        """Drop the reservation; True only for the call that actually freed it."""
        if self._block is None:
            return False
        self._block = None
        return True
