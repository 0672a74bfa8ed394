"""Bounded output capture.

A capture buffer never fails or blocks its writer: every write reports the
full input length as accepted, while at most ``limit`` bytes are kept.
Once anything is dropped the buffer stays marked as truncated.
"""

from __future__ import annotations

from ..config import DEFAULT_CAPTURE_LIMIT

__all__ = [
    "BoundedBuffer",
    "DEFAULT_CAPTURE_LIMIT",
    "truncation_notice",
]


def _format_limit(limit: int) -> str:
    if limit % (1024 * 1024) == 0:
        return f"{limit // (1024 * 1024)}MB"
    if limit % 1024 == 0:
        return f"{limit // 1024}KB"
    return f"{limit}B"


def truncation_notice(limit: int = DEFAULT_CAPTURE_LIMIT) -> bytes:
    """Notice appended to a captured stream that exceeded ``limit``."""
    return f"\n[OUTPUT TRUNCATED: exceeded {_format_limit(limit)} limit]\n".encode()


class BoundedBuffer:
    """Fixed-capacity byte sink.

    Example:
        buf = BoundedBuffer(limit=4)
        buf.write(b"hello")   # -> 5
        buf.read_all()        # -> b"hell"
        buf.truncated         # -> True
    """

    def __init__(self, limit: int = DEFAULT_CAPTURE_LIMIT) -> None:
        if limit < 0:
            raise ValueError("limit must be non-negative")
        self._limit = limit
        self._data = bytearray()
        self._truncated = False

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def truncated(self) -> bool:
        return self._truncated

    def write(self, data: bytes) -> int:
        """Store as much of ``data`` as fits; always returns ``len(data)``."""
        available = self._limit - len(self._data)
        if len(data) > available:
            if available > 0:
                self._data += data[:available]
            self._truncated = True
        else:
            self._data += data
        return len(data)

    def read_all(self) -> bytes:
        return bytes(self._data)

    def finalize(self) -> bytes:
        """Stored bytes, with the truncation notice appended when truncated."""
        if self._truncated:
            return bytes(self._data) + truncation_notice(self._limit)
        return bytes(self._data)

    def __len__(self) -> int:
        return len(self._data)
