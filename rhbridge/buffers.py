"""Fixed-capacity frame buffers owned by a bridge instance."""

from __future__ import annotations

from .const import RH_SERIAL_MAX_MESSAGE_LEN
from .errors import PayloadTooLarge


class FrameBuffer:
    """A byte buffer sized to the link's maximum message length.

    The backing ``bytearray`` is allocated once and handed to the transport
    as-is; it is never resized.
    """

    __slots__ = ("_data",)

    def __init__(self, capacity: int = RH_SERIAL_MAX_MESSAGE_LEN) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be a positive integer")
        self._data = bytearray(capacity)

    @property
    def capacity(self) -> int:
        return len(self._data)

    @property
    def raw(self) -> bytearray:
        return self._data

    def load(self, data: bytes | bytearray | memoryview) -> int:
        """Copy *data* to the start of the buffer and return its length."""
        length = len(data)
        if length > len(self._data):
            raise PayloadTooLarge(length, len(self._data))
        self._data[:length] = data
        return length

    def snapshot(self, length: int) -> bytes:
        """Return a copy of the first *length* bytes."""
        length = max(0, min(length, len(self._data)))
        return bytes(self._data[:length])
