"""
=============================================================================
BOUNDED BUFFERS
=============================================================================

Fixed-capacity byte containers used wherever the server accumulates
untrusted input or output: the request header block, the command body
and the captured command output.

=============================================================================
WHY BOUNDED?
=============================================================================

A peer controls how many bytes it sends, and a subprocess controls how
many bytes it prints. Neither may decide how much memory we use:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     BoundedBuffer(capacity=8)                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   append(b"GET ")      [G][E][T][ ][ ][ ][ ][ ]   4 / 8              │
    │   append(b"/a\r\n")    [G][E][T][ ][/][a][\r][\n] 8 / 8  full        │
    │   append(b"x")         CapacityError  (nothing written)              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

A write that does not fit is rejected as a whole with a typed error.
Nothing is silently cut off.

=============================================================================
"""

from typing import Union


class CapacityError(Exception):
    """
    Raised when data does not fit into a bounded container.

    Carries the capacity and the size that was requested so callers
    can log or report the overflow.
    """

    def __init__(self, capacity: int, requested: int):
        super().__init__(
            f"Capacity exceeded: {requested} bytes requested, capacity is {capacity}"
        )
        self.capacity = capacity
        self.requested = requested


class BoundedBuffer:
    """
    A growable byte buffer with a hard upper bound.

    The buffer is owned by a single connection (or a single command run)
    and is never shared.

    Usage:
        buf = BoundedBuffer(16384)
        buf.append(chunk)          # raises CapacityError on overflow
        buf.space                  # bytes still available
        bytes(buf)                 # snapshot of the content
    """

    def __init__(self, capacity: int):
        if capacity < 0:
            raise ValueError(f"capacity must be >= 0, got {capacity}")
        self._capacity = capacity
        self._data = bytearray()

    @property
    def capacity(self) -> int:
        """Maximum number of bytes the buffer can hold."""
        return self._capacity

    @property
    def space(self) -> int:
        """Number of bytes that can still be appended."""
        return self._capacity - len(self._data)

    @property
    def is_full(self) -> bool:
        return self.space == 0

    def append(self, data: Union[bytes, bytearray, memoryview]) -> int:
        """
        Append data to the buffer.

        Args:
            data: Bytes to append.

        Returns:
            The new length of the buffer.

        Raises:
            CapacityError: If the data does not fit. The buffer is
                           left unchanged.
        """
        if len(data) > self.space:
            raise CapacityError(self._capacity, len(self._data) + len(data))
        self._data += data
        return len(self._data)

    def find(self, sub: bytes, start: int = 0) -> int:
        """Return the lowest index of sub, or -1."""
        return self._data.find(sub, start)

    def __len__(self) -> int:
        return len(self._data)

    def __bytes__(self) -> bytes:
        return bytes(self._data)

    def __repr__(self) -> str:
        return f"BoundedBuffer({len(self._data)}/{self._capacity})"
