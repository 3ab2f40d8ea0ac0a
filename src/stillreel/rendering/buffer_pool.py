"""Pool of reusable fixed-size frame buffers."""

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from enum import StrEnum

import numpy as np

from stillreel.models.errors import PoolExhausted

logger = logging.getLogger(__name__)

BYTES_PER_PIXEL = 4


class BufferState(StrEnum):
    """Ownership state of a pooled frame buffer."""

    FREE = "free"
    FILLING = "filling"
    ENCODING = "encoding"


class FrameBuffer:
    """One BGRA frame of ``height x width`` pixels owned by a pool."""

    def __init__(self, index: int, width: int, height: int):
        self.index = index
        self.width = width
        self.height = height
        self.pixels = np.zeros((height, width, BYTES_PER_PIXEL), dtype=np.uint8)
        self.state = BufferState.FREE

    @property
    def size(self) -> tuple[int, int]:
        return (self.width, self.height)

    @property
    def nbytes(self) -> int:
        return self.pixels.nbytes

    def __repr__(self) -> str:
        return f"FrameBuffer(index={self.index}, size={self.width}x{self.height}, state={self.state})"


class FrameBufferPool:
    """Fixed-capacity free list of frame buffers.

    Buffers are acquired on the producer thread and released on the encoder
    writer thread, so all state changes happen under a lock.
    """

    def __init__(self, width: int, height: int, capacity: int):
        if width <= 0 or height <= 0:
            raise ValueError(f"Buffer size must be positive, got {width}x{height}")
        if capacity <= 0:
            raise ValueError(f"Pool capacity must be positive, got {capacity}")
        self.width = width
        self.height = height
        self.capacity = capacity
        self._buffers = [FrameBuffer(i, width, height) for i in range(capacity)]
        self._free = list(reversed(self._buffers))
        self._lock = threading.Lock()
        self._closed = False

    @property
    def size(self) -> tuple[int, int]:
        return (self.width, self.height)

    @property
    def available(self) -> int:
        with self._lock:
            return len(self._free)

    @property
    def in_use(self) -> int:
        with self._lock:
            return self.capacity - len(self._free)

    @property
    def closed(self) -> bool:
        return self._closed

    def acquire(self) -> FrameBuffer:
        """Take a free buffer and mark it as being filled."""
        with self._lock:
            if self._closed:
                raise PoolExhausted("Buffer pool is closed", details={"capacity": self.capacity})
            if not self._free:
                raise PoolExhausted(
                    f"All {self.capacity} frame buffers are in use",
                    details={"capacity": self.capacity},
                )
            buffer = self._free.pop()
            buffer.state = BufferState.FILLING
            return buffer

    def mark_encoding(self, buffer: FrameBuffer) -> None:
        """Record that ``buffer`` has been handed to the encoder."""
        with self._lock:
            self._check_owned(buffer)
            if buffer.state != BufferState.FILLING:
                raise ValueError(f"{buffer!r} is not being filled")
            buffer.state = BufferState.ENCODING

    def release(self, buffer: FrameBuffer) -> None:
        """Return ``buffer`` to the free list."""
        with self._lock:
            self._check_owned(buffer)
            if buffer.state == BufferState.FREE:
                raise ValueError(f"{buffer!r} was released twice")
            buffer.state = BufferState.FREE
            self._free.append(buffer)

    @contextmanager
    def borrow(self) -> Iterator[FrameBuffer]:
        """Acquire a buffer that is released again if the block raises."""
        buffer = self.acquire()
        try:
            yield buffer
        except BaseException:
            self.release(buffer)
            raise

    def close(self) -> None:
        """Refuse further acquisitions. Buffers already out may still be released."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            outstanding = self.capacity - len(self._free)
        logger.debug("Closed buffer pool (%d buffers outstanding)", outstanding)

    def _check_owned(self, buffer: FrameBuffer) -> None:
        if buffer.index >= len(self._buffers) or self._buffers[buffer.index] is not buffer:
            raise ValueError(f"{buffer!r} does not belong to this pool")
