from __future__ import annotations

import logging
import threading
import time
from typing import Optional

import numpy as np

logger = logging.getLogger(__name__)


class SampleBuffer:
    """
    Append-only mono sample store shared by one producer and one consumer.

    Storage is a preallocated NumPy array that doubles when full. Already
    written samples are never modified, so readers only need a consistent
    snapshot of the length. Producers call `append()` from the capture
    thread; consumers block in `wait_for_length()` until enough samples exist.
    """

    def __init__(self, sample_rate: int, capacity: int = 1 << 16, dtype: np.dtype | str = np.int16) -> None:
        if int(sample_rate) <= 0:
            raise ValueError("sample_rate must be positive")
        if int(capacity) <= 0:
            raise ValueError("capacity must be positive")

        self._sample_rate = int(sample_rate)
        self._data = np.empty(int(capacity), dtype=dtype)
        self._length = 0
        self._overflows = 0
        self._finished = False
        self._cond = threading.Condition(threading.Lock())

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    @property
    def capacity(self) -> int:
        return self._data.shape[0]

    @property
    def dtype(self) -> np.dtype:
        """Return the data type of the stored samples."""
        return self._data.dtype

    @property
    def overflows(self) -> int:
        return self._overflows

    @property
    def finished(self) -> bool:
        with self._cond:
            return self._finished

    def __len__(self) -> int:
        with self._cond:
            return self._length

    def append(self, block: np.ndarray) -> int:
        """
        Append a block of samples and wake any waiting reader.

        Returns the index at which the block starts.
        """
        arr = np.asarray(block).reshape(-1)
        if arr.size == 0:
            raise ValueError("block must contain at least one sample")
        arr = arr.astype(self._data.dtype, copy=False)

        with self._cond:
            if self._finished:
                raise RuntimeError("cannot append to a finished SampleBuffer")
            start = self._length
            end = start + arr.size
            if end > self._data.shape[0]:
                self._grow(end)
            self._data[start:end] = arr
            self._length = end
            self._cond.notify_all()
            return start

    def read(self, start: int, stop: Optional[int] = None) -> np.ndarray:
        """Return a copy of samples ``[start, stop)``; `stop` defaults to the current length."""
        with self._cond:
            length = self._length
            if stop is None:
                stop = length
            if not 0 <= start <= stop <= length:
                raise IndexError(f"range [{start}, {stop}) outside available samples (0..{length})")
            return self._data[start:stop].copy()

    def wait_for_length(self, length: int, timeout: Optional[float] = None) -> bool:
        """
        Block until at least `length` samples exist, or the buffer is finished.

        Returns True when the requested length is available.
        """
        deadline = None if timeout is None else time.monotonic() + max(0.0, timeout)
        with self._cond:
            while self._length < length and not self._finished:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    break
                self._cond.wait(remaining)
            return self._length >= length

    def note_overflow(self, count: int = 1) -> None:
        """Drivers call this when the backend drops a capture block."""
        self._overflows += max(0, int(count))
        logger.warning("Capture overflow: %d block(s) dropped so far", self._overflows)

    def finish(self) -> None:
        """Mark end of stream; waiting readers wake up and no further appends are accepted."""
        with self._cond:
            self._finished = True
            self._cond.notify_all()

    def wake(self) -> None:
        """Wake waiting readers without changing state (used for cancellation)."""
        with self._cond:
            self._cond.notify_all()

    def _grow(self, required: int) -> None:
        new_capacity = self._data.shape[0]
        while new_capacity < required:
            new_capacity *= 2
        grown = np.empty(new_capacity, dtype=self._data.dtype)
        grown[: self._length] = self._data[: self._length]
        self._data = grown


__all__ = ["SampleBuffer"]
