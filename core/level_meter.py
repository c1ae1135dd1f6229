from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from shared.sample_buffer import SampleBuffer

from .demodulator import peak_level

logger = logging.getLogger(__name__)


class LevelMeter:
    """
    Report the running maximum magnitude of a SampleBuffer.

    Used to pick a silence threshold: swipe a card while the meter runs and
    set the threshold comfortably below the reported level.
    """

    def __init__(
        self,
        buffer: SampleBuffer,
        on_level: Optional[Callable[[int], None]] = None,
        *,
        start_index: int = 0,
    ) -> None:
        self._buffer = buffer
        self._on_level = on_level
        self._position = int(start_index)
        self.max_level = 0

    def run(self, timeout: Optional[float] = None, cancel: Optional[threading.Event] = None) -> int:
        """Scan until `timeout`, `cancel`, or end of stream; return the maximum seen."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            available = len(self._buffer)
            if self._position < available:
                level = peak_level(self._buffer.read(self._position, available))
                self._position = available
                if level > self.max_level:
                    self.max_level = level
                    logger.debug("New maximum level %d", level)
                    if self._on_level is not None:
                        self._on_level(level)
                continue
            if self._buffer.finished or (cancel is not None and cancel.is_set()):
                break
            remaining = None if deadline is None else deadline - time.monotonic()
            if remaining is not None and remaining <= 0:
                break
            wait = remaining
            if cancel is not None:
                wait = 0.05 if wait is None else min(wait, 0.05)
            self._buffer.wait_for_length(self._position + 1, wait)
        return self.max_level


__all__ = ["LevelMeter"]
