"""
Silence-bounded swipe segmentation over a growing SampleBuffer.

The segmenter walks the buffer with a small state machine:

    WAITING --loud--> ACTIVE --quiet--> CONFIRMING --quiet span--> CLOSED
                        ^                    |
                        +------loud----------+

A sample is loud when its magnitude exceeds the threshold. Short quiet gaps
inside a swipe do not end it: the swipe only closes after a full
`silence_interval` of quiet samples, and the window ends at the first sample
of that quiet run.
"""

from __future__ import annotations

import enum
import logging
import threading
import time
from typing import Optional

import numpy as np

from shared.errors import CaptureTimeout, ConfigurationError, NoSwipeError
from shared.models import SampleWindow
from shared.sample_buffer import SampleBuffer

logger = logging.getLogger(__name__)

# Upper bound for a single condition wait while a cancel token is armed.
_CANCEL_CHECK_S = 0.05


class SegmenterState(enum.Enum):
    WAITING = "waiting"
    ACTIVE = "active"
    CONFIRMING = "confirming"
    CLOSED = "closed"


class Segmenter:
    """Locate one swipe window at a time in `buffer`."""

    def __init__(
        self,
        buffer: SampleBuffer,
        threshold: int,
        silence_interval: int,
        *,
        start_index: int = 0,
        scan_block: int = 8192,
    ) -> None:
        if threshold <= 0:
            raise ConfigurationError(f"silence threshold must be > 0, got {threshold}")
        if silence_interval <= 0:
            raise ConfigurationError("silence_interval must be positive")
        if scan_block <= 0:
            raise ValueError("scan_block must be positive")
        self._buffer = buffer
        self._threshold = int(threshold)
        self._silence_interval = int(silence_interval)
        self._scan_block = int(scan_block)
        self._position = int(start_index)
        self.state = SegmenterState.WAITING

    @property
    def threshold(self) -> int:
        return self._threshold

    @property
    def silence_interval(self) -> int:
        return self._silence_interval

    @property
    def position(self) -> int:
        """Index of the next sample the segmenter will examine."""
        return self._position

    def find_window(
        self,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> SampleWindow:
        """
        Block until one swipe has been closed and return its window.

        Raises CaptureTimeout when `timeout` expires or `cancel` is set, and
        NoSwipeError when a finished buffer never exceeded the threshold.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        state = SegmenterState.WAITING
        self.state = state
        pos = self._position
        start = candidate_end = span_end = 0

        while state is not SegmenterState.CLOSED:
            available = len(self._buffer)
            if pos >= available:
                if self._buffer.finished:
                    return self._close_at_end_of_stream(state, start, candidate_end, available)
                self._wait(pos + 1, deadline, cancel)
                continue

            stop = min(available, pos + self._scan_block)
            if state is SegmenterState.CONFIRMING:
                stop = min(stop, span_end)
            loud = self._loud(pos, stop)

            if state is SegmenterState.WAITING:
                hits = np.flatnonzero(loud)
                if hits.size == 0:
                    pos = stop
                    continue
                start = pos + int(hits[0])
                pos = start + 1
                state = SegmenterState.ACTIVE
                logger.debug("Swipe started at sample %d", start)

            elif state is SegmenterState.ACTIVE:
                quiet = np.flatnonzero(~loud)
                if quiet.size == 0:
                    pos = stop
                    continue
                candidate_end = pos + int(quiet[0])
                span_end = candidate_end + self._silence_interval
                pos = candidate_end
                state = SegmenterState.CONFIRMING

            else:
                hits = np.flatnonzero(loud)
                if hits.size:
                    # Gap inside the swipe; keep going.
                    pos = pos + int(hits[0]) + 1
                    state = SegmenterState.ACTIVE
                else:
                    pos = stop
                    if pos >= span_end:
                        state = SegmenterState.CLOSED

            self.state = state

        self.state = SegmenterState.CLOSED
        self._position = pos
        window = SampleWindow(start, candidate_end)
        logger.debug("Swipe closed: [%d, %d) (%d samples)", window.start, window.end, window.length)
        return window

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _loud(self, start: int, stop: int) -> np.ndarray:
        block = self._buffer.read(start, stop)
        return np.abs(block.astype(np.int32)) > self._threshold

    def _close_at_end_of_stream(
        self, state: SegmenterState, start: int, candidate_end: int, available: int
    ) -> SampleWindow:
        self._position = available
        if state is SegmenterState.WAITING:
            self.state = SegmenterState.WAITING
            raise NoSwipeError("sample stream ended before any sample exceeded the threshold")
        end = available if state is SegmenterState.ACTIVE else candidate_end
        self.state = SegmenterState.CLOSED
        logger.debug("Stream ended during swipe; closing window at %d", end)
        return SampleWindow(start, end)

    def _wait(
        self,
        length: int,
        deadline: Optional[float],
        cancel: Optional[threading.Event],
    ) -> None:
        while True:
            if cancel is not None and cancel.is_set():
                raise CaptureTimeout("swipe capture cancelled")
            remaining = None if deadline is None else deadline - time.monotonic()
            if remaining is not None and remaining <= 0:
                raise CaptureTimeout("timed out waiting for a swipe")
            wait = remaining
            if cancel is not None:
                wait = _CANCEL_CHECK_S if wait is None else min(wait, _CANCEL_CHECK_S)
            if self._buffer.wait_for_length(length, wait) or self._buffer.finished:
                return


__all__ = ["Segmenter", "SegmenterState"]
