"""
Adaptive Aiken biphase (F2F) demodulator.

A magnetic stripe is read as a train of alternating flux peaks. A 0 bit is a
single peak-to-peak interval spanning one bit cell; a 1 bit is two intervals
of half that width. There is no external clock: the cell width (`zero_width`)
is re-estimated from every decoded bit so the decoder follows the swipe speed
as it changes along the card.

Tolerances
----------
With ``full_tol = freq_threshold% * zero_width`` and ``half_tol = full_tol / 2``,
an interval pair counts as a 1 when both lie strictly within `half_tol` of
``zero_width / 2``; a single interval counts as a 0 when it lies strictly
within `full_tol` of `zero_width`. Anything else is recorded as a desync and
skipped.
"""

from __future__ import annotations

import logging
from typing import List, Sequence

import numpy as np

from shared.errors import ConfigurationError, DemodulationError
from shared.models import DemodulationResult, Desync

logger = logging.getLogger(__name__)


def rectify(samples: np.ndarray) -> np.ndarray:
    """Absolute value per sample, widened so that -32768 does not wrap."""
    return np.abs(np.asarray(samples).astype(np.int32))


def peak_level(samples: np.ndarray) -> int:
    """Largest rectified magnitude in `samples` (0 for an empty window)."""
    mag = rectify(samples)
    return int(mag.max()) if mag.size else 0


def auto_threshold(peak: int, percent: int) -> int:
    """Derive a detection threshold as `percent` of the observed peak level."""
    if not 0 < percent <= 100:
        raise ConfigurationError("auto threshold percentage must be within 1..100")
    return int(percent) * int(peak) // 100


def find_peaks(rectified: np.ndarray, threshold: int) -> np.ndarray:
    """
    Return the index of the maximum sample in every run above `threshold`.

    Ties inside a run resolve to the earliest sample.
    """
    mag = np.asarray(rectified)
    above = mag > threshold
    if not above.any():
        return np.empty(0, dtype=np.int64)

    edges = np.diff(above.astype(np.int8), prepend=0, append=0)
    starts = np.flatnonzero(edges == 1)
    ends = np.flatnonzero(edges == -1)
    peaks = [start + int(np.argmax(mag[start:end])) for start, end in zip(starts, ends)]
    return np.asarray(peaks, dtype=np.int64)


def peak_intervals(samples: np.ndarray, threshold: int) -> np.ndarray:
    """Sample distances between successive peaks of the rectified window."""
    peaks = find_peaks(rectify(samples), threshold)
    return np.diff(peaks)


class BiphaseDemodulator:
    """
    Peak-interval biphase decoder.

    Parameters
    ----------
    threshold : int
        Rectified magnitude a sample must exceed to be part of a peak.
    freq_threshold_percent : float
        Width tolerance in percent of the current bit cell, in ``(0, 100]``.
    preamble_intervals : int
        Lead-in intervals skipped before the cell width is seeded.
    """

    def __init__(self, threshold: int, freq_threshold_percent: float = 60, preamble_intervals: int = 2) -> None:
        if threshold < 0:
            raise ConfigurationError("detection threshold must be non-negative")
        if not 0 < freq_threshold_percent <= 100:
            raise ConfigurationError("frequency threshold percentage must be within (0, 100]")
        if preamble_intervals < 0:
            raise ConfigurationError("preamble_intervals must be non-negative")
        self.threshold = int(threshold)
        self.freq_threshold_percent = float(freq_threshold_percent)
        self.preamble_intervals = int(preamble_intervals)

    def demodulate(self, samples: np.ndarray) -> DemodulationResult:
        """Decode the samples of one swipe window into bits."""
        intervals = peak_intervals(samples, self.threshold)
        logger.debug("Found %d peak intervals above %d", len(intervals), self.threshold)
        return self.decode_intervals(intervals)

    def decode_intervals(self, intervals: Sequence[int]) -> DemodulationResult:
        """Run the adaptive decode over an already extracted interval sequence."""
        intervals = np.asarray(intervals, dtype=np.int64)
        n = len(intervals)
        if n < 2:
            raise DemodulationError("no bits detected")
        seed = self.preamble_intervals
        if seed >= n:
            raise DemodulationError("no bits detected")

        zero_width = float(intervals[seed])
        bits: List[str] = []
        desyncs: List[Desync] = []

        i = seed + 1
        while i < n:
            interval = int(intervals[i])
            full_tol = self.freq_threshold_percent * zero_width / 100.0
            half_tol = full_tol / 2.0
            half_width = zero_width / 2.0

            if (
                i + 1 < n
                and abs(interval - half_width) < half_tol
                and abs(int(intervals[i + 1]) - half_width) < half_tol
            ):
                bits.append("1")
                zero_width = interval * 2.0
                i += 2
            elif abs(interval - zero_width) < full_tol:
                bits.append("0")
                zero_width = float(interval)
                i += 1
            else:
                desyncs.append(Desync(index=i, interval=interval, zero_width=zero_width))
                logger.debug("Interval %d (%d samples) matches no bit at cell width %.1f", i, interval, zero_width)
                i += 1

        if desyncs:
            logger.warning(
                "Biphase decoder lost sync %d time(s); first at interval %d",
                len(desyncs),
                desyncs[0].index,
            )

        return DemodulationResult(
            bits="".join(bits),
            intervals=intervals,
            seed_width=float(intervals[seed]),
            desyncs=tuple(desyncs),
        )


__all__ = [
    "BiphaseDemodulator",
    "auto_threshold",
    "find_peaks",
    "peak_intervals",
    "peak_level",
    "rectify",
]
