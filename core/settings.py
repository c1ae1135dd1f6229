from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from typing import Callable, Dict, Optional

from shared.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Pipeline defaults; thresholds are int16 magnitudes.
SILENCE_THRES = 5000
AUTO_THRES = 30
FREQ_THRES = 60
END_LENGTH_MS = 200
PREAMBLE_INTERVALS = 2
SAMPLE_RATE = 48_000


@dataclass(frozen=True)
class DecoderSettings:
    """
    Tunables of the decode pipeline.

    `silence_threshold` bounds the swipe during capture. When
    `auto_threshold_percent` is non-zero the peak-detection threshold is
    re-derived from the captured window as a percentage of its peak level.
    """

    sample_rate: int = SAMPLE_RATE
    silence_threshold: int = SILENCE_THRES
    auto_threshold_percent: int = AUTO_THRES
    end_length_ms: float = END_LENGTH_MS
    freq_threshold_percent: float = FREQ_THRES
    preamble_intervals: int = PREAMBLE_INTERVALS
    block_size: int = 1024

    def __post_init__(self) -> None:
        if self.sample_rate <= 0:
            raise ConfigurationError("sample_rate must be positive")
        if self.silence_threshold <= 0:
            raise ConfigurationError(f"silence threshold must be > 0, got {self.silence_threshold}")
        if not 0 <= self.auto_threshold_percent <= 100:
            raise ConfigurationError("auto threshold percentage must be within 0..100")
        if self.end_length_ms <= 0:
            raise ConfigurationError("end_length_ms must be positive")
        if not 0 < self.freq_threshold_percent <= 100:
            raise ConfigurationError("frequency threshold percentage must be within (0, 100]")
        if self.preamble_intervals < 0:
            raise ConfigurationError("preamble_intervals must be non-negative")
        if self.block_size <= 0:
            raise ConfigurationError("block_size must be positive")

    @property
    def silence_interval(self) -> int:
        """Number of quiet samples that confirm the end of a swipe."""
        return max(1, int(self.sample_rate * self.end_length_ms / 1000))

    @property
    def auto_threshold(self) -> bool:
        return self.auto_threshold_percent > 0


class DecoderSettingsStore:
    """
    Thread-safe settings container so the CLI or a capture thread can change
    parameters while subscribers (e.g. the decoder) observe the updates.
    """

    def __init__(self, initial: Optional[DecoderSettings] = None) -> None:
        self._settings = initial or DecoderSettings()
        self._lock = threading.Lock()
        self._subscribers: Dict[int, Callable[[DecoderSettings], None]] = {}
        self._next_token = 0

    def get(self) -> DecoderSettings:
        with self._lock:
            return self._settings

    def update(self, **kwargs) -> DecoderSettings:
        with self._lock:
            new_settings = replace(self._settings, **kwargs)
            self._settings = new_settings
            callbacks = list(self._subscribers.values())
        for callback in callbacks:
            try:
                callback(new_settings)
            except Exception as exc:
                # A bad subscriber should not break updates.
                logger.debug("Settings subscriber callback failed: %s", exc)
                continue
        return new_settings

    def subscribe(self, callback: Callable[[DecoderSettings], None], *, replay: bool = True) -> Callable[[], None]:
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._subscribers[token] = callback
            snapshot = self._settings
        if replay:
            callback(snapshot)

        def unsubscribe() -> None:
            with self._lock:
                self._subscribers.pop(token, None)

        return unsubscribe


__all__ = ["DecoderSettings", "DecoderSettingsStore"]
