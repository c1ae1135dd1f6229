from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from typing import Callable, Iterable, Optional, Tuple

import numpy as np

from daq.base_source import BaseSource
from shared.errors import ConfigurationError
from shared.models import (
    DEFAULT_ENCODINGS,
    DecodedTrack,
    DemodulationResult,
    EncodingDescriptor,
    SampleWindow,
    SwipeReport,
)
from shared.sample_buffer import SampleBuffer

from .demodulator import BiphaseDemodulator, auto_threshold, peak_level
from .level_meter import LevelMeter
from .segmenter import Segmenter
from .settings import DecoderSettings, DecoderSettingsStore
from .track_parser import decode_all


@dataclass
class DecodeContext:
    """
    Per-swipe pipeline state owned by SwipeDecoder.

    Each stage writes only its own fields: the segmenter sets `window`, the
    threshold stage sets `peak_level`/`threshold`, the demodulator sets
    `demodulation`, and the parser sets `tracks`.
    """

    buffer: SampleBuffer
    settings: DecoderSettings
    encodings: Tuple[EncodingDescriptor, ...]
    window: Optional[SampleWindow] = None
    peak_level: int = 0
    threshold: int = 0
    demodulation: Optional[DemodulationResult] = None
    tracks: Tuple[DecodedTrack, ...] = ()

    def samples(self) -> np.ndarray:
        if self.window is None:
            raise RuntimeError("no swipe window captured yet")
        return self.buffer.read(self.window.start, self.window.end)

    def report(self) -> SwipeReport:
        if self.window is None or self.demodulation is None:
            raise RuntimeError("pipeline has not completed")
        return SwipeReport(
            window=self.window,
            threshold=self.threshold,
            peak_level=self.peak_level,
            demodulation=self.demodulation,
            tracks=self.tracks,
        )


class SwipeDecoder:
    """
    Orchestrates Segmenter → threshold derivation → demodulator → track parser
    for exactly one swipe per run.

    Errors before the bit string exists (configuration, device, timeout,
    demodulation) propagate to the caller. Parse failures are reported per
    attempt inside the returned SwipeReport.
    """

    def __init__(
        self,
        settings_store: Optional[DecoderSettingsStore] = None,
        encodings: Iterable[EncodingDescriptor] = DEFAULT_ENCODINGS,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.settings_store = settings_store or DecoderSettingsStore()
        self.encodings: Tuple[EncodingDescriptor, ...] = tuple(encodings)
        if not self.encodings:
            raise ConfigurationError("at least one encoding is required")
        self.logger = logger or logging.getLogger(__name__)
        self._unsubscribe = self.settings_store.subscribe(self._on_settings_changed)

    @property
    def settings(self) -> DecoderSettings:
        return self._settings

    def close(self) -> None:
        """Stop following the settings store."""
        self._unsubscribe()

    def _on_settings_changed(self, settings: DecoderSettings) -> None:
        # Takes effect for the next swipe; a decode in progress keeps its context.
        self._settings = settings
        self.logger.debug(
            "Settings updated: threshold %d, auto %d%%, end %.0f ms",
            settings.silence_threshold,
            settings.auto_threshold_percent,
            settings.end_length_ms,
        )

    # ------------------------------------------------------------------
    # Pipeline stages
    # ------------------------------------------------------------------

    def new_context(self, buffer: SampleBuffer) -> DecodeContext:
        settings = self.settings
        if buffer.sample_rate != settings.sample_rate:
            self.logger.debug(
                "Using buffer sample rate %d Hz instead of configured %d Hz",
                buffer.sample_rate,
                settings.sample_rate,
            )
            settings = replace(settings, sample_rate=buffer.sample_rate)
        return DecodeContext(buffer=buffer, settings=settings, encodings=self.encodings)

    def segment(
        self,
        ctx: DecodeContext,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> SampleWindow:
        segmenter = Segmenter(
            ctx.buffer,
            ctx.settings.silence_threshold,
            ctx.settings.silence_interval,
        )
        self.logger.info("Waiting for swipe (silence threshold %d)", segmenter.threshold)
        ctx.window = segmenter.find_window(timeout=timeout, cancel=cancel)
        self.logger.info(
            "Captured swipe of %d samples (%.3f s)",
            ctx.window.length,
            ctx.window.length / ctx.settings.sample_rate,
        )
        return ctx.window

    def derive_threshold(self, ctx: DecodeContext) -> int:
        ctx.peak_level = peak_level(ctx.samples())
        if ctx.settings.auto_threshold:
            ctx.threshold = auto_threshold(ctx.peak_level, ctx.settings.auto_threshold_percent)
            self.logger.info(
                "Auto threshold %d (%d%% of peak level %d)",
                ctx.threshold,
                ctx.settings.auto_threshold_percent,
                ctx.peak_level,
            )
        else:
            ctx.threshold = ctx.settings.silence_threshold
        return ctx.threshold

    def demodulate(self, ctx: DecodeContext) -> DemodulationResult:
        demodulator = BiphaseDemodulator(
            ctx.threshold,
            freq_threshold_percent=ctx.settings.freq_threshold_percent,
            preamble_intervals=ctx.settings.preamble_intervals,
        )
        ctx.demodulation = demodulator.demodulate(ctx.samples())
        self.logger.info("Demodulated %d bits", len(ctx.demodulation.bits))
        return ctx.demodulation

    def parse(self, ctx: DecodeContext) -> Tuple[DecodedTrack, ...]:
        if ctx.demodulation is None:
            raise RuntimeError("demodulate() must run before parse()")
        ctx.tracks = decode_all(ctx.demodulation.bits, ctx.encodings)
        return ctx.tracks

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def decode(
        self,
        buffer: SampleBuffer,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> SwipeReport:
        """Wait for one swipe in `buffer` and decode it."""
        ctx = self.new_context(buffer)
        self.segment(ctx, timeout=timeout, cancel=cancel)
        self.derive_threshold(ctx)
        self.demodulate(ctx)
        self.parse(ctx)
        return ctx.report()

    def capture(
        self,
        source: BaseSource,
        device_id: str,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> SwipeReport:
        """Open `source`, decode one swipe from it, and always release the device."""
        buffer = self._start_source(source, device_id)
        try:
            return self.decode(buffer, timeout=timeout, cancel=cancel)
        finally:
            self._release_source(source)

    def measure_level(
        self,
        source: BaseSource,
        device_id: str,
        on_level: Optional[Callable[[int], None]] = None,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> int:
        """Run the max-level meter on `source` instead of capturing a swipe."""
        buffer = self._start_source(source, device_id)
        try:
            return LevelMeter(buffer, on_level).run(timeout=timeout, cancel=cancel)
        finally:
            self._release_source(source)

    def _start_source(self, source: BaseSource, device_id: str) -> SampleBuffer:
        settings = self.settings
        try:
            source.open(device_id)
            actual = source.configure(settings.sample_rate, block_size=settings.block_size)
            self.logger.debug("Source configured: %s", actual)
            return source.start()
        except BaseException:
            self._release_source(source)
            raise

    def _release_source(self, source: BaseSource) -> None:
        try:
            source.stop()
        finally:
            source.close()
        self.logger.debug("Source released: %s", source.stats())


__all__ = ["DecodeContext", "SwipeDecoder"]
