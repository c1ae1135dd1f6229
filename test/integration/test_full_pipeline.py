"""
Full end-to-end pipeline integration tests.

These tests drive SwipeDecoder from a live producer thread, the way a sound
card delivers blocks, and verify:

1. A swipe embedded in noise is segmented and decoded
2. Both track formats and both swipe directions are recovered
3. Speed changes along the card do not break sync
4. A swipe still in progress when the stream ends is decoded
"""
from __future__ import annotations

import threading
import time

import numpy as np
import pytest

from core.controller import SwipeDecoder
from core.settings import DecoderSettings, DecoderSettingsStore
from shared.models import ABA, IATA, Orientation
from shared.sample_buffer import SampleBuffer
from test.fixtures.controlled_source import ControlledSource
from test.fixtures.signal_generators import (
    LEAD_IN,
    encode_track,
    intervals_to_waveform,
    make_swipe,
)


def stream(signal: np.ndarray, block: int = 1024, finish: bool = False, interval: float = 0.0) -> SampleBuffer:
    """Start a producer thread appending `signal` to a fresh buffer."""
    buf = SampleBuffer(48000, capacity=4096)

    def producer():
        for start in range(0, signal.size, block):
            buf.append(signal[start:start + block])
            if interval:
                time.sleep(interval)
        if finish:
            buf.finish()

    threading.Thread(target=producer, name="TestProducer", daemon=True).start()
    return buf


def track(report, encoding: str, orientation: Orientation):
    return next(t for t in report.tracks if t.encoding == encoding and t.orientation is orientation)


class TestFullPipeline:
    def test_aba_swipe_from_live_stream(self):
        signal = make_swipe(encode_track("4111111111111111=2512", ABA, leading_zeros=20, trailing_zeros=20))
        report = SwipeDecoder().decode(stream(signal, interval=0.001), timeout=10.0)
        result = track(report, "ABA", Orientation.CAPTURED)
        assert result.ok
        assert result.characters == ";4111111111111111=2512?"
        assert report.demodulation.desyncs == ()

    def test_iata_swipe(self):
        signal = make_swipe(encode_track("B4111111111111111", IATA, leading_zeros=20, trailing_zeros=20))
        report = SwipeDecoder().decode(stream(signal), timeout=10.0)
        result = track(report, "IATA", Orientation.CAPTURED)
        assert result.ok
        assert result.characters == "5B4111111111111111O"

    def test_reversed_swipe(self):
        bits = encode_track("9876543210", ABA, leading_zeros=20, trailing_zeros=20)[::-1]
        report = SwipeDecoder().decode(stream(make_swipe(bits)), timeout=10.0)
        result = track(report, "ABA", Orientation.REVERSED)
        assert result.ok
        assert result.characters == ";9876543210?"

    def test_low_level_noise_is_ignored(self):
        rng = np.random.default_rng(1234)
        swipe = make_swipe(encode_track("0042", ABA, leading_zeros=20, trailing_zeros=20))
        noise = rng.integers(-800, 800, size=swipe.size + 20000).astype(np.int16)
        signal = noise.copy()
        signal[5000:5000 + swipe.size] = np.where(swipe != 0, swipe, noise[5000:5000 + swipe.size])
        report = SwipeDecoder().decode(stream(signal), timeout=10.0)
        assert report.window.start >= 5000
        assert track(report, "ABA", Orientation.CAPTURED).characters == ";0042?"

    def test_accelerating_swipe(self):
        """Cell width shrinks 2% per bit as the card speeds up."""
        bits = encode_track("31415", ABA, leading_zeros=20, trailing_zeros=20)
        width = 80.0
        intervals = [int(width * m) for m in LEAD_IN] + [int(width)]
        for bit in bits:
            width = max(20.0, width * 0.98)
            half = int(round(width / 2))
            intervals += [half, half] if bit == "1" else [half * 2]
        report = SwipeDecoder().decode(stream(intervals_to_waveform(intervals)), timeout=10.0)
        assert report.bits == bits
        assert track(report, "ABA", Orientation.CAPTURED).ok

    def test_stream_ends_mid_swipe(self):
        signal = make_swipe(encode_track("77", ABA, leading_zeros=20, trailing_zeros=20), tail_silence=200)
        report = SwipeDecoder().decode(stream(signal, finish=True), timeout=10.0)
        assert track(report, "ABA", Orientation.CAPTURED).characters == ";77?"

    @pytest.mark.parametrize("sample_rate", [44100, 96000])
    def test_other_sample_rates(self, sample_rate):
        store = DecoderSettingsStore(DecoderSettings(sample_rate=sample_rate))
        signal = make_swipe(
            encode_track("123", ABA, leading_zeros=20, trailing_zeros=20),
            zero_width=int(sample_rate / 1200) // 2 * 2,
            tail_silence=sample_rate // 4,
        )
        source = ControlledSource(signal, finish_at_end=True)
        report = SwipeDecoder(store).capture(source, "test", timeout=10.0)
        assert track(report, "ABA", Orientation.CAPTURED).characters == ";123?"
        assert source.config is None
        assert source.achieved.sample_rate == sample_rate
        assert report.window.start == 500 - 2
