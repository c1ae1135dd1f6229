"""Core decode pipeline: segmentation, demodulation and track parsing."""

from .controller import DecodeContext, SwipeDecoder
from .demodulator import BiphaseDemodulator, auto_threshold, find_peaks, peak_intervals, peak_level, rectify
from .level_meter import LevelMeter
from .segmenter import Segmenter, SegmenterState
from .settings import DecoderSettings, DecoderSettingsStore
from .track_parser import check_parity, decode_all, decode_char, parse_track
from shared.models import (
    ABA,
    DEFAULT_ENCODINGS,
    IATA,
    DecodedTrack,
    DemodulationResult,
    EncodingDescriptor,
    Orientation,
    Parity,
    SampleWindow,
    SwipeReport,
)

__all__ = [
    "ABA",
    "IATA",
    "DEFAULT_ENCODINGS",
    "BiphaseDemodulator",
    "DecodeContext",
    "DecodedTrack",
    "DecoderSettings",
    "DecoderSettingsStore",
    "DemodulationResult",
    "EncodingDescriptor",
    "LevelMeter",
    "Orientation",
    "Parity",
    "SampleWindow",
    "Segmenter",
    "SegmenterState",
    "SwipeDecoder",
    "SwipeReport",
    "auto_threshold",
    "check_parity",
    "decode_all",
    "decode_char",
    "find_peaks",
    "parse_track",
    "peak_intervals",
    "peak_level",
    "rectify",
]
