from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Tuple

import numpy as np

from .errors import ConfigurationError, ParseError


def _freeze_array(array: np.ndarray, *, ndim: int | None = None, dtype=None) -> np.ndarray:
    """Return a read-only, C-contiguous copy of `array`, validating dimensions."""
    arr = np.array(array, dtype=dtype, copy=True, order="C")
    if ndim is not None and arr.ndim != ndim:
        raise ValueError(f"array must be {ndim}D, got {arr.ndim}D")
    arr.setflags(write=False)
    return arr


# ----------------------------
# Device metadata
# ----------------------------

@dataclass(frozen=True)
class DeviceInfo:
    """A discoverable capture device."""

    id: str
    name: str
    vendor: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Capabilities:
    """What a device can do for mono capture."""

    max_channels_in: int
    sample_rates: Optional[List[int]]
    dtype: str = "int16"
    notes: Optional[str] = None


@dataclass(frozen=True)
class ActualConfig:
    """Configuration achieved after a driver configures the device."""

    sample_rate: int
    block_size: int
    latency_s: Optional[float] = None
    dtype: str = "int16"


# ----------------------------
# Decode pipeline models
# ----------------------------

@dataclass(frozen=True)
class SampleWindow:
    """Half-open sample index range ``[start, end)`` covering one swipe."""

    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start < 0:
            raise ValueError("start must be non-negative")
        if self.end <= self.start:
            raise ValueError("end must be greater than start")

    @property
    def length(self) -> int:
        return self.end - self.start


class Parity(str, Enum):
    """Per-character parity convention of a track encoding."""

    EVEN = "even"
    ODD = "odd"


class Orientation(str, Enum):
    """Direction in which a bit string is read."""

    CAPTURED = "captured"
    REVERSED = "reversed"


@dataclass(frozen=True)
class EncodingDescriptor:
    """
    Named character format of a track.

    Sentinels are written in capture order: the first ``char_length - 1``
    positions are data bits, least significant first, and the last position
    is the parity bit.
    """

    name: str
    char_length: int
    start_sentinel: str
    end_sentinel: str
    parity: Parity = Parity.ODD

    def __post_init__(self) -> None:
        if not self.name:
            raise ConfigurationError("encoding name must not be empty")
        if not isinstance(self.char_length, int) or self.char_length < 2:
            raise ConfigurationError("char_length must be an integer >= 2")
        for label, sentinel in (("start_sentinel", self.start_sentinel), ("end_sentinel", self.end_sentinel)):
            if len(sentinel) != self.char_length:
                raise ConfigurationError(
                    f"{label} {sentinel!r} must be {self.char_length} bits long"
                )
            if set(sentinel) - {"0", "1"}:
                raise ConfigurationError(f"{label} {sentinel!r} must contain only 0 and 1")
        object.__setattr__(self, "parity", Parity(self.parity))

    @property
    def data_bits(self) -> int:
        return self.char_length - 1


IATA = EncodingDescriptor(name="IATA", char_length=7, start_sentinel="1010001", end_sentinel="1111100")
ABA = EncodingDescriptor(name="ABA", char_length=5, start_sentinel="11010", end_sentinel="11111")

DEFAULT_ENCODINGS: Tuple[EncodingDescriptor, ...] = (IATA, ABA)


@dataclass(frozen=True)
class DecodedTrack:
    """Outcome of one (orientation, encoding) parse attempt."""

    encoding: str
    orientation: Orientation
    characters: str = ""
    error: Optional[ParseError] = None
    no_data: bool = False

    @property
    def ok(self) -> bool:
        return not self.no_data and self.error is None

    def describe(self) -> str:
        if self.no_data:
            return "no data"
        if self.error is not None:
            if self.characters:
                return f"{self.characters} ({self.error})"
            return str(self.error)
        return self.characters


@dataclass(frozen=True)
class Desync:
    """A peak interval that matched neither the half- nor the full-width test."""

    index: int
    interval: int
    zero_width: float


@dataclass(frozen=True)
class DemodulationResult:
    """Bits recovered from one swipe plus the diagnostics of the decode."""

    bits: str
    intervals: np.ndarray = field(repr=False)
    seed_width: float
    desyncs: Tuple[Desync, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "intervals", _freeze_array(self.intervals, ndim=1, dtype=np.int64))
        object.__setattr__(self, "desyncs", tuple(self.desyncs))


@dataclass(frozen=True)
class SwipeReport:
    """Everything the pipeline learned from a single swipe."""

    window: SampleWindow
    threshold: int
    peak_level: int
    demodulation: DemodulationResult
    tracks: Tuple[DecodedTrack, ...]

    @property
    def bits(self) -> str:
        return self.demodulation.bits

    @property
    def decoded(self) -> Tuple[DecodedTrack, ...]:
        return tuple(track for track in self.tracks if track.ok)


__all__ = [
    "DeviceInfo",
    "Capabilities",
    "ActualConfig",
    "SampleWindow",
    "Parity",
    "Orientation",
    "EncodingDescriptor",
    "IATA",
    "ABA",
    "DEFAULT_ENCODINGS",
    "DecodedTrack",
    "Desync",
    "DemodulationResult",
    "SwipeReport",
]
