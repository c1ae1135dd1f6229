"""
Shared data structures used by the capture drivers and the decode pipeline.
"""

from .errors import (
    CaptureTimeout,
    ConfigurationError,
    DemodulationError,
    DeviceError,
    MagswipeError,
    NoSwipeError,
    ParseError,
)
from .sample_buffer import SampleBuffer

__all__ = [
    "CaptureTimeout",
    "ConfigurationError",
    "DemodulationError",
    "DeviceError",
    "MagswipeError",
    "NoSwipeError",
    "ParseError",
    "SampleBuffer",
]
