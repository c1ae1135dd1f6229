"""Exception hierarchy shared by the decode pipeline, drivers and CLI."""

from __future__ import annotations


class MagswipeError(Exception):
    """Base class for all errors raised by magswipe."""


class ConfigurationError(MagswipeError, ValueError):
    """Invalid threshold, percentage or encoding descriptor."""


class DeviceError(MagswipeError, RuntimeError):
    """The capture device could not be opened or started."""


class CaptureTimeout(MagswipeError, TimeoutError):
    """No swipe was closed before the deadline or cancellation."""


class NoSwipeError(MagswipeError, RuntimeError):
    """The sample stream ended without any sample over threshold."""


class DemodulationError(MagswipeError, RuntimeError):
    """The swipe window did not contain enough peaks to decode."""


class ParseError(MagswipeError, ValueError):
    """A single (orientation, encoding) attempt failed validation."""


__all__ = [
    "MagswipeError",
    "ConfigurationError",
    "DeviceError",
    "CaptureTimeout",
    "NoSwipeError",
    "DemodulationError",
    "ParseError",
]
