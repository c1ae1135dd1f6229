from __future__ import annotations

"""
Base class for capture sources feeding a SampleBuffer.

Goals:
- Clean lifecycle: open → configure → start/stop → close.
- Capability discovery for device listing.
- One producer per run: every start() creates a fresh SampleBuffer that the
  driver appends mono int16 blocks to through emit_array().

Subclasses implement the *_impl() methods to integrate real hardware
(or file playback) while relying on the shared utilities here.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Iterable, List, Literal, Optional

import numpy as np

from shared.errors import DeviceError
from shared.models import ActualConfig, Capabilities, DeviceInfo
from shared.sample_buffer import SampleBuffer

logger = logging.getLogger(__name__)

State = Literal["closed", "open", "running"]


class BaseSource(ABC):
    """
    Abstract base for all mono capture sources.

    Typical flow:
        devs = Driver.list_available_devices()
        source = Driver()
        source.open(devs[0].id)
        source.configure(sample_rate=48_000, block_size=1024)
        source.start()
        # Consume source.buffer in the decoder thread
        source.stop()
        source.close()
    """

    @classmethod
    @abstractmethod
    def device_class_name(cls) -> str:
        """Return the human-friendly category name for this driver type."""
        raise NotImplementedError

    def __init__(self) -> None:
        self._stop_event = threading.Event()
        self._state_lock = threading.RLock()
        self._state: State = "closed"
        self._device_id: Optional[str] = None
        self.config: Optional[ActualConfig] = None
        self.buffer: Optional[SampleBuffer] = None
        self._blocks: int = 0

    # ------------------------
    # Device enumeration APIs
    # ------------------------

    @classmethod
    @abstractmethod
    def list_available_devices(cls) -> List[DeviceInfo]:
        """Return all input-capable devices visible to the driver."""
        raise NotImplementedError

    @abstractmethod
    def get_capabilities(self, device_id: str) -> Capabilities:
        """Return input capabilities for a given device."""
        raise NotImplementedError

    # ----------
    # Lifecycle
    # ----------

    def open(self, device_id: str) -> None:
        with self._state_lock:
            self._assert_state(expected=("closed",))
            self._open_impl(device_id)
            self._device_id = device_id
            self._state = "open"

    @abstractmethod
    def _open_impl(self, device_id: str) -> None:
        """Driver-specific resource acquisition."""
        raise NotImplementedError

    def close(self) -> None:
        with self._state_lock:
            if self._state == "running":
                self._stop_impl_safe()
            if self._state != "closed":
                self._close_impl()
            self._device_id = None
            self.config = None
            self._state = "closed"

    @abstractmethod
    def _close_impl(self) -> None:
        """Driver-specific resource release."""
        raise NotImplementedError

    def configure(self, sample_rate: int, block_size: int = 1024, **options: Any) -> ActualConfig:
        """
        Apply capture configuration while open. Returns the configuration the
        driver actually achieved.
        """
        with self._state_lock:
            self._assert_state(expected=("open",))
            if not isinstance(block_size, int) or block_size <= 0:
                raise ValueError("block_size must be a positive integer")
            actual = self._configure_impl(sample_rate=int(sample_rate), block_size=block_size, **options)
            self.config = actual
            return actual

    @abstractmethod
    def _configure_impl(self, sample_rate: int, block_size: int, **options: Any) -> ActualConfig:
        """Driver-specific configuration. Should not start streaming."""
        raise NotImplementedError

    def start(self) -> SampleBuffer:
        """Begin streaming into a fresh SampleBuffer and return it."""
        with self._state_lock:
            self._assert_state(expected=("open",))
            if self.config is None:
                raise RuntimeError("configure() must be called before start().")
            self.buffer = SampleBuffer(self.config.sample_rate)
            self._blocks = 0
            self._stop_event.clear()
            try:
                self._start_impl()
            except DeviceError:
                raise
            except Exception as exc:
                raise DeviceError(f"failed to start {self.device_class_name()}: {exc}") from exc
            self._state = "running"
            return self.buffer

    @abstractmethod
    def _start_impl(self) -> None:
        """Driver-specific start. Deliver data by calling self.emit_array(...)."""
        raise NotImplementedError

    def stop(self) -> None:
        """Stop streaming; the device remains open and can be restarted."""
        with self._state_lock:
            if self._state == "running":
                self._stop_impl_safe()
                self._state = "open"

    def _stop_impl_safe(self) -> None:
        # Signal cooperative loops, then let the driver tear down.
        self._stop_event.set()
        try:
            self._stop_impl()
        finally:
            if self.buffer is not None:
                self.buffer.wake()

    @abstractmethod
    def _stop_impl(self) -> None:
        """Driver-specific stop."""
        raise NotImplementedError

    # --------------
    # Emit utilities
    # --------------

    def emit_array(self, data: np.ndarray) -> int:
        """
        Append a block to the run's SampleBuffer.

        Multi-channel blocks shaped (frames, channels) keep only the first
        channel. Returns the sample index the block starts at.
        """
        if self.buffer is None:
            raise RuntimeError("emit_array() called before start().")
        arr = np.asarray(data)
        if arr.ndim == 2:
            arr = arr[:, 0]
        elif arr.ndim != 1:
            raise ValueError("data must be 1D or shaped (frames, channels)")
        if arr.dtype != np.int16:
            arr = np.clip(arr, -32768, 32767).astype(np.int16)
        start = self.buffer.append(arr)
        self._blocks += 1
        return start

    def note_xrun(self, count: int = 1) -> None:
        """Drivers call this when the backend reports a dropped capture block."""
        if self.buffer is not None:
            self.buffer.note_overflow(count)

    # --------------
    # Introspection
    # --------------

    @property
    def state(self) -> State:
        with self._state_lock:
            return self._state

    @property
    def running(self) -> bool:
        return self.state == "running"

    @property
    def stop_event(self) -> threading.Event:
        """Subclasses may check this in their producer loops for cooperative stop."""
        return self._stop_event

    def stats(self) -> dict[str, Any]:
        """Lightweight diagnostics for verbose output."""
        return {
            "state": self.state,
            "device_id": self._device_id,
            "blocks": self._blocks,
            "samples": 0 if self.buffer is None else len(self.buffer),
            "overflows": 0 if self.buffer is None else self.buffer.overflows,
            "sample_rate": None if self.config is None else self.config.sample_rate,
        }

    def _assert_state(self, expected: Iterable[State]) -> None:
        expected = tuple(expected)
        if self._state not in expected:
            raise RuntimeError(f"Invalid state: {self._state}; expected one of {expected}.")


__all__ = ["BaseSource", "State"]
