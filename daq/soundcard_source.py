# daq/soundcard_source.py
from __future__ import annotations

import logging
import time
from typing import Any, Callable, List, Optional

import miniaudio
import numpy as np

from shared.errors import DeviceError

from .base_source import ActualConfig, BaseSource, Capabilities, DeviceInfo

logger = logging.getLogger(__name__)

_SAMPLE_RATES = [44100, 48000, 88200, 96000, 192000]


class OverrunDetector:
    """
    Infer dropped capture blocks from elapsed time.

    miniaudio does not tell the capture generator when the backend discards
    data, so the frames received are compared with the frames the elapsed
    wall-clock time should have produced. A shortfall larger than
    `slack_blocks` periods is reported as dropped blocks and the count is
    resynchronised.
    """

    def __init__(
        self,
        sample_rate: int,
        block_frames: int,
        slack_blocks: int = 2,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._rate = float(sample_rate)
        self._block = max(1, int(block_frames))
        self._slack = int(slack_blocks)
        self._clock = clock
        self._t0: Optional[float] = None
        self._received = 0

    def update(self, frames: int) -> int:
        """Account for `frames` just delivered; return the number of blocks judged lost."""
        now = self._clock()
        if self._t0 is None:
            self._t0 = now - frames / self._rate
            self._received = frames
            return 0
        self._received += frames
        missing = (now - self._t0) * self._rate - self._received
        if missing <= self._slack * self._block:
            return 0
        dropped = int(missing // self._block)
        self._received += dropped * self._block
        return dropped


class SoundCardSource(BaseSource):
    """
    Mono 16-bit capture from a sound card input using `miniaudio`.

    Device identifiers are ``"default"`` for the system default input and the
    capture index (``"0"``, ``"1"``, ...) for explicit devices.
    """

    DEFAULT_SAMPLE_RATE = 48000

    @classmethod
    def device_class_name(cls) -> str:
        return "Sound Card"

    @classmethod
    def list_available_devices(cls) -> List[DeviceInfo]:
        """Return the system default plus every capture device miniaudio reports."""
        out: List[DeviceInfo] = [
            DeviceInfo(id="default", name="System Default", details={"real_id": None}),
        ]
        try:
            captures = miniaudio.Devices().get_captures()
        except Exception as exc:
            logger.warning("Failed to enumerate capture devices: %s", exc)
            return out

        for idx, dev in enumerate(captures):
            out.append(
                DeviceInfo(
                    id=str(idx),
                    name=dev["name"],
                    details={"real_id": dev["id"]},
                )
            )
        return out

    def __init__(self, buffersize_msec: int = 100) -> None:
        super().__init__()
        self._buffersize_msec = int(buffersize_msec)
        self._miniaudio_device_id: Any = None
        self._device: Optional[miniaudio.CaptureDevice] = None

    def get_capabilities(self, device_id: str) -> Capabilities:
        return Capabilities(max_channels_in=1, sample_rates=list(_SAMPLE_RATES), dtype="int16")

    # ---------- Lifecycle ------------------------------------------------------

    def _open_impl(self, device_id: str) -> None:
        if device_id == "default":
            self._miniaudio_device_id = None  # None means default in miniaudio
            return
        try:
            idx = int(device_id)
            captures = miniaudio.Devices().get_captures()
        except ValueError as exc:
            raise DeviceError(f"Invalid device ID: {device_id!r}") from exc
        except Exception as exc:
            raise DeviceError(f"Failed to enumerate capture devices: {exc}") from exc
        if idx < 0 or idx >= len(captures):
            raise DeviceError(f"Invalid device ID: {device_id}")
        self._miniaudio_device_id = captures[idx]["id"]
        logger.info("Opened capture device %s: %s", device_id, captures[idx]["name"])

    def _close_impl(self) -> None:
        self._miniaudio_device_id = None

    def _configure_impl(self, sample_rate: int, block_size: int, **options: Any) -> ActualConfig:
        if sample_rate <= 0:
            raise ValueError("sample_rate must be positive")
        # miniaudio resamples internally, so any requested rate is achievable.
        return ActualConfig(
            sample_rate=sample_rate,
            block_size=block_size,
            latency_s=self._buffersize_msec / 1000.0,
            dtype="int16",
        )

    def _start_impl(self) -> None:
        if self._device is not None:
            return

        detector = OverrunDetector(
            self.config.sample_rate,
            self.config.sample_rate * self._buffersize_msec // 1000,
        )

        def capture_generator():
            while True:
                data_bytes = yield
                samples = np.frombuffer(data_bytes, dtype=np.int16)
                if samples.size:
                    dropped = detector.update(samples.size)
                    if dropped:
                        self.note_xrun(dropped)
                    self.emit_array(samples)

        try:
            self._device = miniaudio.CaptureDevice(
                input_format=miniaudio.SampleFormat.SIGNED16,
                nchannels=1,
                sample_rate=self.config.sample_rate,
                buffersize_msec=self._buffersize_msec,
                device_id=self._miniaudio_device_id,
            )
            gen = capture_generator()
            next(gen)  # Prime it
            self._device.start(gen)
        except Exception as exc:
            self._device = None
            raise DeviceError(f"Error starting miniaudio capture: {exc}") from exc
        logger.info("Capturing at %d Hz", self.config.sample_rate)

    def _stop_impl(self) -> None:
        if self._device is not None:
            try:
                self._device.stop()
            finally:
                self._device.close()
        self._device = None


__all__ = ["OverrunDetector", "SoundCardSource"]
