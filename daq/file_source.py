# daq/file_source.py
"""File-based source that replays a recorded WAV swipe into a SampleBuffer."""

from __future__ import annotations

import logging
import threading
import time
import wave
from pathlib import Path
from typing import Any, List, Optional

import numpy as np

from shared.errors import DeviceError

from .base_source import ActualConfig, BaseSource, Capabilities, DeviceInfo

logger = logging.getLogger(__name__)


class FileSource(BaseSource):
    """
    Replays a 16-bit PCM WAV file as if it were a live capture.

    The device id passed to `open()` is the file path. Multi-channel files
    contribute their first channel. When playback reaches the end of the file
    the SampleBuffer is finished so the decoder can close a trailing swipe.

    Set `realtime=True` to pace blocks at the file's sample rate; by default
    blocks are delivered as fast as they can be read.
    """

    @classmethod
    def device_class_name(cls) -> str:
        return "File Source"

    def __init__(self, realtime: bool = False) -> None:
        super().__init__()
        self._realtime = bool(realtime)
        self._file_path: Optional[Path] = None
        self._wav_file: Optional[wave.Wave_read] = None
        self._n_channels: int = 0
        self._sample_rate: int = 0
        self._n_frames: int = 0
        self._worker: Optional[threading.Thread] = None

    @classmethod
    def list_available_devices(cls) -> List[DeviceInfo]:
        """Return a single virtual device representing file playback."""
        return [
            DeviceInfo(
                id="<path.wav>",
                name="WAV file playback",
                details={"type": "virtual", "description": "Pass the WAV path as the device id"},
            )
        ]

    def get_capabilities(self, device_id: str) -> Capabilities:
        if self._sample_rate > 0:
            return Capabilities(max_channels_in=1, sample_rates=[self._sample_rate], notes="WAV file playback")
        return Capabilities(max_channels_in=1, sample_rates=None, notes="Open a WAV file to determine capabilities")

    @property
    def total_frames(self) -> int:
        return self._n_frames

    # ---- Lifecycle ----

    def _open_impl(self, device_id: str) -> None:
        path = Path(device_id)
        if not path.exists():
            raise DeviceError(f"File not found: {path}")
        try:
            wav = wave.open(str(path), "rb")
        except (wave.Error, EOFError, OSError) as exc:
            raise DeviceError(f"Failed to open WAV file: {exc}") from exc

        if wav.getsampwidth() != 2:
            width = wav.getsampwidth() * 8
            wav.close()
            raise DeviceError(f"Unsupported sample width: {width}-bit (expected 16-bit PCM)")

        self._file_path = path
        self._wav_file = wav
        self._n_channels = wav.getnchannels()
        self._sample_rate = wav.getframerate()
        self._n_frames = wav.getnframes()

        logger.info(
            "Opened WAV file: %s (%d channels, %d Hz, %d frames)",
            path.name,
            self._n_channels,
            self._sample_rate,
            self._n_frames,
        )

    def _close_impl(self) -> None:
        if self._wav_file is not None:
            self._wav_file.close()
            self._wav_file = None
        self._file_path = None
        self._n_channels = 0
        self._sample_rate = 0
        self._n_frames = 0

    def _configure_impl(self, sample_rate: int, block_size: int, **options: Any) -> ActualConfig:
        if self._wav_file is None:
            raise RuntimeError("No file loaded; call open() first")
        if sample_rate != self._sample_rate:
            logger.warning(
                "Requested sample rate %d differs from file rate %d; using file rate",
                sample_rate,
                self._sample_rate,
            )
        return ActualConfig(sample_rate=self._sample_rate, block_size=block_size, dtype="int16")

    def _start_impl(self) -> None:
        if self._worker is not None and self._worker.is_alive():
            return
        if self._wav_file is None:
            raise DeviceError("No file loaded")

        self._wav_file.rewind()
        self._worker = threading.Thread(
            target=self._run_loop,
            name="FileSource-Worker",
            daemon=True,
        )
        self._worker.start()

    def _stop_impl(self) -> None:
        if self._worker is not None and self._worker.is_alive():
            self._worker.join(timeout=2.0)
        self._worker = None

    # ---- Worker Thread ----

    def _run_loop(self) -> None:
        buffer = self.buffer
        if self.config is None or self._wav_file is None or buffer is None:
            return

        block_size = self.config.block_size
        block_duration = block_size / self._sample_rate
        next_deadline = time.perf_counter() + block_duration

        try:
            while not self.stop_event.is_set():
                raw_bytes = self._wav_file.readframes(block_size)
                if not raw_bytes:
                    logger.debug("End of file reached after %d samples", len(buffer))
                    break

                data = np.frombuffer(raw_bytes, dtype="<i2")
                frames = data.size // self._n_channels
                if frames == 0:
                    break
                self.emit_array(data[: frames * self._n_channels].reshape((frames, self._n_channels)))

                if self._realtime:
                    next_deadline += block_duration
                    sleep_time = next_deadline - time.perf_counter()
                    if sleep_time > 0:
                        time.sleep(sleep_time)
        finally:
            buffer.finish()


__all__ = ["FileSource"]
