"""
Real-time output backend using sounddevice.
- Single output stream (stereo) with fixed blocksize.
- Pulls audio by calling the rendering context's `render(frames)`, which returns (2, N) float32 chunks.
- Opening the stream is what the host "creating a context" means here: if no device can be
  opened, creation is rejected with EngineUnavailable.
"""

from __future__ import annotations
import logging
import threading
from typing import Callable

import numpy as np

from .constants import BLOCK_SIZE, CHANNELS, SR
from .errors import EngineUnavailable

logger = logging.getLogger("audioamp.rt_audio")


class OutputStreamBackend:
    """Minimal real-time audio output engine."""
    def __init__(self, sample_rate: int = SR, channels: int = CHANNELS, chunk_size: int = BLOCK_SIZE, device=None):
        self.sample_rate = int(sample_rate)
        self.channels = int(channels)
        self.chunk_size = int(chunk_size)
        self.device = device
        self._lock = threading.RLock()
        self._running = False
        self._stream = None
        # The render function must be a callable: (num_frames:int) -> np.ndarray[shape=(2, num_frames)]
        self._render_fn: Callable[[int], np.ndarray] | None = None

    def open(self, render_fn: Callable[[int], np.ndarray]) -> None:
        """Create the output stream (not started)."""
        self._render_fn = render_fn
        try:
            # PortAudio is loaded on import; a host without it simply has no engine
            import sounddevice as sd
        except OSError as e:
            raise EngineUnavailable(f"PortAudio not available: {e}") from e

        def _cb(outdata, frames, time, status):
            if status:
                logger.debug("output stream status: %s", status)
            with self._lock:
                block = self._render_fn(frames) if self._render_fn is not None else None
            if block is None:
                outdata.fill(0)
                return
            if block.ndim == 1:
                block = np.stack([block, block], axis=0)
            out = np.clip(block, -1.0, 1.0).astype(np.float32).T  # (frames, 2)
            outdata[:] = out[:, : outdata.shape[1]]

        try:
            self._stream = sd.OutputStream(
                samplerate=self.sample_rate, channels=self.channels, dtype="float32",
                callback=_cb, blocksize=self.chunk_size, device=self.device,
            )
        except Exception as e:
            self._stream = None
            raise EngineUnavailable(f"cannot open output stream: {e}") from e
        logger.debug("output stream opened: %d Hz, %d ch, block %d", self.sample_rate, self.channels, self.chunk_size)

    def start(self) -> None:
        """Start the output stream."""
        if self._running:
            return
        if self._stream is None:
            raise EngineUnavailable("output stream is not open")
        try:
            self._stream.start()
        except Exception as e:
            raise EngineUnavailable(f"cannot start output stream: {e}") from e
        self._running = True

    def stop(self) -> None:
        """Pause the stream; it can be started again."""
        if self._stream is not None and self._running:
            self._stream.stop()
        self._running = False

    def close(self) -> None:
        self.stop()
        if self._stream is not None:
            self._stream.close()
            self._stream = None

    def is_running(self) -> bool:
        return self._running
