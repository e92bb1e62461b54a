"""
The audio-rendering context: owns the output backend, the render clock and the
node factories.

States follow the host engine: "suspended" -> "running" <-> "suspended" -> "closed".
A context created before the page has seen a user gesture starts suspended, and
`resume()` is refused until one happens.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Protocol

import numpy as np

from .constants import BLOCK_SIZE, CHANNELS, FFT_SIZE, SR
from .errors import EngineUnavailable, InvalidStateError, NotAllowedError
from .nodes import (
    AnalyserNode,
    AudioDestinationNode,
    DynamicsCompressorNode,
    GainNode,
    MediaElementSourceNode,
)
from .rt_audio import OutputStreamBackend

logger = logging.getLogger("audioamp.context")

SUSPENDED = "suspended"
RUNNING = "running"
CLOSED = "closed"


class Backend(Protocol):
    def open(self, render_fn: Callable[[int], np.ndarray]) -> None: ...
    def start(self) -> None: ...
    def stop(self) -> None: ...
    def close(self) -> None: ...


class AudioContext:
    def __init__(self, backend: Backend | None = None, sample_rate: int = SR,
                 autoplay_allowed: Callable[[], bool] | None = None, block_size: int = BLOCK_SIZE):
        self.sample_rate = int(sample_rate)
        self.lock = threading.RLock()
        self.state = SUSPENDED
        self._frames = 0
        self._render_pass = 0
        self._autoplay_allowed = autoplay_allowed or (lambda: True)
        self.destination = AudioDestinationNode(self)
        self._backend = backend if backend is not None else OutputStreamBackend(self.sample_rate, CHANNELS, block_size)
        try:
            self._backend.open(self.render)
        except EngineUnavailable:
            raise
        except Exception as e:
            raise EngineUnavailable(str(e)) from e
        if self._autoplay_allowed():
            try:
                self._start()
            except EngineUnavailable:
                self._backend.close()
                self.state = CLOSED
                raise

    def __repr__(self) -> str:
        return f"<AudioContext {self.state} t={self.current_time:.3f}s>"

    @property
    def current_time(self) -> float:
        return self._frames / self.sample_rate

    # ---------- factories ----------
    def create_gain(self) -> GainNode:
        self._check_open()
        return GainNode(self)

    def create_dynamics_compressor(self) -> DynamicsCompressorNode:
        self._check_open()
        return DynamicsCompressorNode(self)

    def create_analyser(self, fft_size: int = FFT_SIZE) -> AnalyserNode:
        self._check_open()
        return AnalyserNode(self, fft_size)

    def create_media_element_source(self, element) -> MediaElementSourceNode:
        self._check_open()
        with self.lock:
            return MediaElementSourceNode(self, element)

    # ---------- rendering ----------
    def render(self, frames: int) -> np.ndarray:
        """One block from the destination. Silence (and a stopped clock) unless running."""
        with self.lock:
            if self.state != RUNNING:
                return np.zeros((CHANNELS, frames), dtype=np.float32)
            self._render_pass += 1
            out = self.destination.pull(frames, self._render_pass)
            self._frames += frames
            return out

    # ---------- state ----------
    def _check_open(self) -> None:
        if self.state == CLOSED:
            raise InvalidStateError("audio context is closed")

    def _start(self) -> None:
        try:
            self._backend.start()
        except EngineUnavailable:
            raise
        except Exception as e:
            raise EngineUnavailable(str(e)) from e
        self.state = RUNNING

    def resume(self) -> None:
        if self.state == CLOSED:
            raise InvalidStateError("cannot resume a closed audio context")
        if self.state == RUNNING:
            return
        if not self._autoplay_allowed():
            raise NotAllowedError("audio context can only be resumed after a user gesture")
        self._start()
        logger.debug("audio context resumed at t=%.3f", self.current_time)

    def suspend(self) -> None:
        if self.state == CLOSED:
            raise InvalidStateError("cannot suspend a closed audio context")
        if self.state == RUNNING:
            self._backend.stop()
            self.state = SUSPENDED

    def close(self) -> None:
        if self.state == CLOSED:
            return
        try:
            self._backend.close()
        finally:
            self.state = CLOSED
